"""
Pytest Configuration - Shared Fixtures

This file contains shared fixtures used across all test modules:
packet builders, recording writers and loopback UDP helpers.
"""

import pytest
import socket
import struct
import sys
import os
import threading
import time

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


HEADER_FORMAT = '<HBBBBBQfIIBB'


def build_header(packet_id=0, player_car_index=0, frame=0, packet_format=2025,
                 session_time=0.0, session_uid=0x1122334455667788):
    """Create a 29-byte F1 25 packet header."""
    return struct.pack(
        HEADER_FORMAT,
        packet_format,      # packetFormat
        25,                 # gameYear
        1,                  # gameMajorVersion
        2,                  # gameMinorVersion
        1,                  # packetVersion
        packet_id,          # packetId
        session_uid,        # sessionUID
        session_time,       # sessionTime
        frame,              # frameIdentifier
        frame,              # overallFrameIdentifier
        player_car_index,   # playerCarIndex
        255,                # secondaryPlayerCarIndex
    )


def build_packet(packet_id=0, size=64, frame=0, player_car_index=0):
    """Create a packet of the given total size with a valid header and a patterned body."""
    header = build_header(packet_id, player_car_index=player_car_index, frame=frame)
    body = bytes((frame + i) % 256 for i in range(max(0, size - len(header))))
    return header + body


def build_session_packet(weather=0, session_type=15, track_id=5, size=644):
    """Create a Session packet (ID 1); defaults are a dry Monaco race."""
    body = bytearray(size - 29)
    body[0] = weather
    body[6] = session_type
    body[7] = track_id & 0xFF
    return build_header(packet_id=1) + bytes(body)


def build_participants_packet(names, player_car_index=0, num_cars=22):
    """Create a Participants packet (ID 4) with the given driver names."""
    body = bytearray(1 + num_cars * 58)
    body[0] = len(names)
    for i, name in enumerate(names):
        encoded = name.encode('utf-8')[:31]
        offset = 1 + i * 58 + 48
        body[offset:offset + len(encoded)] = encoded
    return build_header(packet_id=4, player_car_index=player_car_index) + bytes(body)


def write_recording(path, entries, version=1, magic=b'F1TR'):
    """Write an .f1tr file from (timestamp_ns, payload) pairs."""
    with open(path, 'wb') as f:
        f.write(struct.pack('<4sHq32s', magic, version, time.time_ns(), b'\x00' * 32))
        for timestamp_ns, payload in entries:
            f.write(struct.pack('<qI', timestamp_ns, len(payload)))
            f.write(payload)
    return str(path)


def wait_until(predicate, timeout=2.0, interval=0.01):
    """Poll predicate until it is true or timeout elapses. Returns the last result."""
    deadline = time.monotonic() + timeout
    while True:
        result = predicate()
        if result or time.monotonic() >= deadline:
            return result
        time.sleep(interval)


class DatagramCollector:
    """Reads datagrams from a socket on a thread, stamping each with time.monotonic()."""

    def __init__(self, sock):
        self.sock = sock
        self.sock.settimeout(0.05)
        self._lock = threading.Lock()
        self._received = []
        self._running = True
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        while self._running:
            try:
                data, _ = self.sock.recvfrom(65536)
            except socket.timeout:
                continue
            except OSError:
                return
            with self._lock:
                self._received.append((time.monotonic(), data))

    @property
    def received(self):
        with self._lock:
            return list(self._received)

    @property
    def payloads(self):
        return [data for _, data in self.received]

    def count(self):
        with self._lock:
            return len(self._received)

    def wait_for(self, count, timeout=5.0):
        return wait_until(lambda: self.count() >= count, timeout)

    def stop(self):
        self._running = False
        self._thread.join(timeout=1.0)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def make_packet():
    return build_packet


@pytest.fixture
def session_packet():
    return build_session_packet


@pytest.fixture
def participants_packet():
    return build_participants_packet


@pytest.fixture
def recording_file(tmp_path):
    """Factory writing an .f1tr file into tmp_path."""
    def _write(entries, name='test.f1tr', **kwargs):
        return write_recording(tmp_path / name, entries, **kwargs)
    return _write


@pytest.fixture
def udp_sink():
    """UDP socket bound to an ephemeral loopback port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(('127.0.0.1', 0))
    yield sock
    sock.close()


@pytest.fixture
def collector(udp_sink):
    """Collects everything sent to udp_sink."""
    c = DatagramCollector(udp_sink)
    yield c
    c.stop()


@pytest.fixture
def sender():
    """Unbound UDP socket for sending test packets."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    yield sock
    sock.close()
