"""
Telemetry Player

Replays an .f1tr recording over UDP as if the packets were coming from
the game, keeping the recorded gaps between packets (scaled by the
playback speed).

Each packet is scheduled relative to the previous one:

    deadline[i] = deadline[i-1] + (timestamp[i] - timestamp[i-1]) / speed

so a late send does not push back the rest of the recording, and a
speed change applies from the next packet on.

Usage:
    from f1recorder.playback.player import Player

    player = Player("recordings/race.f1tr", "127.0.0.1", 20777, speed=2.0)
    player.start()
    player.pause()
    player.resume()
    player.wait()
    print(player.stats(), player.completed, player.last_error)
"""

import socket
import logging
import threading
import time
from enum import Enum
from typing import BinaryIO, Optional, Tuple

from f1recorder.recording.file_format import RecordingEntry, RecordingFileHeader, read_entry, read_file_header
from f1recorder.shared.errors import (
    ConfigurationError,
    FormatError,
    ProtocolError,
    StateError,
    TelemetryIOError,
)
from f1recorder.shared.packet_queue import PacketQueue
from f1recorder.shared.types import PlayerStats
from f1recorder.telemetry.packet import CapturedPacket, decode_header
from f1recorder.telemetry.receiver import DEFAULT_PORT

logger = logging.getLogger(__name__)

DEFAULT_TARGET = '127.0.0.1'


class PlayerState(Enum):
    """Playback states. STOPPED is both the initial and the final state."""
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


class Player:
    """
    Replays a recording on a background thread.

    State sequence: Stopped → Running ⇄ Paused → Stopped. A Player runs
    once; the end of the file stops it (completed=True), and a read
    failure stops it with last_error set.
    """

    # How long stop() waits for the playback thread
    JOIN_TIMEOUT = 2.0

    def __init__(self, file_path: str, target_address: str = DEFAULT_TARGET,
                 target_port: int = DEFAULT_PORT, speed: float = 1.0,
                 queue_size: int = 100):
        """
        Args:
            file_path: Recording to play
            target_address: Host to send the packets to
            target_port: UDP port to send the packets to
            speed: Playback speed (1.0 = real time, 2.0 = twice as fast)
            queue_size: Capacity of the decoded-packet queue
        """
        _check_speed(speed)
        self.file_path = file_path
        self.target_address = target_address
        self.target_port = target_port

        self._speed = float(speed)
        self._packets: PacketQueue[CapturedPacket] = PacketQueue(queue_size)
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._resumed = threading.Event()
        self._resumed.set()

        self._file: Optional[BinaryIO] = None
        self._socket: Optional[socket.socket] = None
        self._target: Optional[Tuple[str, int]] = None
        self._thread: Optional[threading.Thread] = None
        self._header: Optional[RecordingFileHeader] = None

        self._running = False
        self._stopped = False
        self._completed = False
        self._last_error: Optional[BaseException] = None
        self._stats = PlayerStats()

    def start(self):
        """
        Open the recording and start playback.

        Raises:
            StateError: already running, or already stopped
            TelemetryIOError: file could not be opened or socket created
            FormatError: not an .f1tr file or unsupported version
            ConfigurationError: invalid target address or port
        """
        with self._lock:
            if self._running:
                raise StateError("Player already running")
            if self._stopped:
                raise StateError("Player has been stopped; create a new one")

            try:
                f = open(self.file_path, 'rb')
            except OSError as e:
                raise TelemetryIOError(f"Failed to open recording file {self.file_path}: {e}") from e

            try:
                self._header = read_file_header(f)
                self._target = self._resolve_target()
                self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            except (FormatError, ConfigurationError):
                f.close()
                raise
            except OSError as e:
                f.close()
                raise TelemetryIOError(f"Failed to create UDP socket: {e}") from e

            self._file = f
            self._running = True
            self._stats = PlayerStats(start_time=time.time())

            self._thread = threading.Thread(
                target=self._playback_loop, name='f1-player', daemon=True
            )
            self._thread.start()

        logger.info(
            f"Replaying {self.file_path} to {self._target[0]}:{self._target[1]} "
            f"(speed: {self._speed}x)"
        )

    def stop(self):
        """
        Stop playback. Idempotent, and the Player cannot be started again.

        Safe to call from any thread, including the playback thread.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stopped = True
            self._stop_event.set()
            self._resumed.set()
            sock = self._socket
            thread = self._thread

        if sock is not None:
            sock.close()

        if thread is not None and thread is not threading.current_thread():
            thread.join(self.JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning("Playback thread did not exit in time")

        with self._lock:
            f, self._file = self._file, None
        if f is not None:
            f.close()

        self._packets.close()
        logger.info(f"Playback stopped. {self.stats()}")

    def pause(self):
        """Hold playback before the next packet is sent."""
        with self._lock:
            if not self._running:
                raise StateError("Player not running")
            self._resumed.clear()
        logger.info("Playback paused")

    def resume(self):
        """Continue playback with the next unsent packet."""
        with self._lock:
            if not self._running:
                raise StateError("Player not running")
            self._resumed.set()
        logger.info("Playback resumed")

    def set_speed(self, speed: float):
        """
        Change the playback speed, effective from the next packet.

        Raises:
            ConfigurationError: speed is not > 0
        """
        _check_speed(speed)
        with self._lock:
            self._speed = float(speed)
        logger.info(f"Playback speed: {speed}x")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for the playback thread to finish. Returns False on timeout."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _resolve_target(self) -> Tuple[str, int]:
        port = self.target_port
        if not isinstance(port, int) or not 1 <= port <= 65535:
            raise ConfigurationError(f"Invalid target port: {port!r} (must be 1-65535)")
        try:
            info = socket.getaddrinfo(self.target_address, port, socket.AF_INET, socket.SOCK_DGRAM)
        except (socket.gaierror, UnicodeError) as e:
            raise ConfigurationError(f"Invalid target address {self.target_address!r}: {e}") from e
        return info[0][4]

    def _playback_loop(self):
        try:
            self._play()
        except Exception as e:
            # Anything unexpected still has to stop the Player and reach last_error
            logger.exception("Playback thread failed")
            self._finish(error=e)

    def _play(self):
        fp = self._file  # stop() clears the attribute; a closed file raises ValueError
        previous_ts: Optional[int] = None
        deadline = 0.0

        while True:
            if self._hold_while_paused():
                deadline = time.monotonic()
            if self._stop_event.is_set():
                return

            try:
                entry = read_entry(fp)
            except FormatError as e:
                played = self.stats().packets_played
                self._finish(error=FormatError(f"Recording ends early after {played} entries: {e}"))
                return
            except (OSError, ValueError) as e:
                if self._stop_event.is_set():
                    return  # File closed by stop()
                self._finish(error=TelemetryIOError(f"Failed to read recording: {e}"))
                return

            if entry is None:
                self._finish()
                return

            if previous_ts is None:
                deadline = time.monotonic()
            else:
                deadline += (entry.timestamp_ns - previous_ts) / 1e9 / self.speed
                remaining = deadline - time.monotonic()
                if remaining > 0 and self._stop_event.wait(remaining):
                    return
            previous_ts = entry.timestamp_ns

            # A pause requested during the wait holds this packet back
            if self._hold_while_paused():
                deadline = time.monotonic()
            if self._stop_event.is_set():
                return

            self._send(entry)

    def _hold_while_paused(self) -> bool:
        """Block while paused. Returns True if playback was held."""
        if self._resumed.is_set():
            return False
        self._resumed.wait()
        return True

    def _send(self, entry: RecordingEntry):
        sent = True
        try:
            self._socket.sendto(entry.payload, self._target)
        except OSError as e:
            if self._stop_event.is_set():
                return
            sent = False
            logger.debug(f"Send failed: {e}")

        with self._lock:
            self._stats.packets_played += 1
            if sent:
                self._stats.bytes_sent += len(entry.payload)
            else:
                self._stats.send_errors += 1
            self._stats.current_time = time.time()
            self._stats.recording_time_ns = entry.timestamp_ns

        # Side channel for display consumers, never blocks playback
        try:
            header = decode_header(entry.payload)
        except ProtocolError:
            return
        packet = CapturedPacket(receive_timestamp=entry.timestamp_ns, payload=entry.payload, header=header)
        try:
            self._packets.offer(packet)
        except StateError:
            pass  # Closed by a stop() that gave up waiting for this thread

    def _finish(self, error: Optional[BaseException] = None):
        with self._lock:
            if error is None:
                self._completed = True
            else:
                self._last_error = error
        if error is None:
            logger.info("End of recording reached")
        else:
            logger.error(f"Playback failed: {error}")
        self.stop()

    @property
    def packets(self) -> PacketQueue:
        """Queue of replayed CapturedPackets, closed when playback stops."""
        return self._packets

    @property
    def speed(self) -> float:
        with self._lock:
            return self._speed

    @property
    def state(self) -> PlayerState:
        with self._lock:
            if not self._running:
                return PlayerState.STOPPED
            return PlayerState.RUNNING if self._resumed.is_set() else PlayerState.PAUSED

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def is_paused(self) -> bool:
        return self.state is PlayerState.PAUSED

    @property
    def completed(self) -> bool:
        """True once the whole recording was played."""
        with self._lock:
            return self._completed

    @property
    def last_error(self) -> Optional[BaseException]:
        """Error that stopped playback early, if any."""
        with self._lock:
            return self._last_error

    @property
    def header(self) -> Optional[RecordingFileHeader]:
        return self._header

    def stats(self) -> PlayerStats:
        """Return a snapshot of the playback statistics."""
        with self._lock:
            return self._stats.copy()


def _check_speed(speed: float):
    if not speed > 0:
        raise ConfigurationError(f"Invalid playback speed: {speed} (must be > 0)")
