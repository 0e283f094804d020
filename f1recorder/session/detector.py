"""
Session Detector

Works out track, session type, weather and player name from the first
Session (ID 1) and Participants (ID 4) packets of a stream, so a
recording can be given a descriptive file name.

Usage:
    from f1recorder.session.detector import SessionDetector

    detector = SessionDetector()
    detector.start()
    for packet in receiver.packets:
        detector.feed(packet.payload)
        if detector.done:
            break
    info = detector.result(timeout=30.0)
    print(info.generate_filename())   # e.g. "Monaco_Race_Max_Verstappen"
"""

import re
import struct
import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional

from f1recorder.shared.errors import DetectionTimeout, StateError
from f1recorder.shared.packet_queue import PacketQueue
from f1recorder.telemetry.layouts import layout_for
from f1recorder.telemetry.packet import HEADER_SIZE, PacketType, decode_header

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_NAME = "Player"
DEFAULT_FILENAME = "session"

# Track IDs as sent in the session packet (signed byte)
TRACK_NAMES = {
    0: "Melbourne",
    2: "Shanghai",
    3: "Bahrain",
    4: "Catalunya",
    5: "Monaco",
    6: "Montreal",
    7: "Silverstone",
    9: "Hungaroring",
    10: "Spa",
    11: "Monza",
    12: "Singapore",
    13: "Suzuka",
    14: "AbuDhabi",
    15: "Texas",
    16: "Brazil",
    17: "Austria",
    19: "Mexico",
    20: "Baku",
    26: "Zandvoort",
    27: "Imola",
    29: "Jeddah",
    30: "Miami",
    31: "LasVegas",
    32: "Losail",
    39: "Silverstone_Rev",
    40: "Austria_Rev",
    41: "Zandvoort_Rev",
}

SESSION_TYPES = {
    0: "Unknown",
    1: "P1",
    2: "P2",
    3: "P3",
    4: "Practice",
    5: "Q1",
    6: "Q2",
    7: "Q3",
    8: "Qualifying",
    9: "OneShotQ",
    10: "SS1",
    11: "SS2",
    12: "SS3",
    13: "SprintShootout",
    14: "OneShotSS",
    15: "Race",
    16: "Race2",
    17: "Race3",
    18: "TimeTrial",
}

WEATHER = {
    0: "Clear",
    1: "LightCloud",
    2: "Overcast",
    3: "LightRain",
    4: "HeavyRain",
    5: "Storm",
}

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_-]')


@dataclass(frozen=True)
class SessionInfo:
    """Session details detected from the packet stream."""

    player_name: str = ""
    track_name: str = ""
    session_type: str = ""
    weather: str = ""
    has_info: bool = False

    def generate_filename(self) -> str:
        """
        Build a file name stem such as "Monaco_Race_Max_Verstappen".

        Default values (session type "Unknown", player "Player", weather
        "Clear") are left out. Returns "session" if nothing is left.
        """
        parts = []
        if self.track_name:
            parts.append(self.track_name)
        if self.session_type and self.session_type != "Unknown":
            parts.append(self.session_type)
        if self.player_name and self.player_name != DEFAULT_PLAYER_NAME:
            parts.append(self.player_name)
        if self.weather and self.weather != "Clear":
            parts.append(self.weather)

        if not parts:
            return DEFAULT_FILENAME
        return "_".join(parts)

    def describe(self) -> str:
        """One-line human readable summary."""
        if not self.has_info:
            return "No session info available"

        parts = []
        if self.player_name:
            parts.append(f"Player: {self.player_name}")
        if self.track_name:
            parts.append(f"Track: {self.track_name}")
        if self.session_type:
            parts.append(f"Session: {self.session_type}")
        if self.weather:
            parts.append(f"Weather: {self.weather}")
        return " | ".join(parts)


def sanitize_name(name: str) -> str:
    """
    Make a player name safe for a file name.

    Trims whitespace, turns spaces into underscores and removes anything
    outside [A-Za-z0-9_-]. An empty result becomes "Player".
    """
    name = name.strip().replace(" ", "_")
    name = _UNSAFE_CHARS.sub("", name)
    return name or DEFAULT_PLAYER_NAME


def _null_terminated(data: bytes) -> str:
    end = data.find(b'\x00')
    if end != -1:
        data = data[:end]
    return data.decode('utf-8', errors='replace')


def parse_session_packet(data: bytes) -> dict:
    """
    Read weather, session type and track from a Session packet.

    Returns an empty dict if the packet is too short.
    """
    layout = layout_for(decode_header(data).packet_format)
    if len(data) < layout.session_min_size:
        logger.debug(f"Session packet too short: {len(data)} bytes")
        return {}

    base = layout.header_size
    weather = data[base + layout.session_weather_offset]
    session_type = data[base + layout.session_type_offset]
    track_id = struct.unpack_from('<b', data, base + layout.session_track_id_offset)[0]

    return {
        'weather': WEATHER.get(weather, "Unknown"),
        'session_type': SESSION_TYPES.get(session_type, "Unknown"),
        'track_name': TRACK_NAMES.get(track_id, f"Track{track_id}"),
    }


def parse_participants_packet(data: bytes) -> Optional[str]:
    """
    Read the player's name from a Participants packet.

    The player's record is selected with playerCarIndex from the header.
    Returns the sanitized name, or None if the record or its 32-byte name
    field runs past the end of the packet.
    """
    header = decode_header(data)
    layout = layout_for(header.packet_format)

    record = layout.participant_offset(header.player_car_index)
    if record + layout.participant_stride > len(data):
        logger.debug(
            f"Participants packet too short for car {header.player_car_index}: {len(data)} bytes"
        )
        return None

    start = record + layout.participant_name_offset
    end = start + layout.participant_name_size
    if end > len(data):
        logger.debug(f"Participants packet too short for name of car {header.player_car_index}")
        return None

    name = _null_terminated(data[start:end])
    return sanitize_name(name)


def extract_session_info(packets: Iterable[bytes]) -> SessionInfo:
    """
    Scan raw packets until both a Session and a Participants packet were seen.

    Each kind is parsed once, from its first occurrence. Returns as soon
    as both were seen (has_info=True) or when packets is exhausted.
    """
    fields = {}
    session_seen = False
    participants_seen = False

    for data in packets:
        if len(data) < HEADER_SIZE:
            continue

        packet_id = data[6]
        if packet_id == PacketType.SESSION and not session_seen:
            fields.update(parse_session_packet(data))
            session_seen = True
        elif packet_id == PacketType.PARTICIPANTS and not participants_seen:
            name = parse_participants_packet(data)
            if name is not None:
                fields['player_name'] = name
            participants_seen = True

        if session_seen and participants_seen:
            return SessionInfo(has_info=True, **fields)

    return SessionInfo(has_info=False, **fields)


class SessionDetector:
    """
    Runs extract_session_info() on a background thread.

    feed() hands over a copy of each packet without ever blocking the
    caller; when the detector's queue is full the packet is skipped.
    """

    def __init__(self, queue_size: int = 100):
        self._queue: PacketQueue[bytes] = PacketQueue(queue_size)
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._info: Optional[SessionInfo] = None
        self._skipped = 0

    def start(self):
        if self._thread is not None:
            raise StateError("SessionDetector already started")
        self._thread = threading.Thread(target=self._run, name='f1-session-detector', daemon=True)
        self._thread.start()

    def _run(self):
        try:
            self._info = extract_session_info(self._queue)
        finally:
            # Detection finished early: refuse further input
            self._queue.close()
            self._done.set()

    def feed(self, payload: bytes) -> bool:
        """Offer a packet to the detector. Returns False if it was not taken."""
        if self._done.is_set():
            return False
        try:
            accepted = self._queue.offer(payload)
        except StateError:
            return False  # Finished between the check and the offer
        if not accepted:
            self._skipped += 1
        return accepted

    def close(self):
        """Signal the end of the input stream."""
        self._queue.close()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def result(self, timeout: Optional[float] = None) -> SessionInfo:
        """
        Wait for detection to finish and return the SessionInfo.

        Raises:
            DetectionTimeout: timeout elapsed first (the detector is shut down)
        """
        if self._thread is None:
            raise StateError("SessionDetector not started")

        if not self._done.wait(timeout):
            self.close()
            raise DetectionTimeout(f"No session info within {timeout:.1f}s")

        if self._skipped:
            logger.debug(f"Session detector skipped {self._skipped} packets (queue full)")
        return self._info

