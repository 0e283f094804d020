"""
Recording inspection - what is inside an .f1tr file.

Reads a recording offline and reports packet counts per type, duration,
timing gaps and the session detected from its Session/Participants packets.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from f1recorder.recording.file_format import RecordingEntry, RecordingFileHeader, iter_entries, read_file_header
from f1recorder.session.detector import SessionInfo, extract_session_info
from f1recorder.shared.errors import FormatError, ProtocolError
from f1recorder.telemetry.packet import PacketHeader, PacketType, decode_header, packet_type_name

logger = logging.getLogger(__name__)

_SESSION_PACKETS = (PacketType.SESSION, PacketType.PARTICIPANTS)


@dataclass
class EntrySummary:
    index: int
    timestamp_ns: int
    gap_ms: float
    size: int
    header: Optional[PacketHeader]

    @property
    def type_name(self) -> str:
        return self.header.type_name if self.header else "Invalid"


@dataclass
class RecordingSummary:
    path: str
    file_header: RecordingFileHeader
    entries: int = 0
    payload_bytes: int = 0
    first_timestamp_ns: Optional[int] = None
    last_timestamp_ns: Optional[int] = None
    max_gap_ms: float = 0.0
    invalid_packets: int = 0
    packet_counts: Counter = field(default_factory=Counter)
    session_info: SessionInfo = field(default_factory=SessionInfo)
    error: Optional[FormatError] = None   # set if the file ends mid-entry

    @property
    def duration(self) -> float:
        """Seconds between the first and the last entry."""
        if self.first_timestamp_ns is None:
            return 0.0
        return (self.last_timestamp_ns - self.first_timestamp_ns) / 1e9


def iter_entry_summaries(path: str, limit: Optional[int] = None) -> Iterator[EntrySummary]:
    """Per-entry details for the first `limit` entries (all if None)."""
    with open(path, 'rb') as f:
        read_file_header(f)
        previous = None
        for index, entry in enumerate(iter_entries(f)):
            if limit is not None and index >= limit:
                return
            gap_ms = (entry.timestamp_ns - previous) / 1e6 if previous is not None else 0.0
            previous = entry.timestamp_ns
            yield EntrySummary(index, entry.timestamp_ns, gap_ms, len(entry.payload), _header_or_none(entry))


def summarize_recording(path: str) -> RecordingSummary:
    """
    Read the whole recording and collect statistics.

    A truncated tail does not raise; it is reported in summary.error.

    Raises:
        FormatError: bad magic or unsupported version
        OSError: file cannot be read
    """
    with open(path, 'rb') as f:
        summary = RecordingSummary(path=path, file_header=read_file_header(f))
        # First Session and Participants packets, for session detection
        session_packets: Dict[int, bytes] = {}

        try:
            for entry in iter_entries(f):
                _add_entry(summary, entry)
                packet_id = entry.payload[6] if len(entry.payload) > 6 else None
                if packet_id in _SESSION_PACKETS and packet_id not in session_packets:
                    session_packets[packet_id] = entry.payload
        except FormatError as e:
            logger.warning(f"{path}: {e}")
            summary.error = e

    summary.session_info = extract_session_info(session_packets.values())
    return summary


def _add_entry(summary: RecordingSummary, entry: RecordingEntry):
    if summary.last_timestamp_ns is not None:
        gap_ms = (entry.timestamp_ns - summary.last_timestamp_ns) / 1e6
        summary.max_gap_ms = max(summary.max_gap_ms, gap_ms)
    else:
        summary.first_timestamp_ns = entry.timestamp_ns
    summary.last_timestamp_ns = entry.timestamp_ns

    summary.entries += 1
    summary.payload_bytes += len(entry.payload)

    header = _header_or_none(entry)
    if header is None:
        summary.invalid_packets += 1
    else:
        summary.packet_counts[packet_type_name(header.packet_id)] += 1


def _header_or_none(entry: RecordingEntry) -> Optional[PacketHeader]:
    try:
        return decode_header(entry.payload)
    except ProtocolError:
        return None
