"""
F1TR Recording File Format

All fields little-endian:

    Header (46 bytes):
        magic "F1TR" (4) | version u16 | created_at_ns i64 | reserved (32)
    Entry (12 + n bytes), repeated to end of file:
        timestamp_ns i64 | payload_length u32 | payload (n)

Timestamps are nanoseconds since the Unix epoch. There is no trailer or
index; a file cut short mid-entry is readable up to the last complete
entry.
"""

import os
import struct
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Iterator, List, Optional, Tuple

from f1recorder.shared.errors import FormatError

logger = logging.getLogger(__name__)

MAGIC = b'F1TR'
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = frozenset({1})
FILE_EXTENSION = '.f1tr'
FILENAME_TIME_FORMAT = '%Y-%m-%d_%H-%M-%S'

FILE_HEADER_FORMAT = '<4sHq32s'
FILE_HEADER_SIZE = struct.calcsize(FILE_HEADER_FORMAT)  # 46

ENTRY_HEADER_FORMAT = '<qI'
ENTRY_HEADER_SIZE = struct.calcsize(ENTRY_HEADER_FORMAT)  # 12

RESERVED_SIZE = 32

# Largest payload an entry can hold: one UDP datagram
MAX_PAYLOAD_SIZE = 65535

_FILE_HEADER = struct.Struct(FILE_HEADER_FORMAT)
_ENTRY_HEADER = struct.Struct(ENTRY_HEADER_FORMAT)


@dataclass(frozen=True)
class RecordingFileHeader:
    """Header at the start of every .f1tr file."""

    version: int = FORMAT_VERSION
    created_at_ns: int = 0
    magic: bytes = MAGIC

    def to_bytes(self) -> bytes:
        """Pack into the 46-byte on-disk form (reserved bytes zeroed)."""
        return _FILE_HEADER.pack(self.magic, self.version, self.created_at_ns, b'\x00' * RESERVED_SIZE)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'RecordingFileHeader':
        """
        Unpack and validate a file header.

        Raises:
            FormatError: short header, wrong magic or unsupported version
        """
        if len(data) < FILE_HEADER_SIZE:
            raise FormatError(f"File header truncated: {len(data)} < {FILE_HEADER_SIZE} bytes")

        magic, version, created_at_ns, _ = _FILE_HEADER.unpack_from(data, 0)
        if magic != MAGIC:
            raise FormatError(f"Invalid magic number: {magic!r} (expected {MAGIC!r})")
        if version not in SUPPORTED_VERSIONS:
            raise FormatError(f"Unsupported recording version: {version}")

        return cls(version=version, created_at_ns=created_at_ns, magic=magic)

    @classmethod
    def new(cls) -> 'RecordingFileHeader':
        return cls(version=FORMAT_VERSION, created_at_ns=time.time_ns())

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.created_at_ns / 1e9)


@dataclass(frozen=True)
class RecordingEntry:
    """One recorded packet."""

    timestamp_ns: int
    payload: bytes

    def to_bytes(self) -> bytes:
        return _ENTRY_HEADER.pack(self.timestamp_ns, len(self.payload)) + self.payload

    @property
    def size(self) -> int:
        """Bytes taken on disk, entry header included."""
        return ENTRY_HEADER_SIZE + len(self.payload)


def read_file_header(fp: BinaryIO) -> RecordingFileHeader:
    """Read and validate the header from the current position of fp."""
    return RecordingFileHeader.from_bytes(fp.read(FILE_HEADER_SIZE))


def read_entry(fp: BinaryIO) -> Optional[RecordingEntry]:
    """
    Read the next entry from fp.

    Returns None at a clean end of file (no bytes left).

    Raises:
        FormatError: the file ends part-way through an entry, or the
            entry length is larger than any datagram
    """
    head = fp.read(ENTRY_HEADER_SIZE)
    if not head:
        return None
    if len(head) < ENTRY_HEADER_SIZE:
        raise FormatError(f"Truncated entry header: {len(head)} of {ENTRY_HEADER_SIZE} bytes")

    timestamp_ns, length = _ENTRY_HEADER.unpack(head)
    if length > MAX_PAYLOAD_SIZE:
        raise FormatError(f"Entry length {length} exceeds {MAX_PAYLOAD_SIZE}")

    payload = fp.read(length)
    if len(payload) < length:
        raise FormatError(f"Truncated entry payload: {len(payload)} of {length} bytes")

    return RecordingEntry(timestamp_ns=timestamp_ns, payload=payload)


def iter_entries(fp: BinaryIO) -> Iterator[RecordingEntry]:
    """
    Yield entries from fp until end of file.

    A truncated tail raises FormatError after every complete entry has
    been yielded; the message says how many that was.
    """
    count = 0
    while True:
        try:
            entry = read_entry(fp)
        except FormatError as e:
            raise FormatError(f"{e} after {count} complete entries") from e
        if entry is None:
            return
        count += 1
        yield entry


def read_recording(path: str) -> Tuple[RecordingFileHeader, List[RecordingEntry]]:
    """Load a whole recording into memory."""
    with open(path, 'rb') as f:
        header = read_file_header(f)
        return header, list(iter_entries(f))


def recording_filename(session_name: str, when: Optional[datetime] = None,
                       time_format: str = FILENAME_TIME_FORMAT) -> str:
    """File name for a new recording, e.g. "2025-06-01_14-03-22_Monaco_Race.f1tr"."""
    when = when or datetime.now()
    return f"{when.strftime(time_format)}_{session_name}{FILE_EXTENSION}"


@dataclass(frozen=True)
class RecordingFileInfo:
    path: str
    size: int
    modified: datetime

    @property
    def name(self) -> str:
        return os.path.basename(self.path)


def list_recordings(directory: str) -> List[RecordingFileInfo]:
    """List .f1tr files in directory, newest first. Missing directory gives []."""
    if not os.path.isdir(directory):
        return []

    recordings = []
    for name in os.listdir(directory):
        if not name.endswith(FILE_EXTENSION):
            continue
        path = os.path.join(directory, name)
        if not os.path.isfile(path):
            continue
        stat = os.stat(path)
        recordings.append(RecordingFileInfo(
            path=path,
            size=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime),
        ))

    recordings.sort(key=lambda r: r.modified, reverse=True)
    return recordings


def format_file_size(size: int) -> str:
    """Human readable size, e.g. "1.5 MB"."""
    value = float(size)
    if value < 1024:
        return f"{size} B"
    for unit in ('KB', 'MB'):
        value /= 1024
        if value < 1024:
            return f"{value:.1f} {unit}"
    return f"{value / 1024:.1f} GB"
