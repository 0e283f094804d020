"""
Telemetry Recorder

Appends received packets to an .f1tr file (see file_format.py) together
with their receive timestamps so they can be replayed with the original
timing.

The recorder has no thread of its own: record_packet() writes on the
caller's thread under a lock. Writes go through Python's file buffering
and are not fsync'ed; data still buffered when the process dies is lost.

Usage:
    from f1recorder.recording.recorder import Recorder

    recorder = Recorder("./recordings", "Monaco_Race")
    recorder.start()
    recorder.record_packet(packet)
    recorder.stop()
"""

import os
import logging
import threading
import time
from typing import BinaryIO, Optional

from f1recorder.recording.file_format import (
    ENTRY_HEADER_SIZE,
    RecordingEntry,
    RecordingFileHeader,
    recording_filename,
)
from f1recorder.shared.errors import StateError, TelemetryIOError
from f1recorder.shared.types import RecorderStats
from f1recorder.telemetry.packet import CapturedPacket

logger = logging.getLogger(__name__)


class Recorder:
    """
    Writes CapturedPackets to a recording file.

    Like the Receiver and Player, a Recorder runs once: start(), any
    number of record_packet() calls, stop().
    """

    def __init__(self, output_dir: str, session_name: str = "session",
                 output_path: Optional[str] = None):
        """
        Args:
            output_dir: Directory for the recording (created on start)
            session_name: Used in the file name and the stats
            output_path: Explicit file path; overrides the generated name
        """
        self.output_dir = output_dir
        self.session_name = session_name
        self.output_path = output_path or os.path.join(output_dir, recording_filename(session_name))

        self._lock = threading.Lock()
        self._file: Optional[BinaryIO] = None
        self._running = False
        self._stopped = False
        self._stats = RecorderStats(session_name=session_name)

    @classmethod
    def for_path(cls, path: str, session_name: str = "session") -> 'Recorder':
        """Recorder writing to an explicit file path."""
        return cls(os.path.dirname(path) or ".", session_name, output_path=path)

    def start(self):
        """
        Create the output file and write the file header.

        Raises:
            StateError: already running, or already stopped
            TelemetryIOError: directory or file could not be created/written
        """
        with self._lock:
            if self._running:
                raise StateError("Recorder already running")
            if self._stopped:
                raise StateError("Recorder has been stopped; create a new one")

            try:
                os.makedirs(os.path.dirname(self.output_path) or ".", exist_ok=True)
                self._file = open(self.output_path, 'wb')
            except OSError as e:
                raise TelemetryIOError(f"Failed to create recording file {self.output_path}: {e}") from e

            try:
                self._file.write(RecordingFileHeader.new().to_bytes())
            except OSError as e:
                self._file.close()
                self._file = None
                raise TelemetryIOError(f"Failed to write file header: {e}") from e

            self._running = True
            self._stats.start_time = time.time()

        logger.info(f"Recording to {self.output_path}")

    def record_packet(self, packet: CapturedPacket):
        """
        Append one packet to the recording.

        Raises:
            StateError: recorder not running
            TelemetryIOError: write failed
        """
        entry = RecordingEntry(timestamp_ns=packet.receive_timestamp, payload=packet.payload)

        with self._lock:
            if not self._running:
                raise StateError("Recorder not running")

            try:
                self._file.write(entry.to_bytes())
            except OSError as e:
                raise TelemetryIOError(f"Failed to write packet: {e}") from e

            self._stats.packets_recorded += 1
            self._stats.bytes_written += len(entry.payload) + ENTRY_HEADER_SIZE

    def stop(self):
        """
        Flush and close the recording file. Idempotent.

        Raises:
            TelemetryIOError: closing (flushing) the file failed
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stopped = True
            f, self._file = self._file, None

            try:
                f.close()
            except OSError as e:
                raise TelemetryIOError(f"Failed to close recording file: {e}") from e

        logger.info(f"Recording saved: {self.output_path} ({self.stats()})")

    def stats(self) -> RecorderStats:
        """Return a snapshot of the recorder statistics."""
        with self._lock:
            return self._stats.copy()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running
