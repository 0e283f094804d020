"""
Shared type definitions for the F1 Telemetry Recorder.

Stats objects are handed out as copies, so a caller can keep one
without it changing underneath them.
"""

import time
from dataclasses import dataclass, replace
from typing import Optional


@dataclass
class ReceiverStats:
    """
    Counters for a Receiver.

    errors counts every discarded packet (bad header, full queue) and
    every non-timeout socket error. packets_dropped is the full-queue
    share of errors.
    """

    packets_received: int = 0
    bytes_received: int = 0
    errors: int = 0
    packets_dropped: int = 0
    start_time: Optional[float] = None   # time.time() at start()

    def copy(self) -> 'ReceiverStats':
        return replace(self)

    @property
    def elapsed(self) -> float:
        return time.time() - self.start_time if self.start_time else 0.0

    def __str__(self):
        return (
            f"ReceiverStats(packets={self.packets_received}, "
            f"bytes={self.bytes_received}, errors={self.errors}, "
            f"dropped={self.packets_dropped})"
        )


@dataclass
class RecorderStats:
    """Counters for a Recorder. bytes_written includes the 12-byte entry overhead."""

    packets_recorded: int = 0
    bytes_written: int = 0
    start_time: Optional[float] = None
    session_name: str = ""

    def copy(self) -> 'RecorderStats':
        return replace(self)

    @property
    def elapsed(self) -> float:
        return time.time() - self.start_time if self.start_time else 0.0

    def __str__(self):
        return (
            f"RecorderStats(session={self.session_name}, "
            f"packets={self.packets_recorded}, bytes={self.bytes_written})"
        )


@dataclass
class PlayerStats:
    """
    Counters for a Player.

    recording_time_ns is the recorded timestamp of the last packet sent,
    i.e. the current position in the recording.
    """

    packets_played: int = 0
    bytes_sent: int = 0
    send_errors: int = 0
    start_time: Optional[float] = None
    current_time: Optional[float] = None
    recording_time_ns: int = 0

    def copy(self) -> 'PlayerStats':
        return replace(self)

    @property
    def elapsed(self) -> float:
        return time.time() - self.start_time if self.start_time else 0.0

    def __str__(self):
        return (
            f"PlayerStats(packets={self.packets_played}, "
            f"bytes={self.bytes_sent}, send_errors={self.send_errors})"
        )
