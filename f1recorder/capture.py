"""
Capture Session

Ties the pipeline together for one recording:

    Receiver → SessionDetector (until session info is known)
             → Recorder (packets buffered during detection come first)
             → TelemetryMonitor (display values)

The session name is detected from the stream so the file gets a name
like "2025-06-01_14-03-22_Monaco_Race_Max_Verstappen.f1tr".

Usage:
    from f1recorder.capture import CaptureSession
    from f1recorder.utils.config import load_config

    session = CaptureSession(load_config())
    session.start()          # blocks while detecting the session
    ...
    session.stop()
"""

import os
import logging
import threading
import time
from typing import List, Optional, Tuple

from f1recorder.recording.file_format import recording_filename
from f1recorder.recording.recorder import Recorder
from f1recorder.session.detector import DEFAULT_FILENAME, SessionDetector, SessionInfo
from f1recorder.shared.errors import ConfigurationError, DetectionTimeout, StateError, TelemetryIOError
from f1recorder.shared.packet_queue import QueueClosed
from f1recorder.shared.types import ReceiverStats, RecorderStats
from f1recorder.telemetry.monitor import TelemetryMonitor
from f1recorder.telemetry.packet import CapturedPacket
from f1recorder.telemetry.packet_parser import TelemetryData
from f1recorder.telemetry.receiver import Receiver, ReceiverConfig
from f1recorder.utils.config import AppConfig

logger = logging.getLogger(__name__)


class CaptureSession:
    """
    Records live telemetry into a file named after the detected session.

    Flow:
        start(): Receiver up → detect session (or time out) → Recorder up
                 → buffered packets written → recording thread started
        stop():  Receiver down → recording thread drains queue → Recorder down
    """

    def __init__(self, config: AppConfig, session_name: Optional[str] = None):
        """
        Args:
            config: Validated on start()
            session_name: Use this name instead of detecting one
        """
        self.config = config
        self.session_name = session_name
        self.session_info: Optional[SessionInfo] = None

        self.receiver: Optional[Receiver] = None
        self.recorder: Optional[Recorder] = None
        self.monitor = TelemetryMonitor()

        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._record_errors = 0
        self._last_error: Optional[BaseException] = None

    def start(self):
        """
        Start receiving, detect the session and begin recording.

        Blocks for up to config.detection_timeout_s while detecting.

        Raises:
            ConfigurationError, TelemetryIOError, StateError: from the
            config check or the components; nothing is left running
        """
        if self.receiver is not None:
            raise StateError("CaptureSession already started")

        self.config.validate()
        if not self.config.auto_create_dir and not os.path.isdir(self.config.recording_dir):
            raise ConfigurationError(f"Recording directory does not exist: {self.config.recording_dir}")

        self.receiver = Receiver(ReceiverConfig(
            address=self.config.bind_address,
            port=self.config.udp_port,
            buffer_size=self.config.buffer_size,
            read_timeout=self.config.read_timeout_ms / 1000.0,
        ))
        self.receiver.start()

        try:
            buffered = self._detect_session()
            name = self.session_name or self.session_info.generate_filename()
            path = os.path.join(
                self.config.recording_dir,
                recording_filename(name, time_format=self.config.timestamp_format),
            )
            self.recorder = Recorder(self.config.recording_dir, name, output_path=path)
            self.recorder.start()
        except BaseException:
            self.receiver.stop()
            raise

        for packet in buffered:
            self._record(packet)

        self._thread = threading.Thread(target=self._record_loop, name='f1-capture', daemon=True)
        self._thread.start()

    def _detect_session(self) -> List[CapturedPacket]:
        """Collect packets until the session is known. Returns them for recording."""
        timeout = self.config.detection_timeout_s
        deadline = time.monotonic() + timeout
        buffered: List[CapturedPacket] = []

        detector = SessionDetector()
        detector.start()
        logger.info("Waiting for telemetry data to detect session info...")

        while not detector.done:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                packet = self.receiver.packets.get(timeout=min(remaining, 0.1))
            except QueueClosed:
                detector.close()  # Receiver stopped, no more input
                break
            if packet is None:
                continue
            buffered.append(packet)
            self.monitor.update(packet)
            detector.feed(packet.payload)

        try:
            self.session_info = detector.result(timeout=max(0.0, deadline - time.monotonic()))
        except DetectionTimeout:
            logger.warning(f"Timeout waiting for session data after {timeout:.0f}s. Using default name.")
            self.session_info = SessionInfo()

        if self.session_info.has_info:
            logger.info(f"Session detected: {self.session_info.describe()}")
        else:
            logger.warning(f"Could not detect session info, using '{DEFAULT_FILENAME}'")

        return buffered

    def _record_loop(self):
        # Ends when the receiver stops and its queue is drained
        for packet in self.receiver.packets:
            self.monitor.update(packet)
            self._record(packet)

    def _record(self, packet: CapturedPacket):
        try:
            self.recorder.record_packet(packet)
        except TelemetryIOError as e:
            logger.error(f"Error recording packet: {e}")
            with self._lock:
                self._record_errors += 1
                self._last_error = e

    def stop(self):
        """Stop receiving, finish writing queued packets and close the file. Idempotent."""
        if self.receiver is not None:
            self.receiver.stop()
        if self._thread is not None:
            self._thread.join()
        if self.recorder is not None:
            self.recorder.stop()

    def stats(self) -> Tuple[ReceiverStats, RecorderStats]:
        receiver_stats = self.receiver.stats() if self.receiver else ReceiverStats()
        recorder_stats = self.recorder.stats() if self.recorder else RecorderStats()
        return receiver_stats, recorder_stats

    @property
    def output_path(self) -> Optional[str]:
        return self.recorder.output_path if self.recorder else None

    @property
    def latest_telemetry(self) -> Optional[TelemetryData]:
        return self.monitor.latest

    @property
    def record_errors(self) -> int:
        with self._lock:
            return self._record_errors

    @property
    def last_error(self) -> Optional[BaseException]:
        """Last recording failure, or the receiver's fatal error."""
        with self._lock:
            if self._last_error is not None:
                return self._last_error
        return self.receiver.last_error if self.receiver else None
