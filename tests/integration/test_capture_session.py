"""
Capture Session Integration Tests

Drives a CaptureSession over loopback UDP: session detection, buffered
packets, file naming and shutdown.

Run: pytest tests/integration/test_capture_session.py -v
"""

import os
import socket
import threading

import pytest

from conftest import build_packet, wait_until
from f1recorder.capture import CaptureSession
from f1recorder.recording.file_format import read_recording
from f1recorder.shared.errors import ConfigurationError, StateError
from f1recorder.utils.config import AppConfig


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


# =============================================================================
# TEST FIXTURES
# =============================================================================

@pytest.fixture
def config(tmp_path):
    return AppConfig(
        udp_port=free_port(),
        bind_address='127.0.0.1',
        read_timeout_ms=20,
        recording_dir=str(tmp_path / "recordings"),
        detection_timeout_s=3.0,
    )


@pytest.fixture
def capture(config):
    session = CaptureSession(config)
    yield session
    session.stop()


def start_in_background(session):
    """Run session.start() on a thread; returns (thread, errors)."""
    errors = []

    def _start():
        try:
            session.start()
        except Exception as e:
            errors.append(e)

    thread = threading.Thread(target=_start)
    thread.start()
    assert wait_until(lambda: session.receiver is not None and session.receiver.is_running)
    return thread, errors


# =============================================================================
# DETECTION TESTS
# =============================================================================

class TestCaptureSession:
    """Tests for the full capture flow."""

    def test_detected_name_and_all_packets_recorded(self, capture, config, sender,
                                                    session_packet, participants_packet):
        """Packets seen during detection are recorded before later ones."""
        address = ('127.0.0.1', config.udp_port)
        starter, errors = start_in_background(capture)

        early = [
            build_packet(packet_id=6, frame=1),
            session_packet(session_type=15, track_id=5),
            participants_packet(["Max Verstappen!!"]),
        ]
        for packet in early:
            sender.sendto(packet, address)
        starter.join(timeout=5.0)
        assert errors == []

        late = [build_packet(packet_id=6, frame=f) for f in range(2, 5)]
        for packet in late:
            sender.sendto(packet, address)
        assert wait_until(lambda: capture.stats()[1].packets_recorded == 6)

        capture.stop()

        assert capture.session_info.has_info
        assert capture.output_path.endswith("_Monaco_Race_Max_Verstappen.f1tr")
        assert os.path.dirname(capture.output_path) == config.recording_dir

        _, entries = read_recording(capture.output_path)
        assert [e.payload for e in entries] == early + late
        assert capture.last_error is None

    def test_detection_timeout_uses_default_name(self, config):
        config.detection_timeout_s = 0.2
        session = CaptureSession(config)

        session.start()
        session.stop()

        assert not session.session_info.has_info
        assert session.output_path.endswith("_session.f1tr")
        assert os.path.getsize(session.output_path) == 46

    def test_given_name_overrides_detection(self, config):
        config.detection_timeout_s = 0.2
        session = CaptureSession(config, session_name="Setup_Test")
        try:
            session.start()
        finally:
            session.stop()
        assert session.output_path.endswith("_Setup_Test.f1tr")

    def test_timestamp_format_used(self, config):
        config.detection_timeout_s = 0.1
        config.timestamp_format = "%Y%m%d"
        session = CaptureSession(config)
        session.start()
        session.stop()
        name = os.path.basename(session.output_path)
        assert len(name.split("_")[0]) == 8

    def test_stop_is_idempotent(self, config):
        config.detection_timeout_s = 0.1
        session = CaptureSession(config)
        session.start()
        session.stop()
        session.stop()
        assert not session.receiver.is_running


# =============================================================================
# START FAILURE TESTS
# =============================================================================

class TestStartFailures:
    """Tests for start() validation."""

    def test_missing_directory_without_auto_create(self, config):
        config.auto_create_dir = False
        with pytest.raises(ConfigurationError):
            CaptureSession(config).start()

    def test_invalid_config(self, config):
        config.udp_port = 0
        with pytest.raises(ConfigurationError):
            CaptureSession(config).start()

    def test_start_twice(self, config):
        config.detection_timeout_s = 0.1
        session = CaptureSession(config)
        session.start()
        try:
            with pytest.raises(StateError):
                session.start()
        finally:
            session.stop()

    def test_stop_before_start(self, config):
        CaptureSession(config).stop()
