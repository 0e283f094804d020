"""
Command Line Tests

Runs main() with argument lists against temporary config files and
recordings.

Run: pytest tests/test_cli.py -v
"""

import os
import socket

import pytest
import yaml

from conftest import build_packet, write_recording
from f1recorder.main import build_parser, main


# =============================================================================
# TEST FIXTURES
# =============================================================================

@pytest.fixture
def recording_dir(tmp_path):
    path = tmp_path / "recordings"
    path.mkdir()
    return path


@pytest.fixture
def config_path(tmp_path, recording_dir):
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump({
        'recording_dir': str(recording_dir),
        'bind_address': '127.0.0.1',
        'detection_timeout_s': 0.2,
        'read_timeout_ms': 20,
    }))
    return str(path)


@pytest.fixture
def monaco_recording(recording_dir, session_packet, participants_packet):
    base = 1_700_000_000_000_000_000
    entries = [
        (base, session_packet()),
        (base + 10_000_000, participants_packet(["Max Verstappen"])),
        (base + 20_000_000, build_packet(packet_id=6, frame=1)),
        (base + 30_000_000, build_packet(packet_id=6, frame=2)),
    ]
    return write_recording(recording_dir / "2025-06-01_14-03-22_Monaco_Race.f1tr", entries)


# =============================================================================
# PARSER TESTS
# =============================================================================

class TestBuildParser:
    """Tests for argument parsing."""

    def test_play_options(self):
        args = build_parser().parse_args(["play", "race.f1tr", "--speed", "2", "--port", "30000"])
        assert args.file == "race.f1tr"
        assert args.speed == 2.0
        assert args.port == 30000
        assert args.target is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


# =============================================================================
# COMMAND TESTS
# =============================================================================

class TestCommands:
    """Tests for each subcommand."""

    def test_list_empty(self, config_path, capsys):
        assert main(["--config", config_path, "list"]) == 0
        assert "No recordings found" in capsys.readouterr().out

    def test_list(self, config_path, monaco_recording, capsys):
        assert main(["--config", config_path, "list"]) == 0
        assert "2025-06-01_14-03-22_Monaco_Race.f1tr" in capsys.readouterr().out

    def test_inspect(self, config_path, monaco_recording, capsys):
        assert main(["--config", config_path, "inspect", monaco_recording, "--limit", "2"]) == 0

        out = capsys.readouterr().out
        assert "Entries:   4" in out
        assert "Track: Monaco" in out
        assert "Car Telemetry" in out
        assert "Participants" in out

    def test_inspect_not_a_recording(self, config_path, tmp_path):
        path = tmp_path / "bogus.f1tr"
        path.write_bytes(b'NOPE' + b'\x00' * 60)
        assert main(["--config", config_path, "inspect", str(path)]) == 1

    def test_inspect_missing_file(self, config_path, tmp_path):
        assert main(["--config", config_path, "inspect", str(tmp_path / "missing.f1tr")]) == 1

    def test_config_show_and_save(self, tmp_path, capsys):
        path = str(tmp_path / "new" / "settings.yaml")

        assert main(["--config", path, "config", "--save"]) == 0

        assert "udp_port: 20777" in capsys.readouterr().out
        with open(path) as f:
            assert yaml.safe_load(f)['udp_port'] == 20777

    def test_invalid_config_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("udp_port: 99999\n")
        assert main(["--config", str(path), "list"]) == 1

    def test_play(self, config_path, monaco_recording, collector):
        port = collector.sock.getsockname()[1]

        assert main(["--config", config_path, "play", monaco_recording,
                     "--port", str(port), "--speed", "4"]) == 0
        assert collector.wait_for(4)

    def test_play_truncated_recording(self, config_path, monaco_recording, collector):
        with open(monaco_recording, 'ab') as f:
            f.write(b'\x00\x01')
        port = collector.sock.getsockname()[1]

        assert main(["--config", config_path, "play", monaco_recording, "--port", str(port)]) == 1

    def test_record_for_duration(self, config_path, recording_dir):
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.bind(('127.0.0.1', 0))
            port = s.getsockname()[1]
        with open(config_path, 'a') as f:
            f.write(f"udp_port: {port}\n")

        assert main(["--config", config_path, "record", "--name", "Test", "--duration", "0.2"]) == 0

        names = os.listdir(recording_dir)
        assert len(names) == 1
        assert names[0].endswith("_Test.f1tr")
