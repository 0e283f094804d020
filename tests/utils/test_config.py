"""
Unit Tests for Configuration Loading

Test Design Techniques Used:
    - Equivalence partitioning (YAML/JSON/missing/invalid files)
    - Boundary value analysis (port and speed limits)

Run: pytest tests/utils/test_config.py -v
"""

import json

import pytest

from f1recorder.shared.errors import ConfigurationError
from f1recorder.utils.config import AppConfig, load_config, save_config


# =============================================================================
# DEFAULTS AND VALIDATION TESTS
# =============================================================================

class TestAppConfig:
    """Tests for AppConfig defaults and validate()."""

    def test_defaults(self):
        config = AppConfig()
        assert config.udp_port == 20777
        assert config.recording_dir == "./recordings"
        assert config.playback_speed == 1.0
        assert config.detection_timeout_s == 30.0
        config.validate()

    @pytest.mark.parametrize("changes", [
        {'udp_port': 0},
        {'udp_port': 65536},
        {'udp_port': "20777"},
        {'recording_dir': ""},
        {'buffer_size': 512},
        {'read_timeout_ms': 0},
        {'detection_timeout_s': -1},
        {'playback_speed': 0},
    ])
    def test_invalid_values(self, changes):
        config = AppConfig(**changes)
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_port_limits_valid(self):
        AppConfig(udp_port=1).validate()
        AppConfig(udp_port=65535).validate()

    def test_from_dict_ignores_unknown_keys(self):
        config = AppConfig.from_dict({'udp_port': 30000, 'motion_scale': 2})
        assert config.udp_port == 30000
        assert not hasattr(config, 'motion_scale')


# =============================================================================
# LOAD / SAVE TESTS
# =============================================================================

class TestLoadConfig:
    """Tests for load_config() and save_config()."""

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "none.yaml")) == AppConfig()

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("udp_port: 30001\nrecording_dir: /data/f1\nplayback_speed: 2.5\n")

        config = load_config(str(path))

        assert config.udp_port == 30001
        assert config.recording_dir == "/data/f1"
        assert config.playback_speed == 2.5
        assert config.bind_address == "0.0.0.0"

    def test_load_json(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({'target_address': '192.168.1.50'}))
        assert load_config(str(path)).target_address == '192.168.1.50'

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")
        assert load_config(str(path)) == AppConfig()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("udp_port: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    @pytest.mark.parametrize("name", ["settings.yaml", "settings.json"])
    def test_save_then_load(self, tmp_path, name):
        path = str(tmp_path / "config" / name)
        config = AppConfig(udp_port=30002, auto_create_dir=False, detection_timeout_s=5.0)

        save_config(config, path)

        assert load_config(path) == config
