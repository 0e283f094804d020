"""
Configuration Utilities

Loads and saves the recorder configuration (config/settings.yaml by
default). JSON files are read and written as JSON, everything else as YAML.
"""

import os
import json
import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

import yaml

from f1recorder.shared.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join("config", "settings.yaml")


@dataclass
class AppConfig:
    """Settings shared by the capture and playback commands."""

    # Network
    udp_port: int = 20777              # F1 25 default UDP port
    bind_address: str = "0.0.0.0"
    buffer_size: int = 65536
    read_timeout_ms: int = 100

    # Recording
    recording_dir: str = "./recordings"
    auto_create_dir: bool = True
    timestamp_format: str = "%Y-%m-%d_%H-%M-%S"
    detection_timeout_s: float = 30.0

    # Playback
    playback_speed: float = 1.0        # 1.0 = real time, 2.0 = 2x
    target_address: str = "127.0.0.1"

    def validate(self):
        """
        Check the values before any component is started.

        Raises:
            ConfigurationError: describing the first invalid value
        """
        if not isinstance(self.udp_port, int) or not 1 <= self.udp_port <= 65535:
            raise ConfigurationError(f"Invalid UDP port: {self.udp_port} (must be 1-65535)")
        if not self.recording_dir:
            raise ConfigurationError("Recording directory cannot be empty")
        if self.buffer_size < 1024:
            raise ConfigurationError(f"Buffer size too small: {self.buffer_size} (minimum 1024)")
        if self.read_timeout_ms <= 0:
            raise ConfigurationError(f"Invalid read timeout: {self.read_timeout_ms} ms (must be > 0)")
        if self.detection_timeout_s <= 0:
            raise ConfigurationError(f"Invalid detection timeout: {self.detection_timeout_s} s (must be > 0)")
        if not self.playback_speed > 0:
            raise ConfigurationError(f"Invalid playback speed: {self.playback_speed} (must be > 0)")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppConfig':
        """Build a config from a dict; missing keys keep their defaults."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load configuration from file, or return defaults if it does not exist.

    Args:
        config_path: Path to config file. If None, uses config/settings.yaml

    Raises:
        ConfigurationError: the file exists but cannot be read or parsed
    """
    config_path = config_path or DEFAULT_CONFIG_PATH

    if not os.path.exists(config_path):
        logger.info("No config file found. Using defaults.")
        return AppConfig()

    logger.info(f"Loading config from {config_path}")
    try:
        with open(config_path, 'r') as f:
            if config_path.endswith('.json'):
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config {config_path}: {e}") from e

    if data is None:
        return AppConfig()
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {config_path} must contain a mapping")

    return AppConfig.from_dict(data)


def save_config(config: AppConfig, config_path: Optional[str] = None):
    """
    Save configuration to file.

    Args:
        config: Configuration to save
        config_path: Path to save to (default config/settings.yaml)
    """
    config_path = config_path or DEFAULT_CONFIG_PATH

    directory = os.path.dirname(config_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(config_path, 'w') as f:
        if config_path.endswith('.json'):
            json.dump(config.to_dict(), f, indent=2)
        else:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)

    logger.info(f"Config saved to {config_path}")
