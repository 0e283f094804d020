"""
Error types shared by every component.

Start-up failures are raised to the caller. Per-packet failures in the
background loops are counted in the stats instead, and fatal background
failures are kept in the component's ``last_error``.
"""


class TelemetryError(Exception):
    """Base class for all recorder/player errors."""


class ConfigurationError(TelemetryError, ValueError):
    """Invalid configuration value (bind address, port, speed, ...)."""


class TelemetryIOError(TelemetryError, OSError):
    """Filesystem or socket failure."""


class ProtocolError(TelemetryError, ValueError):
    """Packet too short to hold the common header."""


class FormatError(TelemetryError, ValueError):
    """Recording file has a bad magic, unsupported version or truncated entry."""


class StateError(TelemetryError, RuntimeError):
    """Operation not valid in the component's current state."""


class DetectionTimeout(TelemetryError, TimeoutError):
    """Session detection window elapsed before both packet kinds arrived."""
