"""
F1 Telemetry Recorder

Captures F1 game UDP telemetry to .f1tr recording files and replays
them over UDP with the original packet timing.
"""

__version__ = "1.0.0"
__author__ = "F1 Telemetry Recorder Team"
