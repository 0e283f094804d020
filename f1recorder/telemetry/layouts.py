"""
Packet Layouts

Byte offsets for the packet kinds this project reads, keyed by the
``packet_format`` field of the header (2025 for F1 25).

Adding support for another game version means adding an entry to
LAYOUTS, not another branch in the decoders.
"""

import logging
from dataclasses import dataclass
from typing import Dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PacketLayout:
    """
    Fixed offsets for one packet format.

    Session offsets are relative to the end of the header. Participant
    and car offsets are absolute (header included) or per-car strides.
    """

    packet_format: int
    header_size: int = 29

    # Session packet (ID 1)
    session_min_size: int = 100
    session_weather_offset: int = 0
    session_type_offset: int = 6
    session_track_id_offset: int = 7

    # Participants packet (ID 4): numActiveCars byte, then one record per car
    participants_first_offset: int = 30
    participant_stride: int = 58
    participant_name_offset: int = 48
    participant_name_size: int = 32

    # Car telemetry (ID 6) / car status (ID 7), one record per car
    car_telemetry_stride: int = 60
    car_status_stride: int = 58

    def participant_offset(self, car_index: int) -> int:
        """Absolute offset of a car's participant record."""
        return self.participants_first_offset + car_index * self.participant_stride


DEFAULT_PACKET_FORMAT = 2025

LAYOUTS: Dict[int, PacketLayout] = {
    2025: PacketLayout(packet_format=2025),
}


def layout_for(packet_format: int) -> PacketLayout:
    """Return the layout for a packet format, falling back to the default one."""
    layout = LAYOUTS.get(packet_format)
    if layout is None:
        logger.debug(f"No layout for packet format {packet_format}, using {DEFAULT_PACKET_FORMAT}")
        layout = LAYOUTS[DEFAULT_PACKET_FORMAT]
    return layout
