"""
F1 Packet Header

Every packet the game sends starts with the same 29-byte header.
See the F1 25 UDP specification for the full protocol.

Usage:
    from f1recorder.telemetry.packet import decode_header

    header = decode_header(data)
    print(header.packet_id, header.player_car_index)
"""

import struct
from dataclasses import dataclass
from enum import IntEnum

from f1recorder.shared.errors import ProtocolError


# F1 25 Header: 29 bytes
# <HBBBBBQfIIBB = uint16, 5×uint8, uint64, float, 2×uint32, 2×uint8
HEADER_FORMAT = '<HBBBBBQfIIBB'
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 29

_HEADER_STRUCT = struct.Struct(HEADER_FORMAT)


class PacketType(IntEnum):
    """Packet IDs carried in the header's packet_id byte."""
    MOTION = 0
    SESSION = 1
    LAP_DATA = 2
    EVENT = 3
    PARTICIPANTS = 4
    CAR_SETUPS = 5
    CAR_TELEMETRY = 6
    CAR_STATUS = 7
    FINAL_CLASSIFICATION = 8
    LOBBY_INFO = 9
    CAR_DAMAGE = 10
    SESSION_HISTORY = 11
    TYRE_SETS = 12
    MOTION_EX = 13


_PACKET_TYPE_NAMES = {
    PacketType.MOTION: "Motion",
    PacketType.SESSION: "Session",
    PacketType.LAP_DATA: "Lap Data",
    PacketType.EVENT: "Event",
    PacketType.PARTICIPANTS: "Participants",
    PacketType.CAR_SETUPS: "Car Setups",
    PacketType.CAR_TELEMETRY: "Car Telemetry",
    PacketType.CAR_STATUS: "Car Status",
    PacketType.FINAL_CLASSIFICATION: "Final Classification",
    PacketType.LOBBY_INFO: "Lobby Info",
    PacketType.CAR_DAMAGE: "Car Damage",
    PacketType.SESSION_HISTORY: "Session History",
    PacketType.TYRE_SETS: "Tyre Sets",
    PacketType.MOTION_EX: "Motion Ex",
}


def packet_type_name(packet_id: int) -> str:
    """Human-readable name for a packet ID, "Unknown" if not recognised."""
    return _PACKET_TYPE_NAMES.get(packet_id, "Unknown")


@dataclass(frozen=True)
class PacketHeader:
    """Common header shared by every F1 telemetry packet."""

    packet_format: int
    game_year: int
    game_major_version: int
    game_minor_version: int
    packet_version: int
    packet_id: int
    session_uid: int
    session_time: float
    frame_identifier: int
    overall_frame_identifier: int
    player_car_index: int
    secondary_player_car_index: int

    def to_bytes(self) -> bytes:
        """Pack the header back into its 29-byte wire form."""
        return _HEADER_STRUCT.pack(
            self.packet_format,
            self.game_year,
            self.game_major_version,
            self.game_minor_version,
            self.packet_version,
            self.packet_id,
            self.session_uid,
            self.session_time,
            self.frame_identifier,
            self.overall_frame_identifier,
            self.player_car_index,
            self.secondary_player_car_index,
        )

    @property
    def type_name(self) -> str:
        return packet_type_name(self.packet_id)


@dataclass(frozen=True)
class CapturedPacket:
    """
    A packet together with the time it was received.

    receive_timestamp is nanoseconds since the Unix epoch. payload is the
    complete datagram, header included, exactly as it came off the wire.
    """

    receive_timestamp: int
    payload: bytes
    header: PacketHeader


def decode_header(data: bytes) -> PacketHeader:
    """
    Decode the 29-byte header at the start of a packet.

    Raises:
        ProtocolError: if data is shorter than the header
    """
    if len(data) < HEADER_SIZE:
        raise ProtocolError(f"Packet too short for header: {len(data)} < {HEADER_SIZE} bytes")

    return PacketHeader(*_HEADER_STRUCT.unpack_from(data, 0))
