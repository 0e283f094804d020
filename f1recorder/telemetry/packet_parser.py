"""
F1 Packet Parser

Decodes the player's car from Car Telemetry (ID 6) and Car Status (ID 7)
packets for live display while recording or replaying. Recording and
replay never depend on this decode; packets are stored untouched.

See the F1 25 UDP specification for the full protocol.
"""

import struct
import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from f1recorder.shared.errors import ProtocolError
from f1recorder.telemetry.layouts import layout_for
from f1recorder.telemetry.packet import PacketType, decode_header

logger = logging.getLogger(__name__)


@dataclass
class TelemetryData:
    """
    Display values for the player's car.

    Speed in km/h, throttle/brake 0.0-1.0, gear -1 (R) / 0 (N) / 1-8,
    temperatures in °C, tyre pressures in PSI, fuel in kg, ERS in joules.
    Tyre tuples are ordered RL, RR, FL, FR as the game sends them.
    """

    speed: float = 0.0
    throttle: float = 0.0
    brake: float = 0.0
    gear: int = 0
    engine_rpm: int = 0
    drs: int = 0
    engine_temperature: int = 0
    tyre_surface_temperatures: Tuple[int, int, int, int] = (0, 0, 0, 0)
    tyre_pressures: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    fuel_in_tank: float = 0.0
    ers_store_energy: float = 0.0
    ers_deploy_mode: int = 0

    def __str__(self):
        return (
            f"TelemetryData("
            f"speed={self.speed:.0f}km/h, gear={self.gear}, rpm={self.engine_rpm}, "
            f"thr={self.throttle:.2f}, brk={self.brake:.2f}, drs={self.drs}, "
            f"fuel={self.fuel_in_tank:.1f}kg, ers={self.ers_store_energy / 1e6:.2f}MJ)"
        )


class PacketParser:
    """
    Parses Car Telemetry and Car Status packets for one car.

    Other packet types are ignored (None is returned).
    """

    # Car telemetry per car: 60 bytes
    # speed, throttle, steer, brake, clutch, gear, rpm, drs, rev %, rev bits,
    # brake temps[4], tyre surface[4], tyre inner[4], engine temp,
    # tyre pressures[4], surface type[4]
    CAR_TELEMETRY_FORMAT = '<HfffBbHBBH4H4B4BH4f4B'
    CAR_TELEMETRY_SIZE = struct.calcsize(CAR_TELEMETRY_FORMAT)  # 60

    # Car status per car, fields up to ERS deploy mode: 42 bytes
    # traction control, ABS, fuel mix, brake bias, pit limiter,
    # fuel in tank, fuel capacity, fuel laps, max rpm, idle rpm, max gears,
    # drs allowed, drs distance, actual/visual compound, tyre age, FIA flags,
    # ICE power, MGU-K power, ERS store energy, ERS deploy mode
    CAR_STATUS_FORMAT = '<BBBBBfffHHBBHBBBbfffB'
    CAR_STATUS_SIZE = struct.calcsize(CAR_STATUS_FORMAT)  # 42

    # Number of cars in packet
    MAX_CARS = 22

    def __init__(self):
        self._packets_parsed = 0
        self._invalid_packets = 0

    def parse_car_telemetry(self, data: bytes, car_index: int) -> Optional[TelemetryData]:
        """
        Parse a Car Telemetry packet for the given car.

        Returns TelemetryData, or None if not a car telemetry packet or
        the packet is too short.
        """
        header = self._header(data)
        if header is None or header.packet_id != PacketType.CAR_TELEMETRY:
            return None

        layout = layout_for(header.packet_format)
        offset = self._car_offset(data, car_index, layout.car_telemetry_stride, layout.header_size)
        if offset is None:
            return None

        values = struct.unpack_from(self.CAR_TELEMETRY_FORMAT, data, offset)

        self._packets_parsed += 1
        return TelemetryData(
            speed=float(values[0]),
            throttle=values[1],
            brake=values[3],
            gear=values[5],
            engine_rpm=values[6],
            drs=values[7],
            tyre_surface_temperatures=tuple(values[14:18]),
            engine_temperature=values[22],
            tyre_pressures=tuple(values[23:27]),
        )

    def parse_car_status(self, data: bytes, car_index: int) -> Optional[TelemetryData]:
        """
        Parse a Car Status packet for the given car.

        Only fuel, DRS and ERS are filled in; the other fields stay at zero.
        """
        header = self._header(data)
        if header is None or header.packet_id != PacketType.CAR_STATUS:
            return None

        layout = layout_for(header.packet_format)
        offset = self._car_offset(data, car_index, layout.car_status_stride, layout.header_size)
        if offset is None:
            return None

        values = struct.unpack_from(self.CAR_STATUS_FORMAT, data, offset)

        self._packets_parsed += 1
        return TelemetryData(
            fuel_in_tank=values[5],
            drs=values[11],
            ers_store_energy=values[19],
            ers_deploy_mode=values[20],
        )

    def parse(self, data: bytes, car_index: int) -> Optional[TelemetryData]:
        """Parse whichever of the two display packet kinds data is."""
        if len(data) > 6 and data[6] == PacketType.CAR_STATUS:
            return self.parse_car_status(data, car_index)
        return self.parse_car_telemetry(data, car_index)

    def _header(self, data: bytes):
        try:
            return decode_header(data)
        except ProtocolError as e:
            logger.debug(f"Invalid packet: {e}")
            self._invalid_packets += 1
            return None

    def _car_offset(self, data: bytes, car_index: int, stride: int, header_size: int) -> Optional[int]:
        if car_index >= self.MAX_CARS:
            logger.warning(f"Invalid player_car_index: {car_index}")
            self._invalid_packets += 1
            return None

        offset = header_size + car_index * stride
        if len(data) < offset + stride:
            logger.debug(f"Packet too short: {len(data)} < {offset + stride}")
            self._invalid_packets += 1
            return None
        return offset

    @property
    def stats(self) -> dict:
        """Return parsing statistics."""
        return {
            'packets_parsed': self._packets_parsed,
            'invalid_packets': self._invalid_packets,
        }


def merge_telemetry(base: Optional[TelemetryData], new: Optional[TelemetryData]) -> TelemetryData:
    """
    Fold a partial TelemetryData into the running display state.

    Car telemetry and car status packets each fill only part of the
    fields, and zero values are treated as "not present in this packet".
    Returns a new object; neither argument is modified.
    """
    if base is None:
        return replace(new) if new is not None else TelemetryData()
    if new is None:
        return replace(base)

    merged = replace(base)

    # Car telemetry values arrive together
    if new.speed > 0:
        merged.speed = new.speed
        merged.throttle = new.throttle
        merged.brake = new.brake
        merged.gear = new.gear
        merged.engine_rpm = new.engine_rpm

    if new.engine_temperature > 0:
        merged.engine_temperature = new.engine_temperature

    if any(t > 0 for t in new.tyre_surface_temperatures):
        merged.tyre_surface_temperatures = new.tyre_surface_temperatures
        merged.tyre_pressures = new.tyre_pressures

    # Car status values arrive together
    if new.fuel_in_tank > 0:
        merged.fuel_in_tank = new.fuel_in_tank
        merged.ers_store_energy = new.ers_store_energy
        merged.ers_deploy_mode = new.ers_deploy_mode
        merged.drs = new.drs

    return merged
