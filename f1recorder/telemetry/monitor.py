"""
Telemetry Monitor

Keeps the most recent display values for the player's car from a stream
of CapturedPackets. Display code polls `latest` at its own rate.
"""

import logging
import threading
from typing import Iterable, Optional

from f1recorder.telemetry.packet import CapturedPacket, PacketType
from f1recorder.telemetry.packet_parser import PacketParser, TelemetryData, merge_telemetry

logger = logging.getLogger(__name__)

_DISPLAY_PACKETS = (PacketType.CAR_TELEMETRY, PacketType.CAR_STATUS)


class TelemetryMonitor:
    """Merges Car Telemetry and Car Status packets into one TelemetryData."""

    def __init__(self):
        self.parser = PacketParser()
        self._lock = threading.Lock()
        self._latest: Optional[TelemetryData] = None
        self._thread: Optional[threading.Thread] = None

    def update(self, packet: CapturedPacket):
        """Fold one packet into the display state; other packet types are ignored."""
        header = packet.header
        if header.packet_id not in _DISPLAY_PACKETS:
            return

        data = self.parser.parse(packet.payload, header.player_car_index)
        if data is None:
            return

        with self._lock:
            self._latest = merge_telemetry(self._latest, data)

    def follow(self, packets: Iterable[CapturedPacket]):
        """Consume packets on a background thread until the iterable ends."""
        self._thread = threading.Thread(
            target=self._follow, args=(packets,), name='f1-monitor', daemon=True
        )
        self._thread.start()

    def _follow(self, packets: Iterable[CapturedPacket]):
        for packet in packets:
            self.update(packet)
        logger.debug(f"Telemetry monitor finished: {self.parser.stats}")

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def latest(self) -> Optional[TelemetryData]:
        """Most recent merged values, None until a display packet arrived."""
        with self._lock:
            return self._latest
