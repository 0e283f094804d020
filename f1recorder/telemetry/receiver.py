"""
UDP Telemetry Receiver

Receives raw UDP packets from the F1 game (port 20777 by default) on a
background thread and publishes them, timestamped and with their header
decoded, to a bounded queue.

The receive loop never waits for the consumer: if the queue is full the
packet is dropped and counted as an error. Reads use a short timeout so
stop() is noticed promptly.

Usage:
    from f1recorder.telemetry.receiver import Receiver, ReceiverConfig

    receiver = Receiver(ReceiverConfig(port=20777))
    receiver.start()
    for packet in receiver.packets:
        handle(packet)
    ...
    receiver.stop()
"""

import socket
import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from f1recorder.shared.errors import ConfigurationError, ProtocolError, StateError, TelemetryIOError
from f1recorder.shared.packet_queue import PacketQueue
from f1recorder.shared.types import ReceiverStats
from f1recorder.telemetry.packet import CapturedPacket, decode_header

logger = logging.getLogger(__name__)

# F1 game default settings
DEFAULT_PORT = 20777
DEFAULT_ADDRESS = '0.0.0.0'
BUFFER_SIZE = 65536


@dataclass
class ReceiverConfig:
    """Configuration for the UDP receiver."""
    address: str = DEFAULT_ADDRESS
    port: int = DEFAULT_PORT
    buffer_size: int = BUFFER_SIZE   # SO_RCVBUF and max datagram read
    read_timeout: float = 0.1        # seconds per recvfrom() before checking for stop
    queue_size: int = 100


class Receiver:
    """
    Listens for F1 telemetry UDP packets on a background thread.

    A Receiver runs once: after stop() (or a fatal socket error) a new
    instance is needed. Fatal errors are kept in last_error.
    """

    def __init__(self, config: Optional[ReceiverConfig] = None):
        self.config = config or ReceiverConfig()
        self._packets: PacketQueue[CapturedPacket] = PacketQueue(self.config.queue_size)
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stopped = False
        self._stats = ReceiverStats()
        self._last_error: Optional[BaseException] = None
        self._address: Optional[Tuple[str, int]] = None

    def start(self):
        """
        Bind the socket and start the receive thread.

        Raises:
            StateError: already running, or already stopped
            ConfigurationError: invalid bind address or port
            TelemetryIOError: socket could not be bound (e.g. port in use)
        """
        with self._lock:
            if self._running:
                raise StateError("Receiver already running")
            if self._stopped:
                raise StateError("Receiver has been stopped; create a new one")

            self._socket = self._bind()
            self._address = self._socket.getsockname()
            self._running = True
            self._stats = ReceiverStats(start_time=time.time())

            self._thread = threading.Thread(
                target=self._receive_loop, name='f1-receiver', daemon=True
            )
            self._thread.start()

        logger.info(f"Listening for telemetry on {self._address[0]}:{self._address[1]}")

    def stop(self):
        """
        Stop receiving. Idempotent and safe to call from any thread.

        The queue is closed only after the receive thread has exited.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stopped = True
            self._stop_event.set()
            sock = self._socket
            thread = self._thread

        # Closing the socket wakes a pending recvfrom()
        if sock is not None:
            sock.close()
        if thread is not None and thread is not threading.current_thread():
            thread.join()

        self._packets.close()
        logger.info(f"Receiver stopped. {self.stats()}")

    def _bind(self) -> socket.socket:
        address, port = self.config.address, self.config.port
        if not isinstance(port, int) or not 0 <= port <= 65535:
            raise ConfigurationError(f"Invalid UDP port: {port!r} (must be 0-65535)")

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as e:
            raise TelemetryIOError(f"Failed to create UDP socket: {e}") from e

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, self.config.buffer_size)
            sock.settimeout(self.config.read_timeout)
            sock.bind((address, port))
        except (socket.gaierror, TypeError, OverflowError) as e:
            sock.close()
            raise ConfigurationError(f"Invalid bind address {address!r}:{port}: {e}") from e
        except OSError as e:
            sock.close()
            raise TelemetryIOError(f"Failed to bind UDP socket on {address}:{port}: {e}") from e

        return sock

    def _receive_loop(self):
        sock = self._socket
        failed = False

        try:
            while not self._stop_event.is_set():
                try:
                    data, _ = sock.recvfrom(self.config.buffer_size)
                except socket.timeout:
                    continue  # Normal, check for stop and keep reading
                except OSError as e:
                    if self._stop_event.is_set():
                        break  # Socket closed by stop()
                    self._increment_errors()
                    if sock.fileno() == -1:
                        self._fail(e)
                        failed = True
                        break
                    logger.debug(f"Socket error: {e}")
                    continue

                if data:
                    self._process_packet(data, time.time_ns())
        finally:
            # stop() closes the queue itself after joining
            if failed:
                self._packets.close()

    def _process_packet(self, data: bytes, received_at: int):
        try:
            header = decode_header(data)
        except ProtocolError as e:
            logger.debug(f"Discarding packet: {e}")
            self._increment_errors()
            return

        packet = CapturedPacket(receive_timestamp=received_at, payload=data, header=header)

        with self._lock:
            self._stats.packets_received += 1
            self._stats.bytes_received += len(data)

        if not self._packets.offer(packet):
            with self._lock:
                self._stats.errors += 1
                self._stats.packets_dropped += 1

    def _increment_errors(self):
        with self._lock:
            self._stats.errors += 1

    def _fail(self, error: BaseException):
        logger.error(f"Receiver socket failed: {error}")
        with self._lock:
            self._last_error = TelemetryIOError(f"Receiver socket failed: {error}")
            self._running = False
            self._stopped = True

    @property
    def packets(self) -> PacketQueue:
        """Queue of received CapturedPackets, closed when the receiver stops."""
        return self._packets

    def stats(self) -> ReceiverStats:
        """Return a snapshot of the receiver statistics."""
        with self._lock:
            return self._stats.copy()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def last_error(self) -> Optional[BaseException]:
        """Fatal error that stopped the receive thread, if any."""
        with self._lock:
            return self._last_error

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Address the socket is bound to (useful with port 0)."""
        return self._address


# For standalone testing
if __name__ == "__main__":
    """
    Test the receiver standalone.

    Run this while F1 game is sending telemetry:
        python -m f1recorder.telemetry.receiver
    """
    logging.basicConfig(level=logging.DEBUG)

    print("Starting telemetry receiver test...")
    print("Make sure F1 game is running with UDP telemetry enabled on port 20777")
    print("Press Ctrl+C to stop\n")

    receiver = Receiver()
    receiver.start()

    try:
        while True:
            packet = receiver.packets.get(timeout=1.0)
            if packet:
                print(f"Received {packet.header.type_name} packet: {len(packet.payload)} bytes")
    except KeyboardInterrupt:
        print(f"\nStopped. {receiver.stats()}")
    finally:
        receiver.stop()
