"""
Bounded packet queue between a producer thread and its consumer.

The producer publishes with offer(), which never blocks: when the queue
is full the new item is refused and the producer counts the drop. The
producer closes the queue once it has stopped publishing, which ends
any iteration on the consumer side after the remaining items are drained.
"""

import threading
from collections import deque
from typing import Deque, Generic, Iterator, Optional, TypeVar

from f1recorder.shared.errors import StateError

T = TypeVar('T')


class QueueClosed(Exception):
    """Raised by get() once the queue is closed and empty."""


class PacketQueue(Generic[T]):
    """
    Thread-safe bounded FIFO with non-blocking publish and close.

    Example:
        queue = PacketQueue(maxsize=100)
        if not queue.offer(packet):
            dropped += 1

        for packet in queue:   # ends after close() and drain
            handle(packet)
    """

    def __init__(self, maxsize: int = 100):
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self.maxsize = maxsize
        self._items: Deque[T] = deque()
        self._cond = threading.Condition()
        self._closed = False

    def offer(self, item: T) -> bool:
        """
        Add an item without blocking.

        Returns False if the queue is full. Publishing to a closed queue
        is a bug in the producer and raises StateError.
        """
        with self._cond:
            if self._closed:
                raise StateError("offer() on a closed queue")
            if len(self._items) >= self.maxsize:
                return False
            self._items.append(item)
            self._cond.notify()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """
        Remove and return the oldest item.

        Waits up to timeout seconds (forever if None) and returns None if
        nothing arrived. Raises QueueClosed when closed and empty.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._closed, timeout):
                return None
            if self._items:
                return self._items.popleft()
            raise QueueClosed()

    def close(self):
        """Stop accepting items and wake every waiting consumer. Idempotent."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def qsize(self) -> int:
        with self._cond:
            return len(self._items)

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                item = self.get()
            except QueueClosed:
                return
            yield item
