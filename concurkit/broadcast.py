"""Multi-publisher, multi-subscriber broadcast ring that drops old messages."""

from __future__ import annotations

import threading
from typing import NamedTuple

from .pool import Pool

ESTIMATED_PUBLISHERS = 16
_HEADER_SIZE = 16
_SIZE_FIELD = 8
_ALIGN = 16

__all__ = ["ESTIMATED_PUBLISHERS", "Broadcast", "Subscriber"]


def _align_up(size: int, align: int) -> int:
    return (size + align - 1) & ~(align - 1)


class _Slot(NamedTuple):
    tag: int
    element: bytearray | None


_EMPTY = _Slot(0, None)


class Broadcast:
    """A ring of ``depth`` messages; when full, publishing drops the oldest."""

    def __init__(self, depth: int, max_msg_size: int) -> None:
        if depth <= 0 or depth & (depth - 1):
            raise ValueError("depth must be a power of two")
        if max_msg_size <= 0:
            raise ValueError("maximum message size must be positive")
        self.depth = depth
        self.max_msg_size = max_msg_size
        self._mask = depth - 1
        elt_size = _align_up(_HEADER_SIZE + max_msg_size, _ALIGN)
        self._pool = Pool(depth + ESTIMATED_PUBLISHERS, elt_size)
        self._slots = [_EMPTY] * depth
        # Index 0 marks an unused slot, so counting starts at 1.
        self._head = 1
        self._tail = 1
        self._lock = threading.Lock()

    def publish(self, msg: bytes) -> None:
        """Append ``msg``, dropping the oldest message if the ring is full."""
        data = bytes(msg)
        if len(data) > self.max_msg_size:
            raise ValueError(
                f"message of {len(data)} bytes exceeds {self.max_msg_size}"
            )
        elt = self._pool.acquire()
        if elt is None:
            raise BufferError("out of message buffers")
        elt[:_SIZE_FIELD] = len(data).to_bytes(_SIZE_FIELD, "little")
        elt[_HEADER_SIZE:_HEADER_SIZE + len(data)] = data

        with self._lock:
            if self._tail - self._head >= self.depth:
                dropped = self._slots[self._head & self._mask]
                self._head += 1
                if dropped.element is not None:
                    self._pool.release(dropped.element)
            self._slots[self._tail & self._mask] = _Slot(self._tail, elt)
            self._tail += 1

    def subscribe(self) -> Subscriber:
        """Start reading from the oldest message still held."""
        return Subscriber(self)


class Subscriber:
    """A reader's position in a Broadcast."""

    def __init__(self, bcast: Broadcast) -> None:
        self._bcast = bcast
        with bcast._lock:
            self._idx = bcast._head

    def receive(self) -> tuple[bytes, int] | None:
        """Return ``(message, drops)`` for the next message, or None if none.

        ``drops`` counts the messages skipped because they were overwritten
        before this subscriber got to them.
        """
        b = self._bcast
        drops = 0
        with b._lock:
            while self._idx != b._tail:
                idx = self._idx
                self._idx += 1
                slot = b._slots[idx & b._mask]
                if idx < b._head or slot.tag != idx or slot.element is None:
                    drops += 1
                    continue
                elt = slot.element
                size = int.from_bytes(elt[:_SIZE_FIELD], "little")
                return bytes(elt[_HEADER_SIZE:_HEADER_SIZE + size]), drops
        return None