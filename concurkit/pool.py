"""Fixed-size pool of reusable byte buffers."""

from __future__ import annotations

import threading

CACHELINE_SIZE = 64
ELEMENT_ALIGN = 16

__all__ = ["CACHELINE_SIZE", "ELEMENT_ALIGN", "Pool", "pool_footprint"]


def _align_up(size: int, align: int) -> int:
    return (size + align - 1) & ~(align - 1)


def pool_footprint(num_elts: int, elt_size: int) -> tuple[int, int]:
    """Return ``(size, alignment)`` in bytes of a pool's memory layout."""
    elt_size = _align_up(elt_size, ELEMENT_ALIGN)
    return CACHELINE_SIZE + elt_size * num_elts, CACHELINE_SIZE


class Pool:
    """A stack of preallocated, equally sized buffers.

    Element sizes are rounded up to a multiple of 16 bytes.  The most
    recently released element is the next one handed out.
    """

    def __init__(self, num_elts: int, elt_size: int) -> None:
        if elt_size <= 0:
            raise ValueError("element size must be positive")
        if num_elts < 0:
            raise ValueError("number of elements must not be negative")
        self.num_elts = num_elts
        self.elt_size = _align_up(elt_size, ELEMENT_ALIGN)
        self._lock = threading.Lock()
        elements = [bytearray(self.elt_size) for _ in range(num_elts)]
        self._owned = {id(elt): elt for elt in elements}
        # The top of the stack is the end of the list: the first element.
        self._free = list(reversed(elements))
        self._free_ids = set(self._owned)

    @property
    def available(self) -> int:
        """Number of elements that can currently be acquired."""
        with self._lock:
            return len(self._free)

    def acquire(self) -> bytearray | None:
        """Take a free element, or return None when every one is in use."""
        with self._lock:
            if not self._free:
                return None
            elt = self._free.pop()
            self._free_ids.discard(id(elt))
            return elt

    def release(self, elt: bytearray) -> None:
        """Give an element acquired from this pool back to it."""
        with self._lock:
            if self._owned.get(id(elt)) is not elt:
                raise ValueError("element does not belong to this pool")
            if id(elt) in self._free_ids:
                raise ValueError("element has already been released")
            self._free_ids.add(id(elt))
            self._free.append(elt)