"""Xorshift32 pseudo-random generator with a per-thread default instance."""

import threading
import time
from typing import Iterator

MASK32 = 0xFFFFFFFF

__all__ = ["XorShift32", "set_seed", "random_uint32"]


class XorShift32:
    """A 32-bit xorshift generator; a zero seed is replaced by the clock."""

    def __init__(self, seed: int = 0) -> None:
        self.state = 0
        self.reseed(seed)

    def reseed(self, seed: int) -> None:
        """Restart the sequence from ``seed`` (zero means "use the time")."""
        seed &= MASK32
        while not seed:
            seed = int(time.time()) & MASK32
        self.state = seed

    def next_u32(self) -> int:
        """Advance the generator and return the next 32-bit value."""
        s = self.state
        s ^= (s << 13) & MASK32
        s ^= s >> 17
        s ^= (s << 5) & MASK32
        self.state = s
        return s

    def __iter__(self) -> Iterator[int]:
        while True:
            yield self.next_u32()


_local = threading.local()


def _thread_generator() -> XorShift32:
    gen = getattr(_local, "generator", None)
    if gen is None:
        gen = XorShift32(0)
        _local.generator = gen
    return gen


def set_seed(seed: int) -> None:
    """Seed this thread's default generator."""
    _thread_generator().reseed(seed)


def random_uint32() -> int:
    """Return the next value from this thread's default generator."""
    return _thread_generator().next_u32()