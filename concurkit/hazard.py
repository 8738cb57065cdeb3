"""Hazard pointers kept in a shared list, protecting a swappable reference."""

from __future__ import annotations

import argparse
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Sequence

DEFER_DEALLOC = 1
_SPIN_DELAY = 10e-6

__all__ = [
    "DEFER_DEALLOC",
    "HPList",
    "SharedRef",
    "HazardDomain",
    "WriterState",
    "swap",
    "cleanup",
    "main",
]


class _HPNode:
    __slots__ = ("value", "next")

    def __init__(self, value: Any) -> None:
        self.value = value
        self.next: _HPNode | None = None


class HPList:
    """A grow-only list of slots; an emptied slot is reused by later inserts.

    Values are compared by identity.  None marks an empty slot.
    """

    def __init__(self) -> None:
        self._head: _HPNode | None = None
        self._lock = threading.Lock()

    def _nodes(self) -> Iterator[_HPNode]:
        node = self._head
        while node is not None:
            yield node
            node = node.next

    def _cas(self, node: _HPNode, expected: Any, new: Any) -> bool:
        with self._lock:
            if node.value is not expected:
                return False
            node.value = new
            return True

    def insert_or_append(self, value: Any) -> _HPNode:
        """Store ``value`` in an empty slot or a new one; return that slot."""
        if value is None:
            raise ValueError("cannot store an empty value")
        for node in self._nodes():
            if node.value is None and self._cas(node, None, value):
                return node
        node = _HPNode(value)
        with self._lock:
            node.next = self._head
            self._head = node
        return node

    def remove(self, value: Any) -> bool:
        """Empty one slot holding ``value``; return whether one was found."""
        if value is None:
            return False
        for node in self._nodes():
            if node.value is value and self._cas(node, value, None):
                return True
        return False

    def __contains__(self, value: Any) -> bool:
        return value is not None and any(node.value is value for node in self._nodes())

    def __len__(self) -> int:
        return sum(1 for node in self._nodes() if node.value is not None)

    def __iter__(self) -> Iterator[Any]:
        for node in self._nodes():
            value = node.value
            if value is not None:
                yield value


@dataclass(eq=False)
class SharedRef:
    """A shared reference to an object, replaced atomically by ``swap``."""

    value: Any = None
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    def _exchange(self, new: Any) -> Any:
        with self._lock:
            old, self.value = self.value, new
            return old


@dataclass
class WriterState:
    """Objects a writer has retired but not yet deallocated."""

    retired: HPList = field(default_factory=HPList)
    r_count: int = 0


class HazardDomain:
    """The hazard pointers of every reader, and how to free an object."""

    def __init__(self, deallocator: Callable[[Any], object]) -> None:
        self.deallocator = deallocator
        self.pointers = HPList()

    def load(self, ref: SharedRef) -> Any:
        """Return the object in ``ref``, protected until ``drop`` is called."""
        while True:
            val = ref.value
            if val is None:
                raise ValueError("the shared reference is empty")
            node = self.pointers.insert_or_append(val)
            if ref.value is val:
                return val
            # Swapped out meanwhile: withdraw the protection and retry.
            if not self.pointers._cas(node, val, None):
                self.pointers.remove(val)

    def drop(self, value: Any) -> None:
        """Give up the protection obtained by ``load``."""
        if not self.pointers.remove(value):
            raise ValueError("value was not loaded from this domain")


def _wait_unprotected(domain: HazardDomain, value: Any) -> None:
    while value in domain.pointers:
        time.sleep(_SPIN_DELAY)


def _cleanup_ptr(
    domain: HazardDomain, writer: WriterState, value: Any, flags: int
) -> None:
    if value not in domain.pointers:
        domain.deallocator(value)
    elif flags & DEFER_DEALLOC:
        writer.retired.insert_or_append(value)
        writer.r_count += 1
    else:
        _wait_unprotected(domain, value)
        domain.deallocator(value)


def swap(
    domain: HazardDomain,
    writer: WriterState,
    ref: SharedRef,
    new_value: Any,
    flags: int,
) -> None:
    """Put ``new_value`` in ``ref`` and deallocate the old object.

    With ``flags`` 0 this waits until no reader protects the old object.
    With DEFER_DEALLOC a protected object is retired into ``writer`` instead,
    to be freed by a later ``cleanup``.
    """
    old = ref._exchange(new_value)
    if old is not None:
        _cleanup_ptr(domain, writer, old, flags)


def cleanup(domain: HazardDomain, writer: WriterState, flags: int) -> None:
    """Deallocate retired objects.

    With ``flags`` 0 this waits for readers to drop each one; with
    DEFER_DEALLOC only objects nobody protects are freed.
    """
    for value in list(writer.retired):
        if value not in domain.pointers:
            if writer.retired.remove(value):
                domain.deallocator(value)
        elif not flags & DEFER_DEALLOC:
            _wait_unprotected(domain, value)
            if writer.retired.remove(value):
                domain.deallocator(value)


N_READERS = 1
N_WRITERS = 1
N_ITERS = 20
R_LIMIT_RATE = 5


@dataclass(eq=False)
class _Config:
    v1: int = 0
    v2: int = 0
    v3: int = 0
    freed: bool = False


def _delete_config(conf: _Config) -> None:
    if conf.freed:
        raise RuntimeError("configuration freed twice")
    conf.freed = True


def _format_config(name: str, conf: _Config) -> str:
    return f"{name} : {{ 0x{conf.v1:08x}, 0x{conf.v2:08x}, 0x{conf.v3:08x} }}"


def _reader(domain: HazardDomain, ref: SharedRef, iters: int) -> None:
    for _ in range(iters):
        conf = domain.load(ref)
        if conf.freed:
            raise RuntimeError("read a configuration that was already freed")
        print(_format_config("read config    ", conf))
        domain.drop(conf)


def _writer(domain: HazardDomain, ref: SharedRef, iters: int, r_limit: int) -> None:
    writer = WriterState()
    for _ in range(iters // 2):
        new_config = _Config(
            random.getrandbits(31), random.getrandbits(31), random.getrandbits(31)
        )
        cloned = _Config(new_config.v1, new_config.v2, new_config.v3)
        print(_format_config("updating config", new_config))
        swap(domain, writer, ref, new_config, DEFER_DEALLOC)
        print(_format_config("updated config ", cloned))
        if writer.r_count > r_limit:
            cleanup(domain, writer, DEFER_DEALLOC)
            writer.r_count = len(writer.retired)
    cleanup(domain, writer, 0)


def _start(target: Callable[..., None], args: tuple, errors: list) -> threading.Thread:
    def guarded() -> None:
        try:
            target(*args)
        except BaseException as exc:  # reported after join
            errors.append(exc)

    thread = threading.Thread(target=guarded, daemon=True)
    thread.start()
    return thread


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Readers and a writer sharing a configuration."
    )
    parser.add_argument(
        "--iters", type=int, default=N_ITERS, help="reads per reader thread"
    )
    args = parser.parse_args(argv)

    ref = SharedRef(_Config())
    domain = HazardDomain(_delete_config)
    r_limit = (N_READERS * R_LIMIT_RATE) >> 2
    errors: list[BaseException] = []

    readers = [
        _start(_reader, (domain, ref, args.iters), errors) for _ in range(N_READERS)
    ]
    writers = [
        _start(_writer, (domain, ref, args.iters, r_limit), errors)
        for _ in range(N_WRITERS)
    ]
    for thread in readers + writers:
        thread.join()
    if errors:
        raise errors[0]

    _delete_config(ref.value)
    return 0