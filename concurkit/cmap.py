"""Hash map with many concurrent readers and a single writer, built on RCU."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Iterator

from .rcu import Fence, RcuCell, RcuRef

MAP_INITIAL_SIZE = 512
_MASK32 = 0xFFFFFFFF

__all__ = ["MAP_INITIAL_SIZE", "CMapNode", "CMapState", "ConcurrentMap"]


@dataclass(eq=False)
class CMapNode:
    """An entry of a ConcurrentMap; ``hash`` is set by ``insert``."""

    value: Any = None
    hash: int = 0
    next: CMapNode | None = field(default=None, repr=False)


class _Table:
    __slots__ = ("buckets", "count", "mask", "utilization", "fence", "_lock")

    def __init__(self, size: int) -> None:
        self.buckets: list[CMapNode | None] = [None] * size
        self.count = 0
        self.mask = size - 1
        self.utilization = 0
        self.fence = Fence()
        self._lock = threading.Lock()

    def link(self, node: CMapNode) -> None:
        with self._lock:
            i = node.hash & self.mask
            head = self.buckets[i]
            node.next = head
            if head is None:
                self.utilization += 1
            self.buckets[i] = node

    def unlink(self, node: CMapNode) -> int:
        with self._lock:
            i = node.hash & self.mask
            prev = None
            cur = self.buckets[i]
            while cur is not None:
                if cur is node:
                    if prev is None:
                        self.buckets[i] = cur.next
                    else:
                        prev.next = cur.next
                    self.count -= 1
                    break
                prev, cur = cur, cur.next
            return self.count

    def discard(self) -> None:
        self.buckets = []
        self.count = 0


def _chain(node: CMapNode | None) -> Iterator[CMapNode]:
    while node is not None:
        following = node.next
        yield node
        node = following


def _rehash(old: _Table, new: _Table) -> None:
    for head in old.buckets:
        for node in _chain(head):
            new.link(node)
    new.fence.unlock()


class CMapState:
    """A snapshot of the map; release it when done iterating."""

    def __init__(self, ref: RcuRef) -> None:
        self._ref = ref

    def _ready_table(self) -> _Table:
        table = self._ref.value
        # Wait until a pending rehash has filled this table.
        table.fence.wait()
        return table

    def __iter__(self) -> Iterator[CMapNode]:
        table = self._ready_table()
        for head in table.buckets:
            yield from _chain(head)

    def find(self, hash: int) -> Iterator[CMapNode]:
        """Yield every node in the bucket that ``hash`` maps to."""
        table = self._ready_table()
        yield from _chain(table.buckets[hash & table.mask])

    def release(self) -> None:
        self._ref.release()

    def __enter__(self) -> CMapState:
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()


class ConcurrentMap:
    """Chained hash map that doubles its buckets when it grows too full."""

    def __init__(self) -> None:
        self._cell = RcuCell(_Table(MAP_INITIAL_SIZE))

    def insert(self, node: CMapNode, hash: int) -> int:
        """Add ``node`` under ``hash``; return the count afterwards."""
        node.hash = hash & _MASK32
        with self._cell.acquire() as ref:
            table = ref.value
            table.link(node)
            table.count += 1
            count = table.count
            expand = count > table.mask * 2
        if expand:
            self._expand()
        return count

    def _expand(self) -> None:
        ref = self._cell.acquire()
        old = ref.value
        # Only one expansion at a time.
        while old.fence.is_locked():
            ref.release()
            old.fence.wait()
            ref = self._cell.acquire()
            old = ref.value
        new = _Table((old.mask + 1) * 2)
        new.count = old.count
        new.fence.lock()
        ref.postpone(_rehash, old, new)
        ref.release()
        self._cell.set(new)

    def remove(self, node: CMapNode) -> int:
        """Unlink ``node`` if present; return the count afterwards."""
        with self._cell.acquire() as ref:
            return ref.value.unlink(node)

    def __len__(self) -> int:
        with self._cell.acquire() as ref:
            return ref.value.count

    def utilization(self) -> float:
        """Fraction of buckets that have ever held a node."""
        with self._cell.acquire() as ref:
            table = ref.value
            return table.utilization / (table.mask + 1)

    def snapshot(self) -> CMapState:
        """Acquire a state for iteration and lookup."""
        return CMapState(self._cell.acquire())

    def destroy(self) -> None:
        """Free the map; no snapshot may still be held."""
        with self._cell.acquire() as ref:
            ref.postpone(ref.value.discard)
        self._cell.destroy()