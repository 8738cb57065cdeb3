"""Sorted set of integer keys with per-thread hazard pointers.

Deletion first marks a node's outgoing link and then unlinks it.  Unlinked
nodes are retired to the hazard-pointer manager.  The manager frees a node
only once no thread still protects it.
"""

from __future__ import annotations

import argparse
import operator
import sys
import threading
from typing import Any, Callable, Iterator, Sequence

HP_MAX_THREADS = 128
HP_MAX_HPS = 5
HP_MAX_RETIRED = HP_MAX_THREADS * HP_MAX_HPS
UINTPTR_MAX = 2**64 - 1

HP_NEXT = 0
HP_CURR = 1
HP_PREV = 2

N_ELEMENTS = 128
N_THREADS = 128 // 2

__all__ = [
    "HP_MAX_THREADS",
    "HP_MAX_HPS",
    "HP_MAX_RETIRED",
    "UINTPTR_MAX",
    "HazardPointers",
    "OrderedList",
    "main",
]


class HazardPointers:
    """Per-thread hazard slots and retire lists.

    ``max_hps`` slots are given to each thread; zero selects the default.
    ``deletefunc`` frees an object once it is safe.
    """

    def __init__(self, max_hps: int, deletefunc: Callable[[Any], object]) -> None:
        if max_hps < 0:
            raise ValueError("number of hazard pointers must not be negative")
        self.max_hps = max_hps or HP_MAX_HPS
        self.deletefunc = deletefunc
        self._slots: list[list[Any]] = []
        self._retired: list[list[Any]] = []
        self._local = threading.local()
        self._lock = threading.Lock()
        self._destroyed = False

    def _tid(self) -> int:
        tid = getattr(self._local, "tid", None)
        if tid is None:
            with self._lock:
                if len(self._slots) >= HP_MAX_THREADS:
                    raise RuntimeError(
                        f"no more than {HP_MAX_THREADS} threads may use hazard pointers"
                    )
                tid = len(self._slots)
                self._slots.append([None] * self.max_hps)
                self._retired.append([])
            self._local.tid = tid
        return tid

    def clear(self) -> None:
        """Drop every protection held by the calling thread."""
        slots = self._slots[self._tid()]
        for i in range(self.max_hps):
            slots[i] = None

    def protect(self, ihp: int, obj: Any) -> Any:
        """Protect ``obj`` in this thread's slot ``ihp``; return ``obj``."""
        if not 0 <= ihp < self.max_hps:
            raise IndexError(f"hazard pointer index {ihp} out of range")
        self._slots[self._tid()][ihp] = obj
        return obj

    def _is_protected(self, obj: Any) -> bool:
        return any(
            slot is obj for slots in list(self._slots) for slot in list(slots)
        )

    def retire(self, obj: Any) -> None:
        """Retire ``obj``. Free every retired object that nobody protects."""
        if self._destroyed:
            raise RuntimeError("hazard pointers have been destroyed")
        retired = self._retired[self._tid()]
        retired.append(obj)
        if len(retired) >= HP_MAX_RETIRED:
            raise RuntimeError("too many retired objects")
        kept = []
        for candidate in list(retired):
            if self._is_protected(candidate):
                kept.append(candidate)
            else:
                retired.remove(candidate)
                self.deletefunc(candidate)
        retired[:] = kept

    def destroy(self) -> None:
        """Free every object still retired, whatever its protection."""
        if self._destroyed:
            raise RuntimeError("hazard pointers have been destroyed")
        self._destroyed = True
        for retired in self._retired:
            pending, retired[:] = list(retired), []
            for obj in pending:
                self.deletefunc(obj)
        for slots in self._slots:
            slots[:] = [None] * self.max_hps


class _Link:
    """An atomically updated (node, marked) pair."""

    __slots__ = ("_lock", "value")

    def __init__(self, lock: threading.Lock, node: _Node | None = None) -> None:
        self._lock = lock
        self.value: tuple[_Node | None, bool] = (node, False)

    def load(self) -> tuple[_Node | None, bool]:
        return self.value

    def holds(self, node: _Node | None, marked: bool) -> bool:
        current = self.value
        return current[0] is node and current[1] == marked

    def store(self, node: _Node | None, marked: bool = False) -> None:
        self.value = (node, marked)

    def cas(self, expected: tuple[_Node | None, bool],
            new: tuple[_Node | None, bool]) -> bool:
        with self._lock:
            if self.value[0] is not expected[0] or self.value[1] != expected[1]:
                return False
            self.value = new
            return True


class _Node:
    __slots__ = ("key", "next", "freed")

    def __init__(self, key: int, lock: threading.Lock) -> None:
        self.key = key
        self.next = _Link(lock)
        self.freed = False


class OrderedList:
    """A set of integers kept in increasing order, safe across threads.

    The keys 0 and UINTPTR_MAX are reserved for the sentinel nodes.
    ``inserts`` and ``deletes`` count the nodes allocated and freed.
    """

    def __init__(self) -> None:
        self._cas_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self.inserts = 0
        self.deletes = 0
        head = self._new_node(0)
        tail = self._new_node(UINTPTR_MAX)
        head.next.store(tail)
        self._head: _Link | None = _Link(self._cas_lock, head)
        self._tail = tail
        self._hp = HazardPointers(3, self._destroy_node)

    def _new_node(self, key: int) -> _Node:
        node = _Node(key, self._cas_lock)
        with self._stats_lock:
            self.inserts += 1
        return node

    def _destroy_node(self, node: _Node | None) -> None:
        if node is None:
            return
        if node.freed:
            raise RuntimeError("list node freed twice")
        node.freed = True
        with self._stats_lock:
            self.deletes += 1

    def _head_link(self) -> _Link:
        if self._head is None:
            raise RuntimeError("list has been destroyed")
        return self._head

    @staticmethod
    def _check_key(key: int) -> int:
        key = operator.index(key)
        if not 0 < key < UINTPTR_MAX:
            raise ValueError(f"key must lie between 0 and {UINTPTR_MAX}, exclusive")
        return key

    def _find(self, key: int) -> tuple[bool, _Link, _Node, _Node | None]:
        hp = self._hp
        head = self._head_link()
        while True:
            prev = head
            curr, _ = prev.load()
            hp.protect(HP_CURR, curr)
            if not prev.holds(curr, False):
                continue
            retry = False
            while True:
                nxt, marked = curr.next.load()
                hp.protect(HP_NEXT, nxt)
                if not curr.next.holds(nxt, marked) or not prev.holds(curr, False):
                    retry = True
                    break
                if not marked:
                    if not curr.key < key:
                        return curr.key == key, prev, curr, nxt
                    prev = curr.next
                    hp.protect(HP_PREV, curr)
                else:
                    # curr is being deleted: help unlink it.
                    if not prev.cas((curr, False), (nxt, False)):
                        retry = True
                        break
                    hp.retire(curr)
                curr = nxt
                hp.protect(HP_CURR, nxt)
            if retry:
                continue

    def insert(self, key: int) -> bool:
        """Add ``key``; return False if it was already present."""
        key = self._check_key(key)
        node = self._new_node(key)
        while True:
            found, prev, curr, _ = self._find(key)
            if found:
                self._destroy_node(node)
                self._hp.clear()
                return False
            node.next.store(curr)
            if prev.cas((curr, False), (node, False)):
                self._hp.clear()
                return True

    def delete(self, key: int) -> bool:
        """Remove ``key``; return False if it was not present."""
        key = self._check_key(key)
        while True:
            found, prev, curr, nxt = self._find(key)
            if not found:
                self._hp.clear()
                return False
            if not curr.next.cas((nxt, False), (nxt, True)):
                continue
            if prev.cas((curr, False), (nxt, False)):
                self._hp.clear()
                self._hp.retire(curr)
            else:
                self._hp.clear()
            return True

    def __contains__(self, key: object) -> bool:
        try:
            checked = self._check_key(key)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False
        found, _, _, _ = self._find(checked)
        self._hp.clear()
        return found

    def __iter__(self) -> Iterator[int]:
        """Yield the keys present, in increasing order (a weak snapshot)."""
        node, _ = self._head_link().load()
        while node is not None:
            nxt, marked = node.next.load()
            if not marked and node.key not in (0, UINTPTR_MAX):
                yield node.key
            node = nxt

    def destroy(self) -> None:
        """Free every node and every retired node; the list is unusable after."""
        head = self._head_link()
        node, _ = head.load()
        while node is not None:
            nxt, _ = node.next.load()
            self._destroy_node(node)
            node = nxt
        self._hp.destroy()
        self._head = None


def _insert_worker(lst: OrderedList, keys: Sequence[int]) -> None:
    for key in keys:
        lst.insert(key)


def _delete_worker(lst: OrderedList, keys: Sequence[int]) -> None:
    for key in keys:
        lst.delete(key)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Insert and delete keys from many threads at once."
    )
    parser.add_argument("--threads", type=int, default=N_THREADS,
                        help="number of worker threads")
    parser.add_argument("--elements", type=int, default=N_ELEMENTS,
                        help="keys handled by each thread")
    args = parser.parse_args(argv)
    if not 0 < args.threads < HP_MAX_THREADS:
        parser.error(f"threads must lie between 1 and {HP_MAX_THREADS - 1}")
    if args.elements < 1:
        parser.error("elements must be positive")

    lst = OrderedList()
    key_sets = [
        [tid * args.elements + i + 1 for i in range(args.elements)]
        for tid in range(args.threads)
    ]
    errors: list[BaseException] = []

    def guarded(target: Callable[..., None], keys: Sequence[int]) -> None:
        try:
            target(lst, keys)
        except BaseException as exc:  # reported after join
            errors.append(exc)

    threads = [
        threading.Thread(
            target=guarded,
            args=(_delete_worker if tid & 1 else _insert_worker, keys),
            daemon=True,
        )
        for tid, keys in enumerate(key_sets)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    if errors:
        raise errors[0]

    for i in range(args.elements):
        for keys in key_sets:
            lst.delete(keys[i])

    lst.destroy()
    print(f"inserts = {lst.inserts}, deletes = {lst.deletes}", file=sys.stderr)
    return 0