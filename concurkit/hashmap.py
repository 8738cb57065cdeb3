"""Hash map with compare-and-swap updates of its bucket chains."""

from __future__ import annotations

import threading
from typing import Any, Callable, Iterator

from .free_later import FreeLater

_MASK64 = 0xFFFFFFFFFFFFFFFF

__all__ = ["LockFreeHashMap"]


class _Node:
    __slots__ = ("key", "value", "next")

    def __init__(self, key: Any, value: Any) -> None:
        self.key = key
        self.value = value
        self.next: _Node | None = None


def _default_cmp(x: Any, y: Any) -> int:
    """Return 0 for equal keys, -1 when ``x`` orders after ``y``, else 1."""
    if x == y:
        return 0
    try:
        return -1 if x > y else 1
    except TypeError:
        return 1


def _default_hash(key: Any) -> int:
    return hash(key)


def _clear_node(node: _Node) -> None:
    node.key = None
    node.value = None


class LockFreeHashMap:
    """Fixed number of buckets, each a singly linked chain updated by CAS.

    ``cmp(x, y)`` returns 0 when two keys are equal; ``hash(key)`` returns
    an integer.  Nodes that are replaced or deleted are handed to
    ``reclaimer`` (a FreeLater) instead of being dropped at once, since
    other threads may still be walking over them.
    """

    def __init__(
        self,
        n_buckets: int,
        cmp: Callable[[Any, Any], int] | None = None,
        hash: Callable[[Any], int] | None = None,
        reclaimer: FreeLater | None = None,
    ) -> None:
        if n_buckets <= 0:
            raise ValueError("number of buckets must be positive")
        self.n_buckets = n_buckets
        self._buckets: list[_Node | None] = [None] * n_buckets
        self._cmp = cmp if cmp is not None else _default_cmp
        self._hash = hash if hash is not None else _default_hash
        self._reclaimer = reclaimer
        self._length = 0
        self._atomic = threading.Lock()
        # Retry counters, useful for observing contention.
        self.put_retries = 0
        self.put_replace_fail = 0
        self.put_head_fail = 0
        self.del_fail = 0
        self.del_fail_new_head = 0

    def _index(self, key: Any) -> int:
        return (self._hash(key) & _MASK64) % self.n_buckets

    def _cas_bucket(self, index: int, expected: _Node | None, new: _Node | None) -> bool:
        with self._atomic:
            if self._buckets[index] is not expected:
                return False
            self._buckets[index] = new
            return True

    def _cas_next(self, node: _Node, expected: _Node | None, new: _Node | None) -> bool:
        with self._atomic:
            if node.next is not expected:
                return False
            node.next = new
            return True

    def _add_length(self, delta: int) -> None:
        with self._atomic:
            self._length += delta

    def _retire(self, node: _Node) -> None:
        if self._reclaimer is not None:
            self._reclaimer.register(node, _clear_node)

    def _chain(self, index: int) -> Iterator[_Node]:
        node = self._buckets[index]
        while node is not None:
            yield node
            node = node.next

    def get(self, key: Any) -> Any:
        """Return the value mapped to ``key``, or None if there is none."""
        for node in self._chain(self._index(key)):
            if self._cmp(node.key, key) == 0:
                return node.value
        return None

    def put(self, key: Any, value: Any) -> bool:
        """Map ``key`` to ``value``; return True if an existing key was replaced."""
        index = self._index(key)
        new: _Node | None = None
        while True:
            head = self._buckets[index]
            prev: _Node | None = None
            match: _Node | None = None
            for node in self._chain_from(head):
                if self._cmp(key, node.key) == 0:
                    match = node
                    break
                prev = node

            if new is None:
                new = _Node(key, value)

            if match is not None:
                new.next = match.next
                if prev is not None:
                    if self._cas_next(prev, match, new):
                        self._retire(match)
                        return True
                    self.put_replace_fail += 1
                else:
                    if self._cas_bucket(index, match, new):
                        self._retire(match)
                        return True
                    self.put_head_fail += 1
            else:
                new.next = head
                if self._cas_bucket(index, head, new):
                    self._add_length(1)
                    return False
                self.put_retries += 1

    @staticmethod
    def _chain_from(node: _Node | None) -> Iterator[_Node]:
        while node is not None:
            yield node
            node = node.next

    def delete(self, key: Any) -> bool:
        """Remove ``key``; return True if it was found and removed."""
        index = self._index(key)
        while True:
            prev: _Node | None = None
            match: _Node | None = None
            for node in self._chain(index):
                if self._cmp(key, node.key) == 0:
                    match = node
                    break
                prev = node

            if match is None:
                return False

            if prev is not None:
                if self._cas_next(prev, match, match.next):
                    self._add_length(-1)
                    self._retire(match)
                    return True
                self.del_fail += 1
            else:
                if self._cas_bucket(index, match, match.next):
                    self._add_length(-1)
                    self._retire(match)
                    return True
                self.del_fail_new_head += 1

    def __len__(self) -> int:
        return self._length