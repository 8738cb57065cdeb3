"""Reference-counted read-copy-update cells and a simple fence."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Callable

__all__ = ["Fence", "RcuRef", "RcuCell"]


class Fence:
    """A flag that waiters block on until it is cleared."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._locked = False

    def lock(self) -> None:
        """Raise the fence; it does not wait for anything."""
        with self._cond:
            self._locked = True

    def unlock(self) -> None:
        """Lower the fence and wake every waiter."""
        with self._cond:
            self._locked = False
            self._cond.notify_all()

    def wait(self) -> None:
        """Block until the fence is lowered."""
        with self._cond:
            while self._locked:
                self._cond.wait()

    def is_locked(self) -> bool:
        return self._locked


class RcuRef:
    """One published version of a value, counted by its holders.

    When the last holder lets go, callbacks postponed on it run in order.
    """

    def __init__(self, value: Any) -> None:
        self.value = value
        self._count = 1
        self._callbacks: deque[tuple[Callable[..., Any], tuple[Any, ...]]] = deque()
        self._lock = threading.Lock()

    def _incref(self) -> None:
        with self._lock:
            if self._count == 0:
                raise RuntimeError("RCU reference already freed")
            self._count += 1

    def _decref(self) -> None:
        with self._lock:
            if self._count == 0:
                raise RuntimeError("RCU reference released too many times")
            self._count -= 1
            last = self._count == 0
        if last:
            self._run_callbacks()

    def _drop_last(self) -> None:
        with self._lock:
            if self._count != 1:
                raise RuntimeError("RCU value is still in use")
            self._count = 0
        self._run_callbacks()

    def _run_callbacks(self) -> None:
        while self._callbacks:
            callback, args = self._callbacks.popleft()
            callback(*args)

    def release(self) -> None:
        """Give up this holder's reference."""
        self._decref()

    def postpone(self, callback: Callable[..., Any], *args: Any) -> None:
        """Run ``callback(*args)`` once nobody holds this version any more."""
        with self._lock:
            if self._count == 0:
                raise RuntimeError("RCU reference already freed")
            self._callbacks.append((callback, args))

    def __enter__(self) -> RcuRef:
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()


class RcuCell:
    """A shared slot whose readers keep the version they acquired alive."""

    def __init__(self, value: Any) -> None:
        self._lock = threading.Lock()
        self._current: RcuRef | None = RcuRef(value)

    def _require_current(self) -> RcuRef:
        if self._current is None:
            raise RuntimeError("RCU cell has been destroyed")
        return self._current

    def acquire(self) -> RcuRef:
        """Take a counted reference to the current version."""
        with self._lock:
            ref = self._require_current()
            ref._incref()
            return ref

    def set(self, value: Any) -> None:
        """Publish ``value``; the previous version is freed once unused."""
        with self._lock:
            old = self._require_current()
            self._current = RcuRef(value)
        old._decref()

    def destroy(self) -> None:
        """Free the current version; it must have no other holders."""
        with self._lock:
            ref = self._require_current()
            ref._drop_last()
            self._current = None