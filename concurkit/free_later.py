"""Deferred release of shared objects once workers are done with them.

Objects are registered with a release callback.  ``stage`` moves everything
registered so far into a staged batch; after every worker has moved on,
``run`` releases that batch.  ``close`` releases whatever is left.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

__all__ = ["FreeLater"]

_Entry = tuple[Any, Callable[[Any], Any]]


class FreeLater:
    """Two-stage buffer of objects waiting to be released."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._buffer: list[_Entry] = []
        self._staged: list[_Entry] = []
        self._closed = False

    @property
    def pending(self) -> int:
        """Number of registered objects not yet staged."""
        with self._lock:
            return len(self._buffer)

    @property
    def staged(self) -> int:
        """Number of staged objects waiting for ``run``."""
        with self._lock:
            return len(self._staged)

    def register(self, var: Any, release: Callable[[Any], Any]) -> None:
        """Arrange for ``release(var)`` to be called once it is safe."""
        with self._lock:
            if self._closed:
                raise RuntimeError("FreeLater has been closed")
            self._buffer.append((var, release))

    def stage(self) -> bool:
        """Stage the buffered objects; return False if a batch is still staged."""
        with self._lock:
            if self._staged:
                return False
            self._staged, self._buffer = self._buffer, []
            return True

    def run(self) -> int:
        """Release the staged batch, newest first; return how many were released."""
        with self._run_lock:
            with self._lock:
                batch, self._staged = self._staged, []
            for var, release in reversed(batch):
                release(var)
            return len(batch)

    def close(self) -> None:
        """Release everything, staged or not, and refuse new registrations."""
        with self._lock:
            self._closed = True
        self.run()
        self.stage()
        self.run()

    def __enter__(self) -> FreeLater:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()