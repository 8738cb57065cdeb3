"""Fibers run as threads and waited on together by the thread that made them."""

from __future__ import annotations

import argparse
import sys
import threading
import time
from enum import IntEnum
from functools import partial
from typing import Callable, Sequence

MAX_FIBERS = 10

__all__ = [
    "MAX_FIBERS",
    "FiberStatus",
    "FiberError",
    "FiberPool",
    "fiber_yield",
    "fibonacci",
    "squares",
    "main",
]

Output = Callable[[str], object]

_write_lock = threading.Lock()


def _write_line(line: str) -> None:
    # Write and flush at once so that lines from different fibers never mix.
    with _write_lock:
        sys.stdout.write(line + "\n")
        sys.stdout.flush()


class FiberStatus(IntEnum):
    """Reasons a fiber operation can fail."""

    NOERROR = 0
    MAXFIBERS = 1
    MALLOC_ERROR = 2
    CLONE_ERROR = 3
    INFIBER = 4


class FiberError(Exception):
    """Raised when a fiber cannot be spawned or waited for."""

    def __init__(self, status: FiberStatus, message: str) -> None:
        super().__init__(message)
        self.status = status


class FiberPool:
    """At most ``max_fibers`` fibers; slots are freed by ``wait_all``."""

    def __init__(self, max_fibers: int = MAX_FIBERS) -> None:
        if max_fibers < 1:
            raise ValueError("a pool needs room for at least one fiber")
        self.max_fibers = max_fibers
        self._owner = threading.get_ident()
        self._fibers: list[threading.Thread] = []
        self._errors: list[BaseException] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._fibers)

    def _run(self, func: Callable[[], object]) -> None:
        try:
            func()
        except BaseException as exc:  # reported by wait_all
            with self._lock:
                self._errors.append(exc)

    def spawn(self, func: Callable[[], object]) -> None:
        """Start a new fiber running ``func()``."""
        with self._lock:
            if len(self._fibers) >= self.max_fibers:
                raise FiberError(
                    FiberStatus.MAXFIBERS,
                    f"no more than {self.max_fibers} fibers may be active",
                )
            thread = threading.Thread(target=self._run, args=(func,), daemon=True)
            try:
                thread.start()
            except RuntimeError as exc:
                raise FiberError(
                    FiberStatus.CLONE_ERROR, "could not start fiber"
                ) from exc
            self._fibers.append(thread)

    def wait_all(self) -> None:
        """Wait until every fiber has finished.

        Only the thread that created the pool may wait.  If a fiber raised,
        the first such exception is raised here once all have finished.
        """
        if threading.get_ident() != self._owner:
            raise FiberError(FiberStatus.INFIBER, "cannot wait from inside a fiber")
        while True:
            with self._lock:
                if not self._fibers:
                    break
                thread = self._fibers[0]
            thread.join()
            with self._lock:
                self._fibers.remove(thread)
        with self._lock:
            errors, self._errors = self._errors, []
        if errors:
            raise errors[0]


def fiber_yield() -> None:
    """Let another fiber run."""
    time.sleep(0)


def fibonacci(out: Output = _write_line) -> None:
    """Report Fib(0) through Fib(14), yielding after each computed value."""
    out("Fib(0) = 0")
    out("Fib(1) = 1")
    a, b = 0, 1
    for i in range(2, 15):
        a, b = b, a + b
        out(f"Fib({i}) = {b}")
        fiber_yield()


def squares(out: Output = _write_line) -> None:
    """Report the squares of 1 through 9, yielding after each."""
    for i in range(1, 10):
        out(f"{i} * {i} = {i * i}")
        fiber_yield()


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run two fibers side by side.")
    parser.parse_args(argv)
    pool = FiberPool()
    pool.spawn(partial(fibonacci, _write_line))
    pool.spawn(partial(squares, _write_line))
    pool.wait_all()
    return 0