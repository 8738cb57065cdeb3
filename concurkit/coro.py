"""Cooperative round-robin scheduling of generator-based tasks."""

from __future__ import annotations

import argparse
from collections import deque
from dataclasses import dataclass
from typing import Callable, Generator, Sequence

__all__ = [
    "TaskArgs",
    "Scheduler",
    "fib_sequence",
    "fib_task",
    "count_task",
    "main",
]

Task = Generator[None, None, None]
Output = Callable[[str], object]


@dataclass
class TaskArgs:
    """Parameters of a task: it counts ``i`` up to ``n``."""

    n: int
    i: int
    task_name: str


class Scheduler:
    """Starts tasks in the order added, then runs them round robin.

    A task is a function taking its TaskArgs and returning a generator;
    each ``yield`` hands control to the next task in the queue.
    """

    def __init__(self) -> None:
        self._pending: list[tuple[Callable[[TaskArgs], Task], TaskArgs]] = []
        self._ready: deque[Task] = deque()

    def add(self, task: Callable[[TaskArgs], Task], args: TaskArgs) -> None:
        """Register ``task`` to be started with ``args``."""
        self._pending.append((task, args))

    def _step(self, gen: Task) -> None:
        try:
            next(gen)
        except StopIteration:
            return
        self._ready.append(gen)

    def run(self) -> None:
        """Start every registered task, then run them all to completion."""
        pending, self._pending = self._pending, []
        for task, args in pending:
            self._step(task(args))
        while self._ready:
            self._step(self._ready.popleft())


def fib_sequence(k: int) -> int:
    """Return the ``k``-th Fibonacci number, with fib(0) = 0 and fib(1) = 1."""
    if k < 0:
        raise ValueError("index must not be negative")
    a, b = 0, 1
    for _ in range(k):
        a, b = b, a + b
    return a


def fib_task(args: TaskArgs, out: Output = print) -> Task:
    """Report every second Fibonacci number from ``args.i`` below ``args.n``."""
    name, n, i = args.task_name, args.n, args.i
    out(f"{name}: n = {n}")
    yield
    while i < n:
        out(f"{name} fib({i}) = {fib_sequence(i)}")
        yield
        out(f"{name}: resume")
        i += 2
    out(f"{name}: complete")


def count_task(args: TaskArgs, out: Output = print) -> Task:
    """Report each number from ``args.i`` below ``args.n``."""
    name, n, i = args.task_name, args.n, args.i
    out(f"{name}: n = {n}")
    yield
    while i < n:
        out(f"{name} {i}")
        yield
        out(f"{name}: resume")
        i += 1
    out(f"{name}: complete")


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run three cooperative tasks.")
    parser.parse_args(argv)
    sched = Scheduler()
    sched.add(fib_task, TaskArgs(n=70, i=0, task_name="Task 0"))
    sched.add(fib_task, TaskArgs(n=70, i=1, task_name="Task 1"))
    sched.add(count_task, TaskArgs(n=70, i=0, task_name="Task 2"))
    sched.run()
    return 0