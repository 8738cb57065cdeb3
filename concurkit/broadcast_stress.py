"""Multi-threaded stress run of the broadcast ring."""

from __future__ import annotations

import argparse
import math
import struct
import threading
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from .broadcast import Broadcast, Subscriber

MAX_THREADS = 128
DEFAULT_PUB_MSGS = 100_000
_MSG = struct.Struct("<Q")
_MAX_POLLS = 1_000_000_000

__all__ = ["MAX_THREADS", "DEFAULT_PUB_MSGS", "ThreadStats", "run_test", "main"]

_SCHEDULE = [
    [("1pub0sub", 1, 0, 128), ("2pub0sub", 2, 0, 128),
     ("4pub0sub", 4, 0, 128), ("4pub0sub", 8, 0, 128)],
    [("1pub1sub", 1, 1, 2048), ("2pub1sub", 2, 1, 2048),
     ("4pub1sub", 4, 1, 2048), ("8pub1sub", 8, 1, 2048)],
    [("1pub2sub", 1, 2, 2048), ("2pub2sub", 2, 2, 2048),
     ("4pub2sub", 4, 2, 2048), ("8pub2sub", 8, 2, 2048)],
    [("1pub1sub", 1, 1, 2048), ("1pub2sub", 1, 2, 2048),
     ("1pub4sub", 1, 4, 2048), ("1pub8sub", 1, 8, 2048)],
]


@dataclass
class ThreadStats:
    """Counters and elapsed nanoseconds of one stress thread."""

    n_msgs: int = 0
    n_drops: int = 0
    dt: int = 0

    @property
    def ns_per_msg(self) -> float:
        if self.n_msgs:
            return self.dt / self.n_msgs
        return math.inf if self.dt else math.nan


def _publisher(b: Broadcast, stats: ThreadStats, pub_id: int, count: int) -> None:
    msg = pub_id << 32
    start = time.time_ns()
    for _ in range(count):
        msg += 1
        b.publish(_MSG.pack(msg))
        stats.n_msgs += 1
    stats.dt = time.time_ns() - start


def _subscriber(sub: Subscriber, stats: ThreadStats, expected: int) -> None:
    start = time.time_ns()
    for _ in range(_MAX_POLLS):
        if stats.n_msgs + stats.n_drops >= expected:
            break
        got = sub.receive()
        if got is None:
            time.sleep(0)
            continue
        payload, drops = got
        if len(payload) != _MSG.size:
            raise RuntimeError(f"unexpected message size {len(payload)}")
        (value,) = _MSG.unpack(payload)
        if value >> 32 >= MAX_THREADS:
            raise RuntimeError(f"unexpected publisher id {value >> 32}")
        stats.n_msgs += 1
        stats.n_drops += drops
    stats.dt = time.time_ns() - start


def _start(target: Callable[..., None], args: tuple, errors: list) -> threading.Thread:
    def guarded() -> None:
        try:
            target(*args)
        except BaseException as exc:  # reported after join
            errors.append(exc)

    thread = threading.Thread(target=guarded, daemon=True)
    thread.start()
    return thread


def run_test(
    test_name: str,
    num_pub: int,
    num_sub: int,
    num_elts: int,
    pub_msgs: int = DEFAULT_PUB_MSGS,
) -> tuple[list[ThreadStats], list[ThreadStats]]:
    """Run publishers and subscribers together, print and return their stats."""
    if num_sub >= MAX_THREADS or num_pub >= MAX_THREADS:
        raise ValueError(f"at most {MAX_THREADS - 1} threads of each kind")
    b = Broadcast(num_elts, _MSG.size)
    sub_msgs = num_pub * pub_msgs
    errors: list[BaseException] = []

    sub_stats = [ThreadStats() for _ in range(num_sub)]
    subs = [b.subscribe() for _ in range(num_sub)]
    sub_threads = [
        _start(_subscriber, (sub, stats, sub_msgs), errors)
        for sub, stats in zip(subs, sub_stats)
    ]
    pub_stats = [ThreadStats() for _ in range(num_pub)]
    pub_threads = [
        _start(_publisher, (b, stats, pub_id, pub_msgs), errors)
        for pub_id, stats in enumerate(pub_stats)
    ]
    for thread in sub_threads + pub_threads:
        thread.join()
    if errors:
        raise errors[0]

    print(f"Test: {test_name}")
    for kind, group in (("Sub", sub_stats), ("Pub", pub_stats)):
        for i, t in enumerate(group):
            print(
                f"  {kind} Thread {i} | n_msgs: {t.n_msgs:7d} "
                f"n_drops: {t.n_drops:7d} | {t.ns_per_msg:.0f} ns/msg"
            )
    return sub_stats, pub_stats


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Stress the broadcast ring.")
    parser.add_argument(
        "--messages",
        type=int,
        default=DEFAULT_PUB_MSGS,
        help="messages sent by each publisher",
    )
    args = parser.parse_args(argv)
    for block in _SCHEDULE:
        for name, num_pub, num_sub, num_elts in block:
            run_test(name, num_pub, num_sub, num_elts, args.messages)
        print()
    return 0