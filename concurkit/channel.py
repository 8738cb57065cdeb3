"""Go-style channels, buffered or unbuffered, safe across threads."""

from __future__ import annotations

import argparse
import threading
from collections import deque
from typing import Any, Iterator, Sequence

MSG_MAX = 100_000
THREAD_MAX = 1024

__all__ = ["MSG_MAX", "THREAD_MAX", "ChannelClosed", "Channel", "run_test", "main"]


class ChannelClosed(Exception):
    """Raised when sending to or receiving from a closed channel."""


class _Offer:
    __slots__ = ("value", "taken")

    def __init__(self, value: Any) -> None:
        self.value = value
        self.taken = False


class Channel:
    """A channel of ``capacity`` slots; zero makes every send a rendezvous.

    Once closed, every send and receive raises ChannelClosed, even if
    buffered items remain.
    """

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        self.capacity = capacity
        self._cond = threading.Condition()
        self._closed = False
        self._items: deque[Any] = deque()
        self._offer: _Offer | None = None
        self._recv_waiting = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise ChannelClosed("channel is closed")

    def _hand_over(self, offer: _Offer) -> None:
        # Called with the condition held: publish the offer and wait for a taker.
        self._offer = offer
        self._cond.notify_all()
        while not offer.taken and not self._closed:
            self._cond.wait()
        if not offer.taken:
            if self._offer is offer:
                self._offer = None
            self._cond.notify_all()
            raise ChannelClosed("channel is closed")

    def _take_offer(self) -> Any:
        offer = self._offer
        assert offer is not None
        offer.taken = True
        self._offer = None
        self._cond.notify_all()
        return offer.value

    def send(self, data: Any) -> None:
        """Send ``data``, blocking until there is room or a receiver takes it."""
        with self._cond:
            self._check_open()
            if self.capacity:
                while len(self._items) >= self.capacity:
                    self._cond.wait()
                    self._check_open()
                self._items.append(data)
                self._cond.notify_all()
                return
            while self._offer is not None:
                self._cond.wait()
                self._check_open()
            self._hand_over(_Offer(data))

    def recv(self) -> Any:
        """Receive the next item, blocking until one is available."""
        with self._cond:
            self._check_open()
            if self.capacity:
                while not self._items:
                    self._cond.wait()
                    self._check_open()
                value = self._items.popleft()
                self._cond.notify_all()
                return value
            self._recv_waiting += 1
            try:
                while self._offer is None:
                    self._cond.wait()
                    self._check_open()
            finally:
                self._recv_waiting -= 1
            return self._take_offer()

    def try_send(self, data: Any) -> bool:
        """Send without waiting for room; return False if it would block."""
        with self._cond:
            self._check_open()
            if self.capacity:
                if len(self._items) >= self.capacity:
                    return False
                self._items.append(data)
                self._cond.notify_all()
                return True
            if self._offer is not None or self._recv_waiting == 0:
                return False
            self._hand_over(_Offer(data))
            return True

    def try_recv(self) -> tuple[bool, Any]:
        """Return ``(True, item)`` if one is ready, else ``(False, None)``."""
        with self._cond:
            self._check_open()
            if self.capacity:
                if not self._items:
                    return False, None
                value = self._items.popleft()
                self._cond.notify_all()
                return True, value
            if self._offer is None:
                return False, None
            return True, self._take_offer()

    def close(self) -> None:
        """Close the channel and wake everyone waiting on it."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()


def _batches(total: int, n: int) -> Iterator[tuple[int, int]]:
    each, left = divmod(total, n)
    start = 0
    for i in range(n):
        size = each + (1 if i < left else 0)
        yield start, start + size
        start += size


def _writer(ch: Channel, lo: int, hi: int) -> None:
    for i in range(lo, hi):
        try:
            ch.send(i)
        except ChannelClosed:
            break


def _reader(ch: Channel, expect: int, out: list[int]) -> None:
    for _ in range(expect):
        try:
            out.append(ch.recv())
        except ChannelClosed:
            break


def run_test(
    repeat: int, capacity: int, total: int, n_readers: int, n_writers: int
) -> list[int]:
    """Pass ``total`` numbers through a channel ``repeat`` times.

    Return how often each number was received in the last round; every
    count must be one, otherwise RuntimeError is raised.
    """
    if n_readers > THREAD_MAX or n_writers > THREAD_MAX:
        raise ValueError("too many threads to create")
    if total > MSG_MAX:
        raise ValueError("too many messages to send")
    if n_readers < 1 or n_writers < 1:
        raise ValueError("need at least one reader and one writer")

    ch = Channel(capacity)
    counts = [0] * total
    try:
        for rep in range(repeat):
            print(
                f"cap={capacity} readers={n_readers} writers={n_writers} "
                f"msgs={total} ... {rep + 1}/{repeat}"
            )
            received: list[list[int]] = [[] for _ in range(n_readers)]
            readers = [
                threading.Thread(target=_reader, args=(ch, hi - lo, out), daemon=True)
                for (lo, hi), out in zip(_batches(total, n_readers), received)
            ]
            writers = [
                threading.Thread(target=_writer, args=(ch, lo, hi), daemon=True)
                for lo, hi in _batches(total, n_writers)
            ]
            for thread in readers + writers:
                thread.start()
            for thread in readers + writers:
                thread.join()

            counts = [0] * total
            for out in received:
                for msg in out:
                    counts[msg] += 1
            bad = [i for i, c in enumerate(counts) if c != 1]
            if bad:
                raise RuntimeError(f"message {bad[0]} received {counts[bad[0]]} times")
    finally:
        ch.close()
    return counts


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Exercise channels with many threads.")
    parser.add_argument("--repeat", type=int, default=50, help="rounds per channel")
    args = parser.parse_args(argv)
    run_test(args.repeat, 0, 500, 80, 80)
    run_test(args.repeat, 7, 500, 80, 80)
    return 0