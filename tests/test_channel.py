import threading
import time

import pytest

from concurkit.channel import MSG_MAX, THREAD_MAX, Channel, ChannelClosed, run_test


def test_buffered_fifo():
    ch = Channel(3)
    for item in ("a", "b", "c"):
        ch.send(item)
    assert [ch.recv() for _ in range(3)] == ["a", "b", "c"]


def test_buffered_try_send_when_full():
    ch = Channel(2)
    assert ch.try_send(1) is True
    assert ch.try_send(2) is True
    assert ch.try_send(3) is False
    assert ch.try_recv() == (True, 1)


def test_try_recv_empty():
    assert Channel(4).try_recv() == (False, None)
    assert Channel(0).try_recv() == (False, None)


def test_unbuffered_try_send_without_receiver():
    assert Channel(0).try_send("x") is False


def test_send_after_close_raises():
    ch = Channel(1)
    ch.close()
    assert ch.closed is True
    with pytest.raises(ChannelClosed):
        ch.send(1)


def test_recv_after_close_raises_even_with_items():
    ch = Channel(2)
    ch.send(5)
    ch.close()
    with pytest.raises(ChannelClosed):
        ch.recv()


def test_negative_capacity():
    with pytest.raises(ValueError):
        Channel(-1)


def test_unbuffered_rendezvous():
    ch = Channel(0)

    def writer():
        for item in (10, 20, 30):
            ch.send(item)

    thread = threading.Thread(target=writer)
    thread.start()
    received = [ch.recv() for _ in range(3)]
    thread.join(timeout=5)
    assert received == [10, 20, 30]


def test_unbuffered_try_send_with_waiting_receiver():
    ch = Channel(0)
    got = []
    reader = threading.Thread(target=lambda: got.append(ch.recv()))
    reader.start()
    deadline = time.monotonic() + 5
    sent = ch.try_send("hello")
    while not sent and time.monotonic() < deadline:
        time.sleep(0.001)
        sent = ch.try_send("hello")
    reader.join(timeout=5)
    assert sent is True
    assert got == ["hello"]


def test_close_wakes_blocked_receiver():
    ch = Channel(0)
    timer = threading.Timer(0.05, ch.close)
    timer.start()
    with pytest.raises(ChannelClosed):
        ch.recv()
    timer.join(timeout=5)
    assert ch.closed is True


def test_close_wakes_blocked_sender():
    ch = Channel(1)
    ch.send(1)
    timer = threading.Timer(0.05, ch.close)
    timer.start()
    with pytest.raises(ChannelClosed):
        ch.send(2)
    timer.join(timeout=5)
    assert ch.closed is True


@pytest.mark.parametrize("capacity", [0, 7])
def test_run_test_every_message_once(capacity):
    counts = run_test(2, capacity, 200, 8, 8)
    assert counts == [1] * 200


def test_run_test_limits():
    with pytest.raises(ValueError):
        run_test(1, 0, 10, THREAD_MAX + 1, 1)
    with pytest.raises(ValueError):
        run_test(1, 0, MSG_MAX + 1, 1, 1)
    with pytest.raises(ValueError):
        run_test(1, 0, 10, 0, 1)