import threading

import pytest

from concurkit.rcu import Fence, RcuCell


def test_acquire_sees_current_value():
    cell = RcuCell("a")
    with cell.acquire() as ref:
        assert ref.value == "a"


def test_old_reader_keeps_old_value_after_set():
    cell = RcuCell("old")
    ref = cell.acquire()
    cell.set("new")
    assert ref.value == "old"
    with cell.acquire() as fresh:
        assert fresh.value == "new"
    ref.release()


def test_postponed_callback_waits_for_last_holder():
    cell = RcuCell(1)
    calls = []
    ref = cell.acquire()
    ref.postpone(calls.append, "freed")
    cell.set(2)
    assert calls == []
    ref.release()
    assert calls == ["freed"]


def test_callbacks_run_in_order_with_args():
    cell = RcuCell(0)
    calls = []
    with cell.acquire() as ref:
        ref.postpone(lambda a, b: calls.append((a, b)), 1, 2)
        ref.postpone(lambda: calls.append("second"))
    cell.set(1)
    assert calls == [(1, 2), "second"]


def test_destroy_runs_callbacks():
    cell = RcuCell("x")
    calls = []
    with cell.acquire() as ref:
        ref.postpone(calls.append, ref.value)
    cell.destroy()
    assert calls == ["x"]


def test_destroy_with_outstanding_reader_fails():
    cell = RcuCell("x")
    ref = cell.acquire()
    with pytest.raises(RuntimeError):
        cell.destroy()
    ref.release()
    cell.destroy()
    with pytest.raises(RuntimeError):
        cell.acquire()


def test_release_too_often_fails():
    cell = RcuCell("x")
    ref = cell.acquire()
    ref.release()
    cell.set("y")
    with pytest.raises(RuntimeError):
        ref.release()


def test_fence_lock_state():
    fence = Fence()
    assert fence.is_locked() is False
    fence.lock()
    assert fence.is_locked() is True
    fence.unlock()
    assert fence.is_locked() is False


def test_fence_wait_blocks_until_unlock():
    fence = Fence()
    fence.lock()
    seen_after_wait = []
    done = threading.Event()

    def waiter():
        fence.wait()
        seen_after_wait.append(fence.is_locked())
        done.set()

    t = threading.Thread(target=waiter)
    t.start()
    done.wait(0.05)
    assert seen_after_wait == []
    assert fence.is_locked() is True
    fence.unlock()
    t.join(timeout=5)
    assert seen_after_wait == [False]