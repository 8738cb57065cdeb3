import threading
import time

import pytest

from concurkit.hazard import (
    DEFER_DEALLOC,
    HazardDomain,
    HPList,
    SharedRef,
    WriterState,
    cleanup,
    main,
    swap,
)


class Obj:
    pass


def test_hplist_insert_contains_len():
    lst = HPList()
    a, b = Obj(), Obj()
    node = lst.insert_or_append(a)
    lst.insert_or_append(b)
    assert node.value is a
    assert a in lst
    assert b in lst
    assert Obj() not in lst
    assert len(lst) == 2


def test_hplist_remove():
    lst = HPList()
    a = Obj()
    lst.insert_or_append(a)
    assert lst.remove(a) is True
    assert lst.remove(a) is False
    assert a not in lst
    assert len(lst) == 0


def test_hplist_reuses_empty_slot():
    lst = HPList()
    a, b = Obj(), Obj()
    first = lst.insert_or_append(a)
    lst.remove(a)
    second = lst.insert_or_append(b)
    assert second is first
    assert list(lst) == [b]


def test_hplist_rejects_none():
    with pytest.raises(ValueError):
        HPList().insert_or_append(None)


def test_load_protects_and_drop_releases():
    domain = HazardDomain(lambda obj: None)
    obj = Obj()
    ref = SharedRef(obj)
    loaded = domain.load(ref)
    assert loaded is obj
    assert obj in domain.pointers
    domain.drop(obj)
    assert obj not in domain.pointers


def test_drop_unknown_value():
    domain = HazardDomain(lambda obj: None)
    with pytest.raises(ValueError):
        domain.drop(Obj())


def test_load_empty_reference():
    domain = HazardDomain(lambda obj: None)
    with pytest.raises(ValueError):
        domain.load(SharedRef())


def test_swap_unprotected_frees_at_once():
    freed = []
    domain = HazardDomain(freed.append)
    writer = WriterState()
    old, new = Obj(), Obj()
    ref = SharedRef(old)
    swap(domain, writer, ref, new, DEFER_DEALLOC)
    assert ref.value is new
    assert freed == [old]
    assert writer.r_count == 0


def test_swap_deferred_then_cleanup():
    freed = []
    domain = HazardDomain(freed.append)
    writer = WriterState()
    old, new = Obj(), Obj()
    ref = SharedRef(old)
    domain.load(ref)
    swap(domain, writer, ref, new, DEFER_DEALLOC)
    assert freed == []
    assert old in writer.retired
    assert writer.r_count == 1

    cleanup(domain, writer, DEFER_DEALLOC)
    assert freed == []

    domain.drop(old)
    cleanup(domain, writer, DEFER_DEALLOC)
    assert freed == [old]
    assert len(writer.retired) == 0


def test_swap_waits_for_reader():
    freed = []
    domain = HazardDomain(freed.append)
    writer = WriterState()
    old, new = Obj(), Obj()
    ref = SharedRef(old)
    domain.load(ref)

    thread = threading.Thread(target=swap, args=(domain, writer, ref, new, 0))
    thread.start()
    time.sleep(0.05)
    assert freed == []
    domain.drop(old)
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert freed == [old]


def test_cleanup_waits_for_reader():
    freed = []
    domain = HazardDomain(freed.append)
    writer = WriterState()
    old = Obj()
    ref = SharedRef(old)
    domain.load(ref)
    swap(domain, writer, ref, Obj(), DEFER_DEALLOC)

    timer = threading.Timer(0.05, domain.drop, args=(old,))
    timer.start()
    cleanup(domain, writer, 0)
    timer.join()
    assert freed == [old]
    assert old not in writer.retired


def test_main_runs(capsys):
    assert main(["--iters", "6"]) == 0
    out = capsys.readouterr().out
    assert out.count("updating config") == 3
    assert out.count("read config") == 6