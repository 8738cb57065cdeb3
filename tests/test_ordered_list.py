import threading

import pytest

from concurkit.ordered_list import (
    HP_MAX_HPS,
    UINTPTR_MAX,
    HazardPointers,
    OrderedList,
    main,
)


def test_insert_then_duplicate():
    lst = OrderedList()
    assert lst.insert(42) is True
    assert lst.insert(42) is False
    assert 42 in lst


def test_delete_present_and_absent():
    lst = OrderedList()
    lst.insert(7)
    assert lst.delete(7) is True
    assert lst.delete(7) is False
    assert 7 not in lst


def test_keys_are_kept_sorted():
    lst = OrderedList()
    keys = [50, 3, 99, 12, 7, 64]
    for key in keys:
        lst.insert(key)
    assert list(lst) == sorted(keys)


def test_reserved_keys_rejected():
    lst = OrderedList()
    with pytest.raises(ValueError):
        lst.insert(0)
    with pytest.raises(ValueError):
        lst.insert(UINTPTR_MAX)
    with pytest.raises(ValueError):
        lst.delete(-5)


def test_contains_non_key_is_false():
    lst = OrderedList()
    lst.insert(5)
    assert "5" not in lst
    assert 0 not in lst


def test_destroy_frees_every_node():
    lst = OrderedList()
    for key in range(1, 40):
        lst.insert(key)
    for key in range(1, 40, 3):
        lst.delete(key)
    lst.insert(10)  # duplicate of a remaining key
    lst.destroy()
    assert lst.inserts == lst.deletes


def test_use_after_destroy_raises():
    lst = OrderedList()
    lst.destroy()
    with pytest.raises(RuntimeError):
        lst.insert(3)


def test_concurrent_disjoint_inserts():
    lst = OrderedList()
    n_threads, per = 8, 50
    key_sets = [[t * per + i + 1 for i in range(per)] for t in range(n_threads)]
    threads = [
        threading.Thread(target=lambda ks=ks: [lst.insert(k) for k in ks])
        for ks in key_sets
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    expected = sorted(k for ks in key_sets for k in ks)
    assert list(lst) == expected


def test_concurrent_insert_delete_same_keys_stays_consistent():
    lst = OrderedList()
    keys = list(range(1, 101))

    def inserter():
        for _ in range(3):
            for k in keys:
                lst.insert(k)

    def deleter():
        for _ in range(3):
            for k in keys:
                lst.delete(k)

    threads = [threading.Thread(target=inserter) for _ in range(3)]
    threads += [threading.Thread(target=deleter) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    result = list(lst)
    assert result == sorted(set(result))
    assert set(result) <= set(keys)
    for k in keys:
        lst.delete(k)
    assert list(lst) == []
    lst.destroy()
    assert lst.inserts == lst.deletes


def test_hp_default_size():
    hp = HazardPointers(0, lambda obj: None)
    assert hp.max_hps == HP_MAX_HPS


def test_hp_protect_returns_object_and_checks_index():
    hp = HazardPointers(2, lambda obj: None)
    obj = object()
    assert hp.protect(1, obj) is obj
    with pytest.raises(IndexError):
        hp.protect(2, obj)


def test_retire_unprotected_frees_immediately():
    freed = []
    hp = HazardPointers(2, freed.append)
    obj = object()
    hp.retire(obj)
    assert freed == [obj]


def test_retire_protected_waits_until_cleared():
    freed = []
    hp = HazardPointers(2, freed.append)
    obj, other = object(), object()
    hp.protect(0, obj)
    hp.retire(obj)
    assert freed == []
    hp.clear()
    hp.retire(other)
    assert freed == [obj, other]


def test_protection_by_other_thread_blocks_free():
    freed = []
    hp = HazardPointers(2, freed.append)
    obj = object()
    protected = threading.Event()
    done = threading.Event()

    def holder():
        hp.protect(0, obj)
        protected.set()
        done.wait()

    t = threading.Thread(target=holder)
    t.start()
    protected.wait()
    hp.retire(obj)
    assert freed == []
    done.set()
    t.join()


def test_destroy_frees_remaining_retired():
    freed = []
    hp = HazardPointers(1, freed.append)
    obj = object()
    hp.protect(0, obj)
    hp.retire(obj)
    hp.destroy()
    assert freed == [obj]
    with pytest.raises(RuntimeError):
        hp.destroy()


def test_main_small_run(capsys):
    assert main(["--threads", "4", "--elements", "16"]) == 0
    err = capsys.readouterr().err
    assert err.startswith("inserts = ")
    counts = [int(part.split("=")[1]) for part in err.strip().split(",")]
    assert counts[0] == counts[1]