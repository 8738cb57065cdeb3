# concurkit

Building blocks for threaded Python programs: a read-copy-update map, a
broadcast ring, Go-style channels, deferred release of shared objects,
hazard pointers, a sorted concurrent set and a cooperative task scheduler.
Only the standard library is used.

## Modules

| Module | Contents |
| --- | --- |
| `concurkit.hashing` | 32-bit Murmur-style mixing: `hash_rot`, `mhash_add`, `mhash_finish`, `hash_add`, `hash_finish`, `hash_2words`, `hash_int` |
| `concurkit.xorshift` | `XorShift32` (a zero seed is replaced by the clock) and the per-thread helpers `set_seed` and `random_uint32` |
| `concurkit.rcu` | `RcuCell` holding a published value, `RcuRef` counted references whose `postpone`d callbacks run when the last holder releases, and `Fence` |
| `concurkit.cmap` | `ConcurrentMap` for many readers and one writer, with `CMapNode` entries and `CMapState` snapshots for iteration and `find(hash)` |
| `concurkit.pool` | `Pool` of equally sized `bytearray` elements (sizes rounded up to 16 bytes) and `pool_footprint` |
| `concurkit.broadcast` | `Broadcast` ring of `depth` messages that drops the oldest when full, and `Subscriber` readers |
| `concurkit.broadcast_stress` | `run_test` and `main`, a multi-threaded stress run of `Broadcast` |
| `concurkit.channel` | `Channel` (capacity 0 is a rendezvous), `ChannelClosed`, and the `run_test`/`main` exercise |
| `concurkit.free_later` | `FreeLater`, a two-stage buffer of objects to release once workers have moved on |
| `concurkit.hashmap` | `LockFreeHashMap` with a fixed number of buckets and compare-and-swap style chain updates |
| `concurkit.coro` | `Scheduler` running generator tasks round robin, `TaskArgs`, `fib_sequence`, `fib_task`, `count_task` |
| `concurkit.fiber` | `FiberPool` of at most `max_fibers` fibers, `FiberError`, `fiber_yield`, and the `fibonacci`/`squares` examples |
| `concurkit.hazard` | `HazardDomain`, `SharedRef`, `WriterState`, `swap` and `cleanup`, built on the `HPList` slot list |
| `concurkit.ordered_list` | `OrderedList`, a sorted set of integers with marked deletion, reclaimed through `HazardPointers` |

## Installation

```
pip install .
```

Tests:

```
pip install ".[test]"
pytest
```

## Examples

Hashing:

```python
from concurkit.hashing import hash_int

h = hash_int(42, 0)   # a 32-bit value
```

A buffered channel:

```python
import threading
from concurkit.channel import Channel, ChannelClosed

ch = Channel(4)

def produce():
    for i in range(10):
        ch.send(i)

t = threading.Thread(target=produce)
t.start()
received = [ch.recv() for _ in range(10)]
t.join()
ch.close()

try:
    ch.send(99)
except ChannelClosed:
    pass
```

After `close()`, every `send` and `recv` raises `ChannelClosed`, even if
buffered items remain. `try_send` and `try_recv` never wait for room or
items; `try_recv` returns `(True, item)` or `(False, None)`.

Deferred release:

```python
from concurkit.free_later import FreeLater

released = []
reclaimer = FreeLater()
reclaimer.register("old value", released.append)
reclaimer.stage()   # returns False if an earlier batch is still staged
reclaimer.run()     # releases the staged batch, newest first
reclaimer.close()   # releases anything left and refuses new registrations
```

A `FreeLater` can be handed to `LockFreeHashMap(n_buckets, cmp, hash,
reclaimer)`; replaced and deleted entries are then registered with it.
`put` returns True when it replaced an existing key, `get` returns None for
a missing key, and `delete` returns whether the key was removed.

Broadcasting:

```python
from concurkit.broadcast import Broadcast

bcast = Broadcast(depth=128, max_msg_size=8)
sub = bcast.subscribe()
bcast.publish(b"12345678")
message, drops = sub.receive()   # receive() returns None when nothing is new
```

`depth` must be a power of two. `publish` raises `ValueError` for a message
longer than `max_msg_size` and `BufferError` if no message buffer is free.
`drops` counts messages overwritten before the subscriber reached them.

Cooperative tasks:

```python
from concurkit.coro import Scheduler, TaskArgs, count_task

lines = []
sched = Scheduler()
sched.add(lambda a: count_task(a, lines.append), TaskArgs(n=3, i=0, task_name="A"))
sched.add(lambda a: count_task(a, lines.append), TaskArgs(n=3, i=0, task_name="B"))
sched.run()
```

## Commands

Each runs a small exercise and prints its progress:

```
concurkit-broadcast-stress [--messages N]   # publishers and subscribers on a Broadcast ring
concurkit-channel [--repeat N]              # 80 readers and 80 writers on unbuffered and buffered channels
concurkit-coro                              # three cooperative tasks: Fibonacci numbers and a counter
concurkit-fiber                             # two fibers printing Fibonacci numbers and squares
concurkit-hazard [--iters N]                # a reader and a writer sharing a configuration
concurkit-ordered-list [--threads N] [--elements N]   # concurrent inserts and deletes on an OrderedList
```

## What this package does not do

- The "lock-free" structures keep their algorithms (retry loops, marked
  links, hazard slots), but each compare-and-swap is carried out under a
  small internal `threading.Lock`. They give thread safety, not the speed
  or progress guarantees of hardware atomics.
- Fibers are ordinary threads; `fiber_yield` only calls `time.sleep(0)`.
  `FiberPool.wait_all` may be called only from the thread that created the
  pool.
- Nothing is stored on disk or sent over a network; every structure lives
  in the memory of one Python process.