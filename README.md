# elasticpool

A thread pool whose size follows the load.

The pool starts with `min_workers` threads and never drops below that
count. When at least three quarters of the workers are busy, a worker that
starts a task adds more workers: half the current count plus one, but never
more than `max_workers` in total. When no more than a quarter of the workers
are busy, and that has been true for ten seconds, a worker that finishes a
task retires. This repeats until the pool is back at `min_workers`.

Tasks wait in a bounded queue of `queue_size` entries. A task can run right
away, after a delay, or on a fixed period.

## Install

```
pip install elasticpool
```

The package uses only the standard library.

## Usage

```python
import time
from elasticpool.worker_pool import WorkerPool, current_worker

with WorkerPool(1, 8, 100_000) as pool:
    pool.post_task(lambda: print("now"))
    pool.post_task(lambda: print("after 50 ms"), delay_ms=50)
    pool.post_period_task(lambda: print("every 100 ms"), 100)

    # Code running inside a worker can find its worker and pool.
    pool.post_task(lambda: current_worker().worker_pool().post_task(print))

    time.sleep(0.5)
    print(pool.size(), "workers,", pool.concurrent_workers(), "busy")
```

- `post_task(func, delay_ms=None)` queues `func`. If you give `delay_ms`,
  the timer starts when a worker takes the request off the queue.
- `post_period_task(func, period_ms)` runs `func` every `period_ms`
  milliseconds. The first run comes one period after a worker takes the
  request. A `period_ms` of zero or less raises `ValueError`.
- Both return `False` when the queue is full or the pool has been closed.
- If a task raises an exception, the pool logs it through the `logging`
  module under the `elasticpool.worker_pool` logger. The worker then goes
  on with the next task.
- A `queue_size` below 1 raises `ValueError`.

### Sizing helpers

The module also exports the functions that set the thresholds:
`high_watermark(total)` returns `total - total // 4`,
`low_watermark(total)` returns `total // 4`, and
`expanding_number(total, max_workers)` returns `total // 2 + 1`, capped at
the room left below `max_workers`.

### Per-worker context

Pass a `context_supplier` to give each worker its own state. The pool calls
it with the worker id each time it creates a worker. If it returns `None`,
that worker is not created, and the pool stops adding workers in that round.
If the pool cannot reach `min_workers` when it is built, the constructor
raises `RuntimeError`. Without a supplier, every worker shares one plain
`Context` object.

```python
from elasticpool.worker_pool import Context, WorkerPool, current_worker

class Connection(Context):
    def __init__(self, worker_id):
        self.worker_id = worker_id

pool = WorkerPool(2, 4, 1000, context_supplier=Connection)
pool.post_task(lambda: print(current_worker().context().worker_id))
pool.close()
```

Inside a task, `current_worker()` returns the running `Worker`. From it you
can reach `id()`, `context()` and `worker_pool()`. Outside a worker thread,
`current_worker()` returns `None`. `pool.is_current_thread()` tells you
whether the calling thread is one of that pool's workers.

### Shutting down

`close()` tells every worker to stop. Each worker first runs whatever is
already in the queue, then `close()` waits for the workers to finish. If
you call it from one of the pool's own workers, it does not wait for that
worker. Leaving a `with` block calls `close()` for you.

## What it does not do

Tasks are plain callables with no arguments. The pool returns no futures
and no results. Once a periodic task is posted, it cannot be cancelled
except by closing the pool. The package is a library only and installs no
command.