"""An elastic pool of worker threads that grows under load and shrinks when idle."""

from __future__ import annotations

import heapq
import itertools
import logging
import queue
import threading
import time
from collections import deque
from typing import Callable, Optional

__all__ = [
    "Context",
    "Worker",
    "WorkerPool",
    "high_watermark",
    "low_watermark",
    "expanding_number",
    "current_worker",
]

_log = logging.getLogger(__name__)

# Wait this long below the low watermark before retiring workers.
SHRINK_WORKERS_WAIT_MS = 10000

Task = Callable[[], object]


def high_watermark(total_workers: int) -> int:
    """Busy-worker count (3/4 of total) at which the pool expands."""
    return total_workers - total_workers // 4


def expanding_number(total_workers: int, max_workers: int) -> int:
    """How many workers to add: half the total plus one, capped by the maximum."""
    room = max_workers - total_workers if max_workers > total_workers else 0
    return min(total_workers // 2 + 1, room)


def low_watermark(total_workers: int) -> int:
    """Busy-worker count (1/4 of total) at or below which the pool may shrink."""
    return total_workers // 4


def _now_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class Context:
    """Base class for per-worker state handed out by a context supplier."""


_DEFAULT_CONTEXT = Context()
_tls = threading.local()


def current_worker() -> Optional["Worker"]:
    """Return the worker running on the calling thread, or None."""
    return getattr(_tls, "worker", None)


class Worker:
    """One thread of a WorkerPool; starts running as soon as it is created."""

    def __init__(self, pool: "WorkerPool", worker_id: int, context: Context):
        self._pool = pool
        self._id = worker_id
        self._context = context
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._main,
            name=f"wp{pool._pool_id}-{worker_id}",
            daemon=True,
        )
        self._thread.start()

    def id(self) -> int:
        return self._id

    def context(self) -> Context:
        return self._context

    def worker_pool(self) -> "WorkerPool":
        return self._pool

    def _main(self) -> None:
        _tls.worker = self
        pool = self._pool
        while (task := pool._poll_task(self)) is not None:
            pool._begin_process()
            try:
                task()
            except Exception:
                _log.exception("task raised in worker %s", self._thread.name)
            finally:
                pool._end_process(self)


class WorkerPool:
    """Runs posted tasks on between min_workers and max_workers threads."""

    _pool_ids = itertools.count()

    def __init__(
        self,
        min_workers: int,
        max_workers: int,
        queue_size: int,
        context_supplier: Optional[Callable[[int], Optional[Context]]] = None,
    ):
        if queue_size < 1:
            raise ValueError("queue_size must be positive")
        self._pool_id = next(self._pool_ids)
        self._min_workers = min_workers
        self._max_workers = max_workers
        self._context_supplier = context_supplier or (lambda _wid: _DEFAULT_CONTEXT)
        self._queue: queue.Queue[Task] = queue.Queue(maxsize=queue_size)
        self._workers: dict[int, Worker] = {}
        self._total = 0
        self._busy = 0
        self._next_id = itertools.count()
        self._last_above_low_ts = 0
        self._counter_lock = threading.Lock()
        self._updating_lock = threading.Lock()
        self._polling_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._timers: list[tuple[int, int, Task, Optional[int]]] = []
        self._timer_seq = itertools.count()
        self._timer_tasks: deque[Task] = deque()
        self._closed = False

        with self._updating_lock:
            self._expand_workers(min_workers)
        if self._total < min_workers:
            self.close()
            raise RuntimeError("create minimal workers failed")

    def size(self) -> int:
        return len(self._workers)

    def concurrent_workers(self) -> int:
        return self._busy

    def is_current_thread(self) -> bool:
        worker = current_worker()
        return worker is not None and worker._pool is self

    def post_task(self, func: Task, delay_ms: Optional[int] = None) -> bool:
        """Queue func, optionally to run after delay_ms; False if the queue is full."""
        if delay_ms is None:
            return self._push(func)
        return self._push(lambda: self._add_timer(delay_ms, func, None))

    def post_period_task(self, func: Task, period_ms: int) -> bool:
        """Queue func to run every period_ms; False if the queue is full."""
        if period_ms <= 0:
            raise ValueError("period_ms must be positive")
        return self._push(lambda: self._add_timer(period_ms, func, period_ms))

    def close(self) -> None:
        """Stop every worker and wait for those not running this call."""
        with self._updating_lock:
            self._closed = True
            workers = list(self._workers.values())
            for worker in workers:
                worker._stop.set()
            self._workers.clear()
            self._total = 0
        me = threading.current_thread()
        for worker in workers:
            if worker._thread is not me:
                worker._thread.join()

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- internals ---------------------------------------------------------

    def _push(self, func: Task) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(func)
        except queue.Full:
            return False
        return True

    def _add_timer(self, delay_ms: int, func: Task, period_ms: Optional[int]) -> None:
        with self._timer_lock:
            heapq.heappush(
                self._timers,
                (_now_ms() + max(delay_ms, 0), next(self._timer_seq), func, period_ms),
            )

    def _move_timers(self) -> None:
        now = _now_ms()
        with self._timer_lock:
            while self._timers and self._timers[0][0] <= now:
                due, _, func, period = heapq.heappop(self._timers)
                self._timer_tasks.append(func)
                if period is not None:
                    heapq.heappush(
                        self._timers, (due + period, next(self._timer_seq), func, period)
                    )

    def _poll_timer_task(self) -> Optional[Task]:
        self._move_timers()
        return self._timer_tasks.popleft() if self._timer_tasks else None

    def _poll_task(self, worker: Worker) -> Optional[Task]:
        with self._polling_lock:
            while not worker._stop.is_set():
                task = self._poll_timer_task()
                if task is not None:
                    return task
                try:
                    return self._queue.get(timeout=0.001)
                except queue.Empty:
                    continue
            try:
                return self._queue.get_nowait()
            except queue.Empty:
                return None

    def _begin_process(self) -> None:
        with self._counter_lock:
            self._busy += 1
        if self._check_high_watermark() and self._updating_lock.acquire(blocking=False):
            try:
                if not self._closed and self._check_high_watermark():
                    self._expand_workers(expanding_number(self._total, self._max_workers))
            finally:
                self._updating_lock.release()

    def _end_process(self, worker: Worker) -> None:
        with self._counter_lock:
            self._busy -= 1
        if self._check_low_watermark() and self._updating_lock.acquire(blocking=False):
            try:
                if not self._closed and self._check_low_watermark():
                    self._retire_worker(worker)
            finally:
                self._updating_lock.release()

    def _check_high_watermark(self) -> bool:
        total = self._total
        if total >= self._max_workers:
            return False
        if self._busy >= high_watermark(total):
            self._last_above_low_ts = _now_ms()
            return True
        return False

    def _check_low_watermark(self) -> bool:
        total = self._total
        if total <= self._min_workers:
            return False
        now = _now_ms()
        if self._busy <= low_watermark(total):
            return self._last_above_low_ts + SHRINK_WORKERS_WAIT_MS <= now
        self._last_above_low_ts = now
        return False

    def _expand_workers(self, num: int) -> None:
        for _ in range(num):
            worker_id = next(self._next_id)
            context = self._context_supplier(worker_id)
            if context is None:
                break
            self._workers[worker_id] = Worker(self, worker_id, context)
        self._total = len(self._workers)

    def _retire_worker(self, worker: Worker) -> None:
        if self._workers.pop(worker.id(), None) is not None:
            worker._stop.set()
        self._total = len(self._workers)