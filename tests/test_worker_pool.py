import threading
import time

import pytest

from elasticpool.worker_pool import (
    Context,
    WorkerPool,
    current_worker,
    expanding_number,
    high_watermark,
    low_watermark,
)

QSIZE = 100000


def wait_until(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.002)
    return predicate()


class Counter:
    def __init__(self):
        self._lock = threading.Lock()
        self.value = 0

    def incr(self):
        with self._lock:
            self.value += 1


@pytest.fixture
def pools():
    p1 = WorkerPool(1, 8, QSIZE)
    p2 = WorkerPool(2, 256, QSIZE)
    yield p1, p2
    p1.close()
    p2.close()


def test_watermarks():
    assert high_watermark(8) == 6
    assert high_watermark(1) == 1
    assert low_watermark(8) == 2
    assert low_watermark(3) == 0


def test_expanding_number():
    assert expanding_number(1, 8) == 1
    assert expanding_number(4, 256) == 3
    assert expanding_number(10, 12) == 2
    assert expanding_number(8, 8) == 0
    assert expanding_number(9, 8) == 0


def test_initial_size(pools):
    p1, p2 = pools
    assert p1.size() == 1
    assert p2.size() == 2


def test_post_task(pools):
    p1, p2 = pools
    val = Counter()
    assert p1.post_task(val.incr)
    assert p2.post_task(val.incr)
    assert wait_until(lambda: val.value == 2)


def test_post_delay_task(pools):
    p1, p2 = pools
    val = Counter()
    assert p1.post_task(val.incr, 1)
    assert p2.post_task(val.incr, 1)
    assert wait_until(lambda: val.value == 2)


def test_delay_is_respected(pools):
    p1, _ = pools
    val = Counter()
    start = time.monotonic()
    done = threading.Event()

    def task():
        val.incr()
        done.set()

    assert p1.post_task(task, 200)
    assert done.wait(3.0)
    assert time.monotonic() - start >= 0.19
    assert val.value == 1


def test_post_period_task(pools):
    p1, _ = pools
    val = Counter()

    def task():
        if val.value < 10:
            val.incr()

    assert p1.post_period_task(task, 1)
    assert wait_until(lambda: val.value == 10)
    time.sleep(0.05)
    assert val.value == 10


def test_post_period_task_rejects_zero(pools):
    p1, _ = pools
    with pytest.raises(ValueError):
        p1.post_period_task(lambda: None, 0)


def test_worker_self(pools):
    p1, _ = pools
    val = Counter()
    owners = []
    reposted = []

    def task():
        val.incr()
        pool = current_worker().worker_pool()
        owners.append(pool)
        reposted.append(pool.post_task(val.incr))

    assert p1.post_task(task) is True
    assert wait_until(lambda: val.value == 2)
    assert owners == [p1]
    assert reposted == [True]


def test_use_context():
    class TestContext(Context):
        def get(self):
            return 1

    result = []
    with WorkerPool(1, 1, 10, lambda _wid: TestContext()) as pool:
        assert pool.size() == 1
        assert pool.post_task(
            lambda: result.append(current_worker().context().get())
        ) is True
        assert wait_until(lambda: result == [1])
    assert result == [1]


def test_supplier_receives_worker_ids():
    seen = []

    def supplier(worker_id):
        seen.append(worker_id)
        return Context()

    with WorkerPool(3, 3, 10, supplier) as pool:
        assert sorted(seen) == [0, 1, 2]
        assert pool.size() == 3
        ids = []
        done = threading.Event()

        def task():
            ids.append(current_worker().id())
            done.set()

        assert pool.post_task(task) is True
        assert done.wait(3.0)
        assert len(ids) == 1
        assert ids[0] in (0, 1, 2)


def test_null_context_fails_creation():
    with pytest.raises(RuntimeError):
        WorkerPool(2, 4, 10, lambda wid: Context() if wid == 0 else None)


def test_is_current_thread(pools):
    p1, p2 = pools
    assert p1.is_current_thread() is False
    results = []
    done = threading.Event()

    def task():
        results.append((p1.is_current_thread(), p2.is_current_thread()))
        done.set()

    p1.post_task(task)
    assert done.wait(3.0)
    assert results == [(True, False)]


def test_current_worker_outside_pool():
    assert current_worker() is None


def test_queue_full_returns_false():
    release = threading.Event()
    started = threading.Event()

    def blocker():
        started.set()
        release.wait(5.0)

    with WorkerPool(1, 1, 1) as pool:
        assert pool.post_task(blocker)
        assert started.wait(3.0)
        assert pool.post_task(lambda: None)
        assert pool.post_task(lambda: None) is False
        release.set()


def test_pool_expands_under_load():
    release = threading.Event()
    with WorkerPool(1, 8, QSIZE) as pool:
        for _ in range(4):
            pool.post_task(lambda: release.wait(5.0))
        assert wait_until(lambda: pool.size() >= 2)
        assert pool.size() <= 8
        assert pool.concurrent_workers() >= 1
        release.set()


def test_destruct_before_thread_exit():
    pool = WorkerPool(2, 8, QSIZE)
    pool.post_task(lambda: None)
    pool.close()
    assert pool.size() == 0
    assert pool.post_task(lambda: None) is False


def test_context_manager_closes():
    with WorkerPool(2, 4, 10) as pool:
        assert pool.size() == 2
    assert pool.size() == 0


def test_invalid_queue_size():
    with pytest.raises(ValueError):
        WorkerPool(1, 1, 0)