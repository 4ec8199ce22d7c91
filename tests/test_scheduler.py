"""Tests for the single-flight periodic task runner."""
import threading
import time
import pytest

from monitor.scheduler import PeriodicTask


@pytest.fixture
def tasks():
    created = []

    def _make(func, **kwargs):
        kwargs.setdefault("tick", 0.02)
        task = PeriodicTask("test", func, **kwargs)
        created.append(task)
        return task

    yield _make
    for task in created:
        task.close()


def _wait_for(predicate, timeout=5):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.01)
    return predicate()


def test_run_now_returns_result(tasks):
    task = tasks(lambda: 42)
    assert task.run_now().result(timeout=5) == 42
    assert task.busy is False


def test_exception_propagates_to_future(tasks):
    def fail():
        raise RuntimeError("nope")

    task = tasks(fail)
    with pytest.raises(RuntimeError, match="nope"):
        task.run_now().result(timeout=5)


def test_overlapping_calls_share_one_run(tasks):
    gate = threading.Event()
    calls = []

    def slow():
        calls.append(1)
        gate.wait(timeout=5)
        return len(calls)

    task = tasks(slow)
    futures = [task.run_now() for _ in range(5)]
    gate.set()

    assert all(f is futures[0] for f in futures)
    assert futures[0].result(timeout=5) == 1
    assert len(calls) == 1


def test_new_run_after_previous_finished(tasks):
    counter = []
    task = tasks(lambda: counter.append(1) or len(counter))
    assert task.run_now().result(timeout=5) == 1
    assert task.run_now().result(timeout=5) == 2


def test_start_runs_immediately(tasks):
    task = tasks(lambda: "first", interval_seconds=60)
    first = task.start()
    assert first.result(timeout=5) == "first"
    assert task.running is True


def test_start_with_initial_delay(tasks):
    ran = threading.Event()
    task = tasks(ran.set, interval_seconds=60, initial_delay=0.1)

    assert task.start() is None
    assert not ran.is_set()
    assert ran.wait(timeout=5)


def test_runs_periodically_until_stopped(tasks):
    counter = []
    task = tasks(lambda: counter.append(1), interval_seconds=0.05)
    task.start()

    assert _wait_for(lambda: len(counter) >= 3)
    task.stop(wait=True)
    assert task.running is False
    seen = len(counter)
    time.sleep(0.2)
    assert len(counter) == seen


def test_stop_before_initial_delay_never_runs(tasks):
    ran = threading.Event()
    task = tasks(ran.set, interval_seconds=60, initial_delay=0.5)
    task.start()
    task.stop()
    assert not ran.wait(timeout=0.8)


def test_run_after_close_fails(tasks):
    task = tasks(lambda: None)
    task.close()
    with pytest.raises(RuntimeError):
        task.run_now().result(timeout=5)


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PeriodicTask("bad", lambda: None, interval_seconds=0)
