import threading
import time

import pytest

from proxytools.task_consumer import TaskConsumerManager


class _Tracker:
    def __init__(self):
        self.calls = 0
        self.active = 0
        self.peak = 0
        self.lock = threading.Lock()

    def enter(self):
        with self.lock:
            self.calls += 1
            self.active += 1
            self.peak = max(self.peak, self.active)

    def leave(self):
        with self.lock:
            self.active -= 1

    def work(self, stop):
        self.enter()
        time.sleep(0.01)
        self.leave()


def test_workers_are_bounded_and_restarted():
    manager = TaskConsumerManager()
    tracker = _Tracker()
    manager.add_task(3, tracker.work)
    time.sleep(0.3)
    manager.stop()
    assert 1 <= tracker.peak <= 3
    assert tracker.calls > 3
    assert tracker.active == 0


def test_stop_sets_context_and_waits_for_workers():
    manager = TaskConsumerManager()
    tracker = _Tracker()
    finished = []

    def worker(stop):
        tracker.enter()
        stop.wait()
        tracker.leave()
        finished.append(stop.is_set())

    manager.add_task(2, worker)
    deadline = time.monotonic() + 5
    while tracker.peak < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert manager.context().is_set() is False
    manager.stop()
    assert manager.context().is_set() is True
    assert tracker.peak == 2
    assert finished == [True, True]


def test_add_task_after_stop_runs_nothing():
    manager = TaskConsumerManager()
    manager.stop()
    calls = []
    manager.add_task(2, lambda stop: calls.append(1))
    time.sleep(0.1)
    assert calls == []


def test_invalid_count_rejected():
    manager = TaskConsumerManager()
    with pytest.raises(ValueError):
        manager.add_task(0, lambda stop: None)
    manager.stop()
    assert manager.context().is_set()