"""Keeps a fixed number of worker threads running a function until stopped."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

_POLL = 0.05


class TaskConsumerManager:
    """Runs worker functions repeatedly, a fixed number at a time, until :meth:`stop`.

    Each worker receives the manager's stop event; when a worker returns, a
    new one is started in its place.
    """

    def __init__(self) -> None:
        self._stop = threading.Event()
        self._supervisors: list[threading.Thread] = []
        self._lock = threading.Lock()

    def context(self) -> threading.Event:
        """Return the event that is set once the manager stops."""
        return self._stop

    def add_task(self, count: int, fn: Callable[[threading.Event], Any]) -> None:
        """Keep ``count`` threads running ``fn(stop_event)``; ignored once stopped."""
        if self._stop.is_set():
            return
        if count < 1:
            raise ValueError("count must be at least 1")
        supervisor = threading.Thread(target=self._supervise, args=(count, fn), daemon=True)
        with self._lock:
            self._supervisors.append(supervisor)
        supervisor.start()

    def _supervise(self, count: int, fn: Callable[[threading.Event], Any]) -> None:
        slots = threading.BoundedSemaphore(count)
        workers: set[threading.Thread] = set()
        workers_lock = threading.Lock()

        def work() -> None:
            try:
                fn(self._stop)
            finally:
                with workers_lock:
                    workers.discard(threading.current_thread())
                slots.release()

        while not self._stop.is_set():
            if not slots.acquire(timeout=_POLL):
                continue
            if self._stop.is_set():
                slots.release()
                break
            worker = threading.Thread(target=work, daemon=True)
            with workers_lock:
                workers.add(worker)
            worker.start()

        with workers_lock:
            remaining = list(workers)
        for worker in remaining:
            worker.join()

    def stop(self) -> None:
        """Signal all workers to stop and wait for them to finish."""
        self._stop.set()
        with self._lock:
            supervisors = list(self._supervisors)
        for supervisor in supervisors:
            supervisor.join()