"""An unbounded FIFO queue for threads that can be closed, with blocking and non-blocking reads."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from typing import Any, NamedTuple


class QueueClosedError(Exception):
    """Raised when writing to a closed queue, or reading one that is closed and empty."""


class DequeueResult(NamedTuple):
    """The outcome of one read from a :class:`MQueue`.

    ``value`` is None when ``ok`` is false. ``is_closed`` tells whether the
    queue was closed at the moment of the read.
    """

    value: Any
    ok: bool
    is_closed: bool


class MQueue:
    """Thread-safe FIFO queue.

    After :meth:`close` no more items may be added, but items already queued
    can still be read.
    """

    def __init__(self) -> None:
        self._items: deque = deque()
        self._open = True
        self._cond = threading.Condition()

    def close(self) -> None:
        """Close the queue and wake every waiting reader."""
        with self._cond:
            self._open = False
            self._cond.notify_all()

    def enqueue(self, value: Any) -> None:
        """Append ``value``; raise QueueClosedError if the queue is closed."""
        with self._cond:
            if not self._open:
                raise QueueClosedError("queue is closed")
            self._items.append(value)
            self._cond.notify_all()

    def _take(self) -> DequeueResult:
        is_closed = not self._open
        if not self._items:
            return DequeueResult(None, False, is_closed)
        return DequeueResult(self._items.popleft(), True, is_closed)

    def dequeue(self) -> DequeueResult:
        """Remove and return the head item without blocking."""
        with self._cond:
            return self._take()

    def dequeue_wait(self) -> DequeueResult:
        """Block until an item is available or the queue is closed and empty."""
        with self._cond:
            while self._open and not self._items:
                self._cond.wait()
            return self._take()

    def dequeue_func(self, fn: Callable[[Any, bool], bool]) -> None:
        """Feed items to ``fn(value, is_closed)`` until it returns False.

        Blocks while the queue is open and empty. Raises QueueClosedError once
        the queue is closed and has been drained.
        """
        while True:
            with self._cond:
                while self._open and not self._items:
                    self._cond.wait()
                result = self._take()
            if not result.ok:
                raise QueueClosedError("queue is closed and empty")
            if not fn(result.value, result.is_closed):
                return

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def is_open(self) -> bool:
        with self._cond:
            return self._open