"""A thread-safe FIFO of pooled channels."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any


class ChannelQueue:
    """Thread-safe first-in first-out queue."""

    def __init__(self) -> None:
        self._items: deque = deque()
        self._lock = threading.Lock()

    def add(self, item: Any) -> None:
        """Append ``item`` to the tail."""
        with self._lock:
            self._items.append(item)

    def pop(self) -> Any:
        """Remove and return the head item; raise IndexError when empty."""
        with self._lock:
            if not self._items:
                raise IndexError("pop from an empty channel queue")
            return self._items.popleft()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)