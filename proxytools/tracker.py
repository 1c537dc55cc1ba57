"""Blacklists client/target pairs whose dials fail too often within a time window."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

WINDOW_TIME = 60.0
THRESHOLD = 500
DIAL_FAIL_CACHE_TTL = 10.0
BLACKLIST_TTL = 24 * 3600.0

_CLEAN_INTERVAL = 1.0


@dataclass
class _Item:
    value: Any
    ttl: float
    expires_at: float | None


class TtlCache:
    """Thread-safe mapping whose entries expire ``ttl`` seconds after being stored.

    With ``touch_on_hit`` a successful lookup restarts the entry's lifetime.
    A ttl of zero or less means the entry never expires.
    """

    def __init__(self, ttl: float, touch_on_hit: bool = True) -> None:
        self._ttl = ttl
        self._touch = touch_on_hit
        self._items: dict[Any, _Item] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _expired(item: _Item, now: float) -> bool:
        return item.expires_at is not None and item.expires_at <= now

    def _live(self, key: Any, now: float) -> _Item | None:
        item = self._items.get(key)
        if item is None:
            return None
        if self._expired(item, now):
            del self._items[key]
            return None
        if self._touch and item.ttl > 0:
            item.expires_at = now + item.ttl
        return item

    def _store(self, key: Any, value: Any, ttl: float, now: float) -> None:
        expires_at = now + ttl if ttl > 0 else None
        self._items[key] = _Item(value, ttl, expires_at)

    def get(self, key: Any) -> Any:
        """Return the live value under ``key``, or None."""
        with self._lock:
            item = self._live(key, time.monotonic())
            return None if item is None else item.value

    def set(self, key: Any, value: Any, ttl: float | None = None) -> None:
        """Store ``value``; ``ttl`` defaults to the cache's own."""
        with self._lock:
            self._store(key, value, self._ttl if ttl is None else ttl, time.monotonic())

    def get_or_set(self, key: Any, value: Any) -> tuple[Any, bool]:
        """Return ``(existing, True)``, or store ``value`` and return ``(value, False)``."""
        with self._lock:
            now = time.monotonic()
            item = self._live(key, now)
            if item is not None:
                return item.value, True
            self._store(key, value, self._ttl, now)
            return value, False

    def delete_expired(self) -> int:
        """Drop every expired entry and return how many were dropped."""
        with self._lock:
            now = time.monotonic()
            expired = [k for k, item in self._items.items() if self._expired(item, now)]
            for key in expired:
                del self._items[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            now = time.monotonic()
            return sum(not self._expired(item, now) for item in self._items.values())


@dataclass
class DialFailStats:
    """Failure count of one key and the start of its counting window in milliseconds."""

    fail_count: int
    first_conn_time: int


class DialFailTracker:
    """Counts dial failures per key and blacklists keys that exceed the threshold.

    More than ``THRESHOLD`` failures within ``WINDOW_TIME`` seconds blacklist a
    key for ``BLACKLIST_TTL`` seconds. ``on_blacklist`` receives an alert message
    each time a key is blacklisted.
    """

    def __init__(self, on_blacklist: Callable[[str], Any] | None = None) -> None:
        self._dial_fail_cache = TtlCache(DIAL_FAIL_CACHE_TTL)
        self._blacklist = TtlCache(BLACKLIST_TTL, touch_on_hit=False)
        self._on_blacklist = on_blacklist
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._cleaner = threading.Thread(target=self._clean, daemon=True)
        self._cleaner.start()

    def _clean(self) -> None:
        while not self._closed.wait(_CLEAN_INTERVAL):
            self._dial_fail_cache.delete_expired()
            self._blacklist.delete_expired()

    def is_blacklisted(self, ip_and_target: str) -> bool:
        return self._blacklist.get(ip_and_target) is not None

    def record_dial_fail_connection(self, ip_and_target: str) -> None:
        """Count one failed dial for ``ip_and_target``."""
        if self._blacklist.get(ip_and_target) is not None:
            return
        now_ms = int(time.time() * 1000)
        stats, found = self._dial_fail_cache.get_or_set(
            ip_and_target, DialFailStats(fail_count=1, first_conn_time=now_ms)
        )
        if not found:
            return
        with self._lock:
            if now_ms - stats.first_conn_time > WINDOW_TIME * 1000:
                stats.first_conn_time = now_ms
                stats.fail_count = 1
                return
            stats.fail_count += 1
            count = stats.fail_count
        if count <= THRESHOLD:
            return
        self._blacklist.set(ip_and_target, datetime.now(timezone.utc), BLACKLIST_TTL)
        logger.warning(
            "IPAndTarget %s exceeded connection threshold (%d in %ss). Adding to blacklist.",
            ip_and_target,
            count,
            int(WINDOW_TIME),
        )
        if self._on_blacklist is not None:
            self._on_blacklist(
                f"Suspected attack: ip and target [{ip_and_target}] failed to dial "
                f"{count} times within {int(WINDOW_TIME)} seconds and has been blacklisted."
            )

    def close(self) -> None:
        """Stop the background expiry thread."""
        self._closed.set()
        if self._cleaner.is_alive() and self._cleaner is not threading.current_thread():
            self._cleaner.join()

    def __enter__(self) -> DialFailTracker:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()