"""A size-bounded in-memory byte cache with per-entry expiry and LRU eviction."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass

CACHE_SIZE = 100 * 1024 * 1024

_ENTRY_HEADER_SIZE = 24
_MAX_KEY_SIZE = 65535


class CacheMissError(KeyError):
    """Raised when a key is absent from the cache or has expired."""


@dataclass
class _Entry:
    value: bytes
    expire_at: float | None
    size: int


class FreeCache:
    """Thread-safe cache holding at most ``max_bytes`` of keys and values.

    An ``expire_seconds`` of zero or less stores an entry without expiry.
    A single entry may take at most ``max_bytes // 1024`` bytes.
    """

    def __init__(self, max_bytes: int = CACHE_SIZE) -> None:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        self._max_bytes = max_bytes
        self._max_entry = max(max_bytes // 1024, 1)
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._used = 0
        self._lock = threading.Lock()

    def _lookup(self, key: str, now: float) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expire_at is not None and entry.expire_at <= now:
            self._drop(key)
            return None
        self._entries.move_to_end(key)
        return entry

    def _drop(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._used -= entry.size

    def _store(self, key: str, value: bytes, expire_seconds: int, now: float) -> None:
        key_size = len(key.encode("utf-8"))
        if key_size > _MAX_KEY_SIZE:
            raise ValueError("key is larger than 65535 bytes")
        size = _ENTRY_HEADER_SIZE + key_size + len(value)
        if size > self._max_entry:
            raise ValueError("entry is larger than the cache allows")
        if key in self._entries:
            self._drop(key)
        while self._entries and self._used + size > self._max_bytes:
            oldest = next(iter(self._entries))
            self._drop(oldest)
        expire_at = now + expire_seconds if expire_seconds > 0 else None
        self._entries[key] = _Entry(bytes(value), expire_at, size)
        self._used += size

    def get(self, key: str) -> bytes:
        """Return the value under ``key``; raise CacheMissError if there is none."""
        with self._lock:
            entry = self._lookup(key, time.monotonic())
            if entry is None:
                raise CacheMissError(key)
            return entry.value

    def set(self, key: str, value: bytes, expire_seconds: int = 0) -> None:
        with self._lock:
            self._store(key, value, expire_seconds, time.monotonic())

    def get_or_set(self, key: str, value: bytes, expire_seconds: int = 0) -> bytes | None:
        """Return the existing value, or store ``value`` and return None."""
        with self._lock:
            now = time.monotonic()
            entry = self._lookup(key, now)
            if entry is not None:
                return entry.value
            self._store(key, value, expire_seconds, now)
            return None


_cache = FreeCache(CACHE_SIZE)


def get_or_set_free_cache(key: str, value: bytes, expire_seconds: int) -> bytes | None:
    return _cache.get_or_set(key, value, expire_seconds)


def get_free_cache(key: str) -> bytes:
    return _cache.get(key)


def set_free_cache(key: str, value: bytes, expire_seconds: int) -> None:
    _cache.set(key, value, expire_seconds)