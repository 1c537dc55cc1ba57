"""A thread-safe map split into independently locked shards."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Hashable, Iterator
from dataclasses import dataclass, field
from typing import Any

SHARD_COUNT = 4

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619
_MASK32 = 0xFFFFFFFF


def fnv32(key: str) -> int:
    """Return the 32-bit FNV-1 hash of the UTF-8 bytes of ``key``."""
    h = _FNV_OFFSET
    for byte in key.encode("utf-8"):
        h = (h * _FNV_PRIME) & _MASK32
        h ^= byte
    return h


def _default_sharding(key: Hashable) -> int:
    return fnv32(key if isinstance(key, str) else str(key))


@dataclass
class _Shard:
    items: dict = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)


class ConcurrentMap:
    """Map whose entries are spread over ``SHARD_COUNT`` locked shards.

    ``sharding`` maps a key to an unsigned integer; by default keys are
    hashed with :func:`fnv32` over their string form.
    """

    def __init__(self, sharding: Callable[[Any], int] | None = None) -> None:
        self._sharding = sharding or _default_sharding
        self._shards = [_Shard() for _ in range(SHARD_COUNT)]

    def get_shard(self, key: Hashable) -> _Shard:
        """Return the shard responsible for ``key``."""
        return self._shards[(self._sharding(key) & _MASK32) % SHARD_COUNT]

    def set(self, key: Hashable, value: Any) -> None:
        shard = self.get_shard(key)
        with shard.lock:
            shard.items[key] = value

    def mset(self, data: dict) -> None:
        for key, value in data.items():
            self.set(key, value)

    def upsert(
        self,
        key: Hashable,
        value: Any,
        cb: Callable[[bool, Any, Any], Any],
    ) -> Any:
        """Store ``cb(exists, current, value)`` under ``key`` and return it.

        The callback runs with the shard locked and must not touch this map.
        """
        shard = self.get_shard(key)
        with shard.lock:
            exists = key in shard.items
            result = cb(exists, shard.items.get(key), value)
            shard.items[key] = result
            return result

    def set_if_absent(self, key: Hashable, value: Any) -> bool:
        """Store ``value`` only if ``key`` is missing; return whether it was stored."""
        shard = self.get_shard(key)
        with shard.lock:
            if key in shard.items:
                return False
            shard.items[key] = value
            return True

    def get(self, key: Hashable, default: Any = None) -> Any:
        shard = self.get_shard(key)
        with shard.lock:
            return shard.items.get(key, default)

    def has(self, key: Hashable) -> bool:
        shard = self.get_shard(key)
        with shard.lock:
            return key in shard.items

    def remove(self, key: Hashable) -> None:
        shard = self.get_shard(key)
        with shard.lock:
            shard.items.pop(key, None)

    def remove_cb(
        self,
        key: Hashable,
        cb: Callable[[Any, Any, bool], bool],
    ) -> bool:
        """Call ``cb(key, value, exists)`` under lock; remove the entry if it says so.

        Returns the callback's answer, even when the key was absent.
        """
        shard = self.get_shard(key)
        with shard.lock:
            exists = key in shard.items
            remove = cb(key, shard.items.get(key), exists)
            if remove and exists:
                del shard.items[key]
            return remove

    def pop(self, key: Hashable) -> Any:
        """Remove ``key`` and return its value; raise KeyError if it is absent."""
        shard = self.get_shard(key)
        with shard.lock:
            return shard.items.pop(key)

    def is_empty(self) -> bool:
        return len(self) == 0

    def items(self) -> dict:
        """Return a snapshot of all entries as a plain dict."""
        snapshot: dict = {}
        for shard in self._shards:
            with shard.lock:
                snapshot.update(shard.items)
        return snapshot

    def keys(self) -> list:
        keys: list = []
        for shard in self._shards:
            with shard.lock:
                keys.extend(shard.items)
        return keys

    def iter_cb(self, fn: Callable[[Any, Any], None]) -> None:
        """Call ``fn(key, value)`` for every entry, one shard locked at a time."""
        for shard in self._shards:
            with shard.lock:
                for key, value in shard.items.items():
                    fn(key, value)

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)

    def to_json(self) -> str:
        return json.dumps(self.items())

    def update_from_json(self, data: str | bytes) -> None:
        """Insert every entry of a JSON object into the map."""
        decoded = json.loads(data)
        if not isinstance(decoded, dict):
            raise ValueError("JSON document is not an object")
        self.mset(decoded)

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.items)
        return total

    def __contains__(self, key: object) -> bool:
        return self.has(key)  # type: ignore[arg-type]

    def __iter__(self) -> Iterator:
        return iter(self.keys())