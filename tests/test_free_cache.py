import time
import uuid

import pytest

from proxytools.free_cache import (
    CacheMissError,
    FreeCache,
    get_free_cache,
    get_or_set_free_cache,
    set_free_cache,
)


def test_set_then_get():
    cache = FreeCache(1024 * 1024)
    cache.set("k", b"value", 0)
    assert cache.get("k") == b"value"


def test_missing_key_raises():
    cache = FreeCache(1024 * 1024)
    with pytest.raises(CacheMissError):
        cache.get("nope")
    with pytest.raises(KeyError):
        cache.get("nope")


def test_overwrite():
    cache = FreeCache(1024 * 1024)
    cache.set("k", b"one", 0)
    cache.set("k", b"two", 0)
    assert cache.get("k") == b"two"


def test_get_or_set():
    cache = FreeCache(1024 * 1024)
    assert cache.get_or_set("k", b"first", 0) is None
    assert cache.get_or_set("k", b"second", 0) == b"first"
    assert cache.get("k") == b"first"


def test_expiry():
    cache = FreeCache(1024 * 1024)
    cache.set("short", b"x", 1)
    cache.set("forever", b"y", 0)
    assert cache.get("short") == b"x"
    time.sleep(1.1)
    with pytest.raises(CacheMissError):
        cache.get("short")
    assert cache.get("forever") == b"y"
    assert cache.get_or_set("short", b"z", 0) is None
    assert cache.get("short") == b"z"


def test_entry_too_large():
    cache = FreeCache(1024 * 100)
    with pytest.raises(ValueError):
        cache.set("big", b"a" * 200, 0)
    with pytest.raises(CacheMissError):
        cache.get("big")


def test_eviction_drops_oldest():
    cache = FreeCache(1024 * 100)
    for i in range(3000):
        cache.set(f"k{i}", b"v" * 40, 0)
    with pytest.raises(CacheMissError):
        cache.get("k0")
    assert cache.get("k2999") == b"v" * 40


def test_recently_read_survives_eviction():
    cache = FreeCache(1024 * 100)
    cache.set("keep", b"kept", 0)
    for i in range(3000):
        cache.get("keep")
        cache.set(f"k{i}", b"v" * 40, 0)
    assert cache.get("keep") == b"kept"


def test_module_level_functions():
    key = f"test-{uuid.uuid4()}"
    with pytest.raises(CacheMissError):
        get_free_cache(key)
    assert get_or_set_free_cache(key, b"a", 0) is None
    assert get_or_set_free_cache(key, b"b", 0) == b"a"
    set_free_cache(key, b"c", 0)
    assert get_free_cache(key) == b"c"