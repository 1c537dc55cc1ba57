import json
import threading

import pytest

from proxytools.concurrent_map import SHARD_COUNT, ConcurrentMap, fnv32


def test_fnv32_empty_is_offset_basis():
    assert fnv32("") == 2166136261


def test_fnv32_known_vector():
    assert fnv32("a") == 0x050C5D7E


def test_set_get_and_default():
    m = ConcurrentMap()
    m.set("k", 1)
    assert m.get("k") == 1
    assert m.get("missing") is None
    assert m.get("missing", 7) == 7


def test_mset_and_len():
    m = ConcurrentMap()
    data = {f"key{i}": i for i in range(50)}
    m.mset(data)
    assert len(m) == 50
    assert m.items() == data
    assert sorted(m.keys()) == sorted(data)


def test_set_if_absent():
    m = ConcurrentMap()
    assert m.set_if_absent("a", 1) is True
    assert m.set_if_absent("a", 2) is False
    assert m.get("a") == 1


def test_upsert_passes_existing_value():
    m = ConcurrentMap()
    calls = []

    def cb(exists, current, new):
        calls.append((exists, current, new))
        return (current or 0) + new

    assert m.upsert("n", 3, cb) == 3
    assert m.upsert("n", 4, cb) == 7
    assert calls == [(False, None, 3), (True, 3, 4)]
    assert m.get("n") == 7


def test_remove_and_has():
    m = ConcurrentMap()
    m.set("x", 1)
    assert m.has("x")
    assert "x" in m
    m.remove("x")
    assert not m.has("x")
    m.remove("x")
    assert m.is_empty()


def test_remove_cb():
    m = ConcurrentMap()
    m.set("x", 10)
    assert m.remove_cb("x", lambda k, v, exists: v > 100) is False
    assert m.has("x")
    assert m.remove_cb("x", lambda k, v, exists: exists and v == 10) is True
    assert not m.has("x")
    assert m.remove_cb("y", lambda k, v, exists: True) is True
    assert len(m) == 0


def test_pop():
    m = ConcurrentMap()
    m.set("p", "value")
    assert m.pop("p") == "value"
    assert "p" not in m
    with pytest.raises(KeyError):
        m.pop("p")


def test_iter_and_iter_cb():
    m = ConcurrentMap()
    m.mset({"a": 1, "b": 2, "c": 3})
    assert sorted(m) == ["a", "b", "c"]
    seen = {}
    m.iter_cb(lambda k, v: seen.__setitem__(k, v))
    assert seen == {"a": 1, "b": 2, "c": 3}


def test_clear():
    m = ConcurrentMap()
    m.mset({str(i): i for i in range(20)})
    m.clear()
    assert m.is_empty()
    assert m.items() == {}


def test_json_round_trip():
    m = ConcurrentMap()
    m.mset({"a": 1, "b": [1, 2], "c": {"d": "e"}})
    text = m.to_json()
    assert json.loads(text) == m.items()
    other = ConcurrentMap()
    other.update_from_json(text)
    assert other.items() == m.items()


def test_update_from_json_rejects_bad_input():
    m = ConcurrentMap()
    with pytest.raises(json.JSONDecodeError):
        m.update_from_json("{not json")
    with pytest.raises(ValueError):
        m.update_from_json("[1, 2]")
    assert m.is_empty()


def test_custom_sharding():
    m = ConcurrentMap(sharding=lambda key: key)
    assert m.get_shard(1) is m.get_shard(1 + SHARD_COUNT)
    assert m.get_shard(1) is not m.get_shard(2)
    m.set(1, "one")
    m.set(1 + SHARD_COUNT, "five")
    assert m.get_shard(1).items == {1: "one", 1 + SHARD_COUNT: "five"}


def test_concurrent_writers():
    m = ConcurrentMap()

    def writer(base):
        for i in range(200):
            m.set(f"{base}-{i}", i)

    threads = [threading.Thread(target=writer, args=(t,)) for t in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(m) == 8 * 200


def test_concurrent_upsert_counter():
    m = ConcurrentMap()

    def incr():
        for _ in range(500):
            m.upsert("c", 1, lambda exists, cur, new: (cur if exists else 0) + new)

    threads = [threading.Thread(target=incr) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert m.get("c") == 2000