import threading

import pytest

from proxytools.rabbit_queue import ChannelQueue


def test_pop_empty_raises():
    with pytest.raises(IndexError):
        ChannelQueue().pop()


def test_fifo_order_and_length():
    q = ChannelQueue()
    items = ["a", "b", "c"]
    for item in items:
        q.add(item)
    assert len(q) == len(items)
    assert [q.pop() for _ in items] == items
    assert len(q) == 0


def test_reusable_after_draining():
    q = ChannelQueue()
    q.add(1)
    assert q.pop() == 1
    with pytest.raises(IndexError):
        q.pop()
    q.add(2)
    assert q.pop() == 2


def test_concurrent_adds_are_all_counted():
    q = ChannelQueue()
    per_thread = 200
    threads = [
        threading.Thread(target=lambda: [q.add(i) for i in range(per_thread)])
        for _ in range(8)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(q) == per_thread * len(threads)