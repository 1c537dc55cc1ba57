# proxytools

Utilities for the plumbing around a proxy server. Each module can be used on its own.

| Module | What it gives you |
| --- | --- |
| `proxytools.socks5` | Reading and writing the SOCKS5 handshake: version, auth methods, username/password sub-negotiation, destination address and replies (`AddrSpec`, `Reply`, `Socks5Error`). |
| `proxytools.concurrent_map` | `ConcurrentMap`, a thread-safe dictionary split into four locked shards, and the `fnv32` hash used by default to pick a shard. |
| `proxytools.mqueue` | `MQueue`, an unbounded thread-safe FIFO queue with non-blocking and blocking reads and an explicit close (`DequeueResult`, `QueueClosedError`). |
| `proxytools.task_consumer` | `TaskConsumerManager`, which keeps a fixed number of worker threads running a function until it is stopped. |
| `proxytools.tracker` | `DialFailTracker`, which counts failed outbound dials per key and blacklists keys that fail too often, built on `TtlCache`. |
| `proxytools.free_cache` | `FreeCache`, a size-bounded byte cache with per-entry expiry and LRU eviction, and module-level helpers over a shared 100 MB instance. |
| `proxytools.tool` | `rand_string` for random letter strings and `get_ipv4_from_link` for the first non-loopback IPv4 address of this host. |
| `proxytools.rabbit_pool` | `RabbitPool`, a pool of RabbitMQ connections and cached channels for publishing, with `new_product_pool` and `new_consume_pool`. |
| `proxytools.rabbit_consume` | `run_consume` and `consume_task` for consuming with a pool, and `RetryClient` for acknowledging or retrying a message through a dead-letter queue. |
| `proxytools.rabbit_common`, `rabbit_data`, `rabbit_balance`, `rabbit_queue` | Shared constants, `RabbitMqError`, `ConsumeReceive`, `RabbitMqData`, round-robin balancing and a small channel FIFO. |

The package needs Python 3.10 or later and depends on `pika` and `psutil`.

## Examples

### A sharded map

```python
from proxytools.concurrent_map import ConcurrentMap

sessions = ConcurrentMap()
sessions.set("10.0.0.1:5000", "alive")
sessions.set_if_absent("10.0.0.2:5000", "alive")

print(len(sessions))                 # 2
print("10.0.0.1:5000" in sessions)   # True
print(sessions.to_json())
```

`pop` raises `KeyError` for a missing key; `get` returns a default instead.

### A queue shared between threads

```python
from proxytools.mqueue import MQueue

jobs = MQueue()
jobs.enqueue("first")
jobs.enqueue("second")

result = jobs.dequeue()        # DequeueResult(value='first', ok=True, is_closed=False)
jobs.close()                   # no more enqueues; waiting readers wake up
print(jobs.dequeue_wait())     # still returns 'second' after close
```

Enqueueing on a closed queue raises `QueueClosedError`; so does `dequeue_func` once the queue is closed and drained.

### Keeping workers running

```python
from proxytools.task_consumer import TaskConsumerManager

def worker(stop_event):
    stop_event.wait(1.0)       # do one unit of work, then return

manager = TaskConsumerManager()
manager.add_task(4, worker)    # four workers at a time, restarted as they return
manager.stop()                 # sets the event and waits for every worker
```

### Tracking failed dials

```python
from proxytools.tracker import DialFailTracker

with DialFailTracker(on_blacklist=print) as tracker:
    tracker.record_dial_fail_connection("10.0.0.1|example.com:443")
    print(tracker.is_blacklisted("10.0.0.1|example.com:443"))   # False
```

More than 500 failures for one key within 60 seconds blacklist it for 24 hours; `on_blacklist` receives an alert message when that happens.

### A byte cache

```python
from proxytools.free_cache import CacheMissError, FreeCache

cache = FreeCache(10 * 1024 * 1024)
cache.set("k", b"value", expire_seconds=30)
print(cache.get("k"))                    # b'value'
print(cache.get_or_set("k", b"other"))   # b'value' (None when it stored the new value)
```

`get` raises `CacheMissError` for missing or expired keys.

### SOCKS5 replies

```python
import ipaddress

from proxytools.socks5 import AddrSpec, Reply, send_reply

# conn is an accepted socket
send_reply(conn, Reply.SUCCESS, AddrSpec(ip=ipaddress.ip_address("127.0.0.1"), port=1080))
```

Every helper in `proxytools.socks5` sets a two-second timeout on the socket and raises `Socks5Error` on malformed or truncated input.

### Publishing to RabbitMQ

```python
from proxytools.rabbit_data import get_rabbit_mq_data_format
from proxytools.rabbit_pool import new_product_pool

password = "password"
pool = new_product_pool()
pool.connect("localhost", 5672, "user", password)

message = get_rabbit_mq_data_format(
    "events", "direct", "events-queue", "events-route", b"payload", "message-1"
)
pool.push(message)
```

`push` retries a failed publish every two seconds, up to 99 attempts, and then raises `RabbitMqError` with code 501; it raises code 502 when no channel can be opened.

### Consuming from RabbitMQ

```python
from proxytools.rabbit_common import ConsumeReceive
from proxytools.rabbit_consume import run_consume
from proxytools.rabbit_pool import new_consume_pool

def handle(body, headers, retry_client):
    retry_client.ack()
    return True

password = "password"
pool = new_consume_pool()
pool.connect("localhost", 5672, "user", password)
pool.register_consume_receive(
    ConsumeReceive("events", "direct", "events-route", "events-queue",
                   event_success=handle, is_try=True, max_retry=3)
)
run_consume(pool)   # blocks; reconnects up to consume_max_retry times
```

When a handler returns `False` and `is_try` is set, the message goes back through an `<exchange>-dead` exchange after a random delay, until `max_retry` is reached.

## What it does not do

This is a library of parts, not a proxy. It does not accept connections or relay traffic, has no command-line program and no configuration loading; the SOCKS5 helpers only read and write single handshake messages on a socket you supply. It has no general thread-pool runner that collects a fixed number of results; use `concurrent.futures` for that.