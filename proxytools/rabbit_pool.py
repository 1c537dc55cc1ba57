"""A pool of broker connections and channels for publishing and consuming."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from itertools import count
from typing import Any
from urllib.parse import quote

import pika
import pika.exceptions

from proxytools.rabbit_balance import RabbitLoadBalance
from proxytools.rabbit_common import (
    DEFAULT_MAX_CONNECTION,
    DEFAULT_MAX_CONSUME_CHANNEL,
    DEFAULT_MAX_CONSUME_RETRY,
    DEFAULT_MAX_PRODUCT_RETRY,
    DEFAULT_PUSH_MAX_TIME,
    DEFAULT_RETRY_MAX_RANDOM_TIME,
    DEFAULT_RETRY_MIN_RANDOM_TIME,
    EXCHANGE_TYPE_DIRECT,
    EXCHANGE_TYPE_FANOUT,
    EXCHANGE_TYPE_TOPIC,
    LOAD_BALANCE_ROUND,
    RABBITMQ_TYPE_CONSUME,
    RABBITMQ_TYPE_PUBLISH,
    RCODE_CHANNEL_CREATE_ERROR,
    RCODE_CHANNEL_QUEUE_EXCHANGE_BIND_ERROR,
    RCODE_CONNECTION_ERROR,
    RCODE_GET_CHANNEL_ERROR,
    RCODE_PUSH_MAX_ERROR,
    ConsumeReceive,
    RabbitMqError,
    channel_hash_code,
    log,
)
from proxytools.rabbit_data import RabbitMqData

_BROKER_ERRORS = (pika.exceptions.AMQPError, OSError)
_EXCHANGE_TYPES = (EXCHANGE_TYPE_DIRECT, EXCHANGE_TYPE_FANOUT, EXCHANGE_TYPE_TOPIC)
_QUEUE_MESSAGE_TTL = 5000


@dataclass
class PooledChannel:
    """A broker channel and its slot number."""

    channel: Any
    index: int = 0


@dataclass
class PooledConnection:
    """A broker connection and its position in the pool."""

    connection: Any
    index: int


def connection_url(user: str, password: str, host: str, port: int, virtual_host: str) -> str:
    """Return the AMQP URL for these credentials; a blank virtual host means '/'."""
    vhost = virtual_host.strip() or "/"
    if not vhost.startswith("/"):
        vhost = "/" + vhost
    return f"amqp://{quote(user, safe='')}:{quote(password, safe='')}@{host}:{port}{vhost}"


def open_connection(user: str, password: str, host: str, port: int, virtual_host: str) -> Any:
    """Open a blocking broker connection; raise RabbitMqError on failure."""
    url = connection_url(user, password, host, port, virtual_host)
    try:
        return pika.BlockingConnection(pika.URLParameters(url))
    except _BROKER_ERRORS as exc:
        raise RabbitMqError(RCODE_CONNECTION_ERROR, "connection failed", str(exc)) from exc


def declare(
    channel: Any,
    client_type: int,
    exchange_name: str,
    exchange_type: str,
    queue_name: str,
    route: str,
    is_dead_queue: bool = False,
    old_exchange_name: str = "",
    old_route: str = "",
) -> None:
    """Declare the exchange and, for consumers, the queue and its binding.

    A dead-letter queue forwards expired messages to ``old_exchange_name``
    with ``old_route``. Raises RabbitMqError on any failure.
    """
    if client_type == RABBITMQ_TYPE_PUBLISH and exchange_type not in _EXCHANGE_TYPES:
        raise RabbitMqError(
            RCODE_CHANNEL_QUEUE_EXCHANGE_BIND_ERROR,
            "invalid exchange type",
            exchange_type,
        )
    try:
        channel.exchange_declare(
            exchange=exchange_name,
            exchange_type=exchange_type,
            durable=False,
            auto_delete=False,
            internal=False,
        )
    except _BROKER_ERRORS as exc:
        raise RabbitMqError(
            RCODE_CHANNEL_QUEUE_EXCHANGE_BIND_ERROR, "failed to declare exchange", str(exc)
        ) from exc

    needs_queue = (
        client_type != RABBITMQ_TYPE_PUBLISH and exchange_type != EXCHANGE_TYPE_FANOUT
    ) or (
        client_type == RABBITMQ_TYPE_CONSUME
        and exchange_type in (EXCHANGE_TYPE_FANOUT, EXCHANGE_TYPE_DIRECT)
    )
    if not needs_queue:
        return

    arguments: dict[str, Any] = {}
    if is_dead_queue:
        arguments["x-dead-letter-exchange"] = old_exchange_name
        old_route = old_route.strip()
        if old_route:
            arguments["x-dead-letter-routing-key"] = old_route
    arguments["x-message-ttl"] = _QUEUE_MESSAGE_TTL
    try:
        result = channel.queue_declare(
            queue=queue_name,
            durable=False,
            auto_delete=True,
            exclusive=False,
            arguments=arguments,
        )
    except _BROKER_ERRORS as exc:
        raise RabbitMqError(
            RCODE_CHANNEL_QUEUE_EXCHANGE_BIND_ERROR, "failed to declare queue", str(exc)
        ) from exc
    try:
        channel.queue_bind(queue=result.method.queue, exchange=exchange_name, routing_key=route)
    except _BROKER_ERRORS as exc:
        raise RabbitMqError(
            RCODE_CHANNEL_QUEUE_EXCHANGE_BIND_ERROR, "failed to bind queue", str(exc)
        ) from exc


class RabbitPool:
    """A set of broker connections, each with its own cache of channels.

    Connections are picked round robin. Producers publish with :meth:`push`;
    consumers register with :meth:`register_consume_receive`.
    """

    def __init__(self, client_type: int = RABBITMQ_TYPE_PUBLISH) -> None:
        self.client_type = client_type
        self.min_random_retry_time = DEFAULT_RETRY_MIN_RANDOM_TIME
        self.max_random_retry_time = DEFAULT_RETRY_MAX_RANDOM_TIME
        self.max_connection = DEFAULT_MAX_CONNECTION
        self.push_max_time = DEFAULT_PUSH_MAX_TIME
        self.connection_balance = LOAD_BALANCE_ROUND
        self.connection_index = 0
        self.consume_max_channel = DEFAULT_MAX_CONSUME_CHANNEL
        self.consume_max_retry = DEFAULT_MAX_CONSUME_RETRY
        self.consume_current_retry = 0
        self.product_max_retry = DEFAULT_MAX_PRODUCT_RETRY
        self.product_current_retry = 0
        self.consume_receives: list[ConsumeReceive] = []
        self.connections: dict[int, list[PooledConnection]] = {}
        self.channel_pool: dict[int, PooledChannel] = {}
        self.channel_lock = threading.Lock()
        self.connection_lock = threading.Lock()
        self.load_balance = RabbitLoadBalance()
        self.retry_interval = 2.0
        self.user = ""
        self.password = ""
        self.virtual_host = "/"
        self._host = ""
        self._port = 0

    def set_max_consume_channel(self, max_consume: int) -> None:
        self.consume_max_channel = max_consume

    def set_max_connection(self, max_connection: int) -> None:
        self.max_connection = max_connection

    def set_random_retry_time(self, min_time: int, max_time: int) -> None:
        """Set the range, in milliseconds, of the random delay before a retry."""
        self.min_random_retry_time = min_time
        self.max_random_retry_time = max_time

    def set_connection_balance(self, balance: int) -> None:
        self.connection_balance = balance

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    def connect(self, host: str, port: int, user: str, password: str) -> None:
        """Open the pool's connections on the default virtual host."""
        self.connect_virtual_host(host, port, user, password, "/")

    def connect_virtual_host(
        self, host: str, port: int, user: str, password: str, virtual_host: str
    ) -> None:
        """Open the pool's connections on ``virtual_host``."""
        self._host = host
        self._port = port
        self.user = user
        self.password = password
        self.virtual_host = virtual_host
        self.init_connections()

    def init_connections(self) -> None:
        """(Re)open ``max_connection`` connections for this pool's client type."""
        pooled: list[PooledConnection] = []
        self.connections[self.client_type] = pooled
        for index in range(self.max_connection):
            pooled.append(PooledConnection(self.open_connection(), index))

    def open_connection(self) -> Any:
        """Open one new connection with the pool's credentials."""
        return open_connection(self.user, self.password, self._host, self._port, self.virtual_host)

    def register_consume_receive(self, receive: ConsumeReceive | None) -> None:
        """Add a consumer registration; None is ignored."""
        if receive is not None:
            self.consume_receives.append(receive)

    def next_connection(self) -> PooledConnection:
        """Return the next connection in round-robin order."""
        pooled = self.connections.get(self.client_type) or []
        if not pooled:
            raise RabbitMqError(RCODE_CONNECTION_ERROR, "pool is not connected", "")
        self.connection_index = self.load_balance.round_robin(
            self.connection_index, self.max_connection
        )
        return pooled[self.connection_index % len(pooled)]

    def create_channel(self, conn: PooledConnection) -> Any:
        """Open a new channel on ``conn``; raise RabbitMqError on failure."""
        try:
            return conn.connection.channel()
        except _BROKER_ERRORS as exc:
            raise RabbitMqError(
                RCODE_CHANNEL_CREATE_ERROR, "channel create error", str(exc)
            ) from exc

    def _channel_key(self, conn: PooledConnection, data: RabbitMqData) -> int:
        return channel_hash_code(
            self.client_type,
            conn.index,
            data.exchange_name,
            data.exchange_type,
            data.queue_name,
            data.route,
        )

    def _channel_for(self, conn: PooledConnection, data: RabbitMqData) -> PooledChannel:
        key = self._channel_key(conn, data)
        cached = self.channel_pool.get(key)
        if cached is not None:
            return cached
        pooled = PooledChannel(self.create_channel(conn), 0)
        self.channel_pool[key] = pooled
        return pooled

    def _ensure_open(self, conn: PooledConnection, data: RabbitMqData) -> None:
        while conn.connection is None or conn.connection.is_closed:
            log("connection lost, reconnecting")
            self.channel_pool.pop(self._channel_key(conn, data), None)
            try:
                conn.connection = self.open_connection()
            except RabbitMqError:
                log(f"reconnect failed, retrying in {self.retry_interval:g} seconds")
                self.product_current_retry += 1
                time.sleep(self.retry_interval)

    def push(self, data: RabbitMqData) -> None:
        """Publish ``data`` to its exchange, routed by its queue name.

        A failed publish is retried after ``retry_interval`` seconds, up to
        ``push_max_time`` attempts. Raises RabbitMqError when no channel can
        be had or the attempts run out.
        """
        for attempt in count():
            if attempt >= self.push_max_time:
                raise RabbitMqError(RCODE_PUSH_MAX_ERROR, "retries exceeded the maximum", "")
            with self.channel_lock:
                conn = self.next_connection()
                self._ensure_open(conn, data)
                try:
                    pooled = self._channel_for(conn, data)
                except RabbitMqError as exc:
                    raise RabbitMqError(
                        RCODE_GET_CHANNEL_ERROR, "failed to get channel", exc.detail or str(exc)
                    ) from exc
            properties = pika.BasicProperties(
                content_type="application/octet-stream",
                delivery_mode=2,
                timestamp=int(time.time()),
                message_id=data.message_id,
            )
            try:
                pooled.channel.basic_publish(
                    exchange=data.exchange_name,
                    routing_key=data.queue_name,
                    body=data.data,
                    properties=properties,
                )
                return
            except _BROKER_ERRORS:
                if getattr(pooled.channel, "is_closed", False):
                    with self.channel_lock:
                        self.channel_pool.pop(self._channel_key(conn, data), None)
                time.sleep(self.retry_interval)


def new_product_pool() -> RabbitPool:
    """Return a pool for publishing."""
    return RabbitPool(RABBITMQ_TYPE_PUBLISH)


def new_consume_pool() -> RabbitPool:
    """Return a pool for consuming."""
    return RabbitPool(RABBITMQ_TYPE_CONSUME)