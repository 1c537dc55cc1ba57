"""Consumers for a broker connection pool, with delayed retries through dead-letter queues."""

from __future__ import annotations

import threading
from typing import Any

import pika
import pika.exceptions

from proxytools.rabbit_common import (
    EXCHANGE_TYPE_DIRECT,
    RABBITMQ_TYPE_CONSUME,
    RCODE_CHANNEL_CREATE_ERROR,
    RCODE_CHANNEL_QUEUE_EXCHANGE_BIND_ERROR,
    RCODE_CONNECTION_ERROR,
    RCODE_GET_CHANNEL_ERROR,
    RCODE_RETRY_MAX_ERROR,
    AckDataMissingError,
    ConsumeReceive,
    RabbitMqError,
    log,
    random_around,
)
from proxytools.rabbit_pool import RabbitPool, declare

_BROKER_ERRORS = (pika.exceptions.AMQPError, OSError)
_RETRY_DELAY = 0.2
_FALLBACK_EXPIRATION = 5000
_RETRY_HEADER = "retry_nums"
_RETRY_EXCEEDED = "The maximum number of retries exceeded. Procedure"


def _dead_names(receive: ConsumeReceive) -> tuple[str, str, str]:
    dead_exchange = f"{receive.exchange_name}-dead"
    dead_queue = f"{receive.queue_name}-dead"
    dead_route = f"{receive.route}-dead" if receive.route else ""
    return dead_exchange, dead_queue, dead_route


def _next_retry(headers: dict, receive: ConsumeReceive, body: bytes) -> int | None:
    """Return the next retry number, or None after reporting that retries ran out."""
    retry_nums = int(headers.get(_RETRY_HEADER) or 0) + 1
    if retry_nums >= receive.max_retry:
        if receive.event_fail is not None:
            receive.event_fail(
                RCODE_RETRY_MAX_ERROR,
                RabbitMqError(RCODE_RETRY_MAX_ERROR, _RETRY_EXCEEDED, ""),
                body,
            )
        return None
    return retry_nums


def _schedule_retry(
    channel: Any,
    pool: RabbitPool,
    receive: ConsumeReceive,
    dead_exchange: str,
    dead_route: str,
    body: bytes,
    retry_nums: int,
) -> threading.Timer:
    """Publish ``body`` to the dead-letter exchange after a short delay."""

    def publish() -> None:
        try:
            expiration = random_around(pool.min_random_retry_time, pool.max_random_retry_time)
        except ValueError:
            expiration = _FALLBACK_EXPIRATION
        properties = pika.BasicProperties(
            content_type="text/plain",
            expiration=str(expiration),
            headers={_RETRY_HEADER: retry_nums},
            delivery_mode=2,
        )
        try:
            channel.basic_publish(
                exchange=dead_exchange,
                routing_key=dead_route,
                body=body,
                properties=properties,
            )
        except _BROKER_ERRORS as exc:
            if receive.event_fail is not None:
                receive.event_fail(
                    RCODE_RETRY_MAX_ERROR,
                    RabbitMqError(RCODE_RETRY_MAX_ERROR, _RETRY_EXCEEDED, str(exc)),
                    body,
                )

    timer = threading.Timer(_RETRY_DELAY, publish)
    timer.daemon = True
    timer.start()
    return timer


class RetryClient:
    """Handed to a consumer's success callback to acknowledge or requeue a message."""

    def __init__(
        self,
        channel: Any,
        delivery_tag: int | None,
        headers: dict | None,
        dead_exchange_name: str,
        dead_queue_name: str,
        dead_route_key: str,
        pool: RabbitPool,
        receive: ConsumeReceive,
    ) -> None:
        self.channel = channel
        self.delivery_tag = delivery_tag
        self.headers = dict(headers or {})
        self.dead_exchange_name = dead_exchange_name
        self.dead_queue_name = dead_queue_name
        self.dead_route_key = dead_route_key
        self.pool = pool
        self.receive = receive

    def ack(self) -> None:
        """Acknowledge the delivery unless the consumer acknowledges automatically.

        Raises AckDataMissingError when there is no delivery to acknowledge.
        """
        if self.receive.is_auto_ack:
            return
        if self.delivery_tag is None:
            raise AckDataMissingError()
        self.channel.basic_ack(delivery_tag=self.delivery_tag, multiple=True)

    def push(self, push_data: bytes) -> None:
        """Send ``push_data`` back through the dead-letter exchange for a later retry.

        Once the retry count reaches the consumer's maximum, the failure callback
        is called instead. Raises RabbitMqError when there is no channel.
        """
        if self.channel is None:
            message = f"failed to get consume channel of queue {self.dead_queue_name}"
            raise RabbitMqError(RCODE_GET_CHANNEL_ERROR, message, message)
        retry_nums = _next_retry(self.headers, self.receive, push_data)
        if retry_nums is None:
            return
        _schedule_retry(
            self.channel,
            self.pool,
            self.receive,
            self.dead_exchange_name,
            self.dead_route_key,
            push_data,
            retry_nums,
        )


def _report(receive: ConsumeReceive, code: int, message: str, detail: str) -> None:
    if receive.event_fail is not None:
        receive.event_fail(code, RabbitMqError(code, message, detail), None)


def consume_task(num: int, pool: RabbitPool, receive: ConsumeReceive) -> None:
    """Consume ``receive``'s queue on one channel until the connection is lost.

    Setup failures are reported to ``receive.event_fail`` and end the task.
    Losing the connection is reported too, then raised as a RabbitMqError with
    code ``RCODE_CONNECTION_ERROR``.
    """
    with pool.connection_lock:
        conn = pool.next_connection()
    try:
        channel = pool.create_channel(conn)
    except RabbitMqError as exc:
        _report(receive, RCODE_CHANNEL_CREATE_ERROR, "channel create error", exc.detail or str(exc))
        return

    dead_exchange, dead_queue, dead_route = _dead_names(receive)
    try:
        try:
            declare(
                channel,
                pool.client_type,
                receive.exchange_name,
                receive.exchange_type,
                receive.queue_name,
                receive.route,
            )
            if receive.is_try and num % 2 == 0:
                declare(
                    channel,
                    pool.client_type,
                    dead_exchange,
                    EXCHANGE_TYPE_DIRECT,
                    dead_queue,
                    dead_route,
                    True,
                    receive.exchange_name,
                    receive.route,
                )
        except RabbitMqError as exc:
            _report(
                receive,
                RCODE_CHANNEL_QUEUE_EXCHANGE_BIND_ERROR,
                "exchange/queue/binding failed",
                exc.detail or str(exc),
            )
            return

        try:
            channel.basic_qos(prefetch_count=1)
            for method, properties, body in channel.consume(
                queue=receive.queue_name, auto_ack=False
            ):
                _handle_delivery(
                    channel, pool, receive, method, properties, body,
                    dead_exchange, dead_queue, dead_route,
                )
        except _BROKER_ERRORS as exc:
            message = f"message processing interrupted: queue:{receive.queue_name}"
            _report(receive, RCODE_CONNECTION_ERROR, message, str(exc))
            raise RabbitMqError(RCODE_CONNECTION_ERROR, message, str(exc)) from exc
    finally:
        for resource in (channel, conn.connection):
            try:
                resource.close()
            except Exception:  # closing a broken channel or connection may fail
                pass


def _handle_delivery(
    channel: Any,
    pool: RabbitPool,
    receive: ConsumeReceive,
    method: Any,
    properties: Any,
    body: bytes,
    dead_exchange: str,
    dead_queue: str,
    dead_route: str,
) -> None:
    delivery_tag = getattr(method, "delivery_tag", None)
    headers = dict(getattr(properties, "headers", None) or {})
    if receive.is_auto_ack and delivery_tag is not None:
        channel.basic_ack(delivery_tag=delivery_tag, multiple=True)
    if receive.event_success is None:
        return
    client = RetryClient(
        channel, delivery_tag, headers, dead_exchange, dead_queue, dead_route, pool, receive
    )
    if receive.event_success(body, headers, client) or not receive.is_try:
        return
    retry_nums = _next_retry(headers, receive, body)
    if retry_nums is not None:
        _schedule_retry(channel, pool, receive, dead_exchange, dead_route, body, retry_nums)


def _guarded_task(
    num: int, pool: RabbitPool, receive: ConsumeReceive, lost: threading.Event
) -> None:
    try:
        consume_task(num, pool, receive)
    except RabbitMqError as exc:
        if exc.code == RCODE_CONNECTION_ERROR:
            lost.set()
    except _BROKER_ERRORS:
        lost.set()


def _reconnect(pool: RabbitPool) -> None:
    while True:
        if pool.consume_current_retry >= pool.consume_max_retry:
            raise RabbitMqError(RCODE_CONNECTION_ERROR, "reconnect retries exceeded", "")
        log(f"retrying in {pool.retry_interval:g} seconds: [{pool.consume_current_retry}]")
        pool.consume_current_retry += 1
        threading.Event().wait(pool.retry_interval)
        try:
            probe = pool.open_connection()
        except RabbitMqError:
            continue
        try:
            probe.close()
        except Exception:  # the probe only proves the broker is reachable
            pass
        pool.init_connections()
        return


def run_consume(pool: RabbitPool) -> None:
    """Start every registered consumer and keep them running across reconnects.

    Each registration gets ``consume_max_channel`` consuming threads. When a
    connection is lost the pool reconnects and restarts them. Blocks until
    ``consume_max_retry`` reconnects have been used, then raises RabbitMqError.
    Raises ValueError when no consumer is registered.
    """
    pool.client_type = RABBITMQ_TYPE_CONSUME
    if not pool.consume_receives:
        raise ValueError("no consumer registered")
    while True:
        lost = threading.Event()
        for receive in pool.consume_receives:
            for num in range(pool.consume_max_channel):
                threading.Thread(
                    target=_guarded_task, args=(num, pool, receive, lost), daemon=True
                ).start()
        lost.wait()
        _reconnect(pool)