"""Constants, errors and helpers shared by the broker connection pool."""

from __future__ import annotations

import json
import secrets
import zlib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

DEFAULT_MAX_CONNECTION = 5
DEFAULT_MAX_CONSUME_CHANNEL = 25
DEFAULT_MAX_CONSUME_RETRY = 10
DEFAULT_PUSH_MAX_TIME = 99
DEFAULT_MAX_PRODUCT_RETRY = 10

LOAD_BALANCE_ROUND = 1

RABBITMQ_TYPE_PUBLISH = 1
RABBITMQ_TYPE_CONSUME = 2

DEFAULT_RETRY_MIN_RANDOM_TIME = 5000
DEFAULT_RETRY_MAX_RANDOM_TIME = 15000

EXCHANGE_TYPE_FANOUT = "fanout"
EXCHANGE_TYPE_DIRECT = "direct"
EXCHANGE_TYPE_TOPIC = "topic"

RCODE_PUSH_MAX_ERROR = 501
RCODE_GET_CHANNEL_ERROR = 502
RCODE_CHANNEL_QUEUE_EXCHANGE_BIND_ERROR = 503
RCODE_CONNECTION_ERROR = 504
RCODE_PUSH_ERROR = 505
RCODE_CHANNEL_CREATE_ERROR = 506
RCODE_RETRY_MAX_ERROR = 507

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_CST = timezone(timedelta(hours=8), "CST")


class RabbitMqError(Exception):
    """A broker failure carrying one of the ``RCODE_*`` codes."""

    def __init__(self, code: int, message: str, detail: str = "") -> None:
        super().__init__(code, message, detail)
        self.code = code
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return f"Exception ({self.code}) Reason: {json.dumps(self.message, ensure_ascii=False)}"


class AckDataMissingError(Exception):
    """Raised when a manual acknowledgement has no delivery to acknowledge."""

    def __init__(self, message: str = "ack data nil") -> None:
        super().__init__(message)


@dataclass
class ConsumeReceive:
    """A consumer registration: where to listen and what to call.

    ``event_success(body, headers, retry_client)`` returns whether the message
    was handled; ``event_fail(code, error, body)`` reports failures.
    """

    exchange_name: str
    exchange_type: str
    route: str
    queue_name: str
    event_success: Callable[[bytes, dict, Any], bool] | None = None
    event_fail: Callable[[int, Exception, bytes | None], Any] | None = None
    is_try: bool = False
    max_retry: int = 0
    is_auto_ack: bool = False


def hash_code(s: str) -> int:
    """Return the non-negative CRC-32 (IEEE) of the UTF-8 bytes of ``s``."""
    return zlib.crc32(s.encode("utf-8"))


def channel_hash_code(
    client_type: int,
    conn_index: int,
    exchange_name: str,
    exchange_type: str,
    queue_name: str,
    route: str,
) -> int:
    """Return the pool key of a channel declared with these parameters."""
    return hash_code(
        f"{client_type}-{conn_index}-{exchange_name}-{exchange_type}-{queue_name}-{route}"
    )


def random_num(length: int) -> str:
    """Return ``length`` random decimal digits; '' when ``length`` <= 0."""
    return "".join(secrets.choice("0123456789") for _ in range(max(length, 0)))


def random_around(min_value: int, max_value: int) -> int:
    """Return a uniformly random integer in ``[min_value, max_value]``."""
    if min_value > max_value:
        raise ValueError("the min is greater than max!")
    return min_value + secrets.randbelow(max_value - min_value + 1)


def log(message: str) -> None:
    """Print ``message`` prefixed with the current time in UTC+8."""
    stamp = datetime.now(_CST).strftime(_TIME_FORMAT)
    print(f"{stamp} {message}")