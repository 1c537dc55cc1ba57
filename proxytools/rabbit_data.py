"""Messages to be published to the broker."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RabbitMqData:
    """One message together with where it is to be published."""

    exchange_name: str
    exchange_type: str
    queue_name: str
    route: str
    data: bytes
    message_id: str = ""


def get_rabbit_mq_data_format(
    exchange_name: str,
    exchange_type: str,
    queue_name: str,
    route: str,
    data: bytes,
    message_id: str,
) -> RabbitMqData:
    """Build a message carrying an explicit message id."""
    return RabbitMqData(
        exchange_name=exchange_name,
        exchange_type=exchange_type,
        queue_name=queue_name,
        route=route,
        data=data,
        message_id=message_id,
    )


def get_rabbit_mq_data_format_expire(
    exchange_name: str,
    exchange_type: str,
    queue_name: str,
    route: str,
    data: bytes,
) -> RabbitMqData:
    """Build a message for an expiring (dead-letter) queue, without a message id."""
    return RabbitMqData(
        exchange_name=exchange_name,
        exchange_type=exchange_type,
        queue_name=queue_name,
        route=route,
        data=data,
    )