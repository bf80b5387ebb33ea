"""Fire-and-forget booking notifications over RabbitMQ."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

import pika
from circuitbreaker import CircuitBreakerError, circuit

from .config import get_settings

logger = logging.getLogger(__name__)


@circuit(failure_threshold=5, recovery_timeout=60)
def _publish(message: Dict[str, Any]) -> None:
    settings = get_settings()
    connection = pika.BlockingConnection(pika.ConnectionParameters(host=settings.rabbitmq_host))
    try:
        channel = connection.channel()
        channel.queue_declare(queue=settings.rabbitmq_queue, durable=True)
        channel.basic_publish(
            exchange="",
            routing_key=settings.rabbitmq_queue,
            body=json.dumps(message, default=str),
            properties=pika.BasicProperties(delivery_mode=2),  # make message persistent
        )
    finally:
        connection.close()


def publish_booking_event(event: str, **payload: Any) -> bool:
    """Publish a booking event; delivery problems are logged, never raised.

    Returns whether the message reached the broker.
    """

    if not get_settings().rabbitmq_enabled:
        logger.debug("Notifications disabled, dropping %s", event)
        return False

    message = {"event": event, **payload}
    try:
        _publish(message)
    except CircuitBreakerError:
        logger.warning("Notification circuit open, dropping %s", event)
        return False
    except Exception as exc:  # noqa: BLE001 - notifications must never fail a booking
        logger.error("Failed to publish %s: %s", event, exc)
        return False
    logger.info("Published %s", event)
    return True
