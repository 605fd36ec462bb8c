"""RabbitMQ publishers for domain events and background jobs."""

import json
import logging
from typing import Any

import aio_pika
from aio_pika import Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange

from beacon.config import settings
from beacon.exceptions import RabbitMQError

logger = logging.getLogger(__name__)


def _encode(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, default=str).encode()


class EventPublisher:
    """Publishes domain events (``user:created``, ``ai_usage:recorded``...).

    Events go to a durable topic exchange; the routing key is the event name
    with ``:`` replaced by ``.`` so consumers can bind on ``user.*``.
    Delivery is best effort: failures are logged and never raised to callers.
    """

    def __init__(
        self,
        rabbitmq_url: str | None = None,
        exchange_name: str | None = None,
        connection_name: str = "beacon-events",
    ):
        self.rabbitmq_url = rabbitmq_url or settings.rabbitmq_url
        self.exchange_name = exchange_name or settings.events_exchange
        self.connection_name = connection_name

        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None

    async def connect(self) -> None:
        """Connect and declare the events exchange.

        Raises:
            RabbitMQError: If connection or setup fails.
        """
        try:
            self._connection = await aio_pika.connect_robust(
                self.rabbitmq_url,
                client_properties={"connection_name": self.connection_name},
            )
            self._channel = await self._connection.channel()
            self._exchange = await self._channel.declare_exchange(
                self.exchange_name,
                aio_pika.ExchangeType.TOPIC,
                durable=True,
            )
            logger.info(f"Event publisher connected. Exchange: {self.exchange_name}")
        except Exception as e:
            logger.error(f"Failed to connect event publisher: {e}")
            raise RabbitMQError(
                message="Failed to connect event publisher",
                details=str(e),
            )

    async def close(self) -> None:
        """Close the channel and connection."""
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
        self._exchange = None
        logger.info("Event publisher disconnected")

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        """Publish ``event`` with ``payload``; errors are logged only."""
        logger.info(f"Event emitted: {event}")

        if self._exchange is None:
            logger.warning(f"Event publisher not connected, dropping {event}")
            return

        try:
            await self._exchange.publish(
                Message(
                    body=_encode({"event": event, "data": payload}),
                    content_type="application/json",
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                ),
                routing_key=event.replace(":", "."),
            )
        except Exception as e:
            logger.error(f"Failed to publish event {event}: {e}")

    async def check_connection(self) -> bool:
        """Check if the RabbitMQ connection is healthy."""
        return (
            self._connection is not None
            and not self._connection.is_closed
            and self._channel is not None
            and not self._channel.is_closed
        )


class ProcessEventDispatcher:
    """Queues ``{eventId, projectId}`` jobs for the error-processing consumer."""

    def __init__(
        self,
        rabbitmq_url: str | None = None,
        queue_name: str | None = None,
        dlq_name: str | None = None,
    ):
        self.rabbitmq_url = rabbitmq_url or settings.rabbitmq_url
        self.queue_name = queue_name or settings.process_event_queue
        self.dlq_name = dlq_name or settings.process_event_dlq

        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None

    async def connect(self) -> None:
        """Connect and declare the job queue with its dead-letter queue.

        Raises:
            RabbitMQError: If connection or setup fails.
        """
        try:
            self._connection = await aio_pika.connect_robust(
                self.rabbitmq_url,
                client_properties={"connection_name": "beacon-dispatcher"},
            )
            self._channel = await self._connection.channel()
            await self._channel.declare_queue(self.dlq_name, durable=True)
            await self._channel.declare_queue(
                self.queue_name,
                durable=True,
                arguments={
                    "x-dead-letter-exchange": "",
                    "x-dead-letter-routing-key": self.dlq_name,
                },
            )
            logger.info(f"Dispatcher connected. Queue: {self.queue_name}")
        except Exception as e:
            logger.error(f"Failed to connect dispatcher: {e}")
            raise RabbitMQError(
                message="Failed to connect dispatcher",
                details=str(e),
            )

    async def close(self) -> None:
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def dispatch(self, event_id: str, project_id: str) -> None:
        """Queue a processing job for a stored error event.

        Raises:
            RabbitMQError: If the job cannot be published.
        """
        if self._channel is None:
            raise RabbitMQError(
                message="Cannot dispatch job: not connected",
                details="Call connect() before dispatch()",
            )

        try:
            await self._channel.default_exchange.publish(
                Message(
                    body=_encode({"eventId": event_id, "projectId": project_id}),
                    content_type="application/json",
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                ),
                routing_key=self.queue_name,
            )
        except Exception as e:
            logger.error(f"Failed to dispatch job for event {event_id}: {e}")
            raise RabbitMQError(
                message="Failed to dispatch process-event job",
                details=str(e),
            )
        logger.debug(f"Dispatched process-event job for {event_id}")


# Singletons for use in FastAPI lifespans and dependencies
_publisher: EventPublisher | None = None
_dispatcher: ProcessEventDispatcher | None = None


def get_event_publisher() -> EventPublisher:
    """Get the global event publisher instance."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher


def get_dispatcher() -> ProcessEventDispatcher:
    """Get the global process-event dispatcher instance."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = ProcessEventDispatcher()
    return _dispatcher
