"""RabbitMQ consumer running ProcessEvent jobs for stored error events."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable

import aio_pika
from aio_pika import Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractIncomingMessage, AbstractQueue

from beacon.config import settings
from beacon.core.database import get_session_context
from beacon.exceptions import RabbitMQError
from beacon.services.ai_analysis_service import get_ai_analysis_service
from beacon.services.error_processing_service import ErrorProcessingService

logger = logging.getLogger(__name__)

JobHandler = Callable[[str, str], Awaitable[None]]


async def process_event_job(event_id: str, project_id: str) -> None:
    """Run :meth:`ErrorProcessingService.process_event` in its own session."""
    async with get_session_context() as session:
        service = ErrorProcessingService(session, get_ai_analysis_service())
        await service.process_event(event_id, project_id)


class ProcessEventConsumer:
    """Consumes ``{eventId, projectId}`` jobs with bounded concurrency.

    Failed jobs are logged and published to the dead-letter queue.

    Attributes:
        rabbitmq_url: The RabbitMQ connection URL.
        queue_name: Name of the job queue.
        dlq_name: Name of the dead-letter queue.
        concurrency: Maximum number of jobs processed at once.
    """

    def __init__(
        self,
        rabbitmq_url: str | None = None,
        queue_name: str | None = None,
        dlq_name: str | None = None,
        concurrency: int | None = None,
        handler: JobHandler = process_event_job,
    ):
        self.rabbitmq_url = rabbitmq_url or settings.rabbitmq_url
        self.queue_name = queue_name or settings.process_event_queue
        self.dlq_name = dlq_name or settings.process_event_dlq
        self.concurrency = concurrency or settings.process_event_concurrency
        self.handler = handler

        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._queue: AbstractQueue | None = None
        self._is_running = False
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._tasks: set[asyncio.Task] = set()

    async def connect(self) -> None:
        """Connect to RabbitMQ and declare the job and dead-letter queues.

        Raises:
            RabbitMQError: If connection or setup fails.
        """
        try:
            logger.info(f"Connecting to RabbitMQ at {self.rabbitmq_url}")
            self._connection = await aio_pika.connect_robust(
                self.rabbitmq_url,
                client_properties={"connection_name": "beacon-process-event"},
            )
            self._channel = await self._connection.channel()
            await self._channel.set_qos(prefetch_count=self.concurrency)

            await self._channel.declare_queue(self.dlq_name, durable=True)
            self._queue = await self._channel.declare_queue(
                self.queue_name,
                durable=True,
                arguments={
                    "x-dead-letter-exchange": "",
                    "x-dead-letter-routing-key": self.dlq_name,
                },
            )
            logger.info(
                f"Connected to RabbitMQ. Queue: {self.queue_name}, DLQ: {self.dlq_name}, "
                f"concurrency: {self.concurrency}"
            )
        except Exception as e:
            logger.error(f"Failed to connect to RabbitMQ: {e}")
            raise RabbitMQError(
                message="Failed to connect to RabbitMQ",
                details=str(e),
            )

    async def disconnect(self) -> None:
        self._is_running = False

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._channel is not None:
            await self._channel.close()
            self._channel = None

        if self._connection is not None:
            await self._connection.close()
            self._connection = None

        logger.info("Disconnected from RabbitMQ")

    async def _publish_to_dlq(self, body: dict, error_message: str) -> None:
        if self._channel is None:
            logger.error("Cannot publish to DLQ: channel is None")
            return

        try:
            await self._channel.default_exchange.publish(
                Message(
                    body=json.dumps({**body, "error_message": error_message}).encode(),
                    content_type="application/json",
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                ),
                routing_key=self.dlq_name,
            )
            logger.info(f"Published failed job for {body.get('eventId', 'unknown')} to DLQ")
        except Exception as e:
            logger.error(f"Failed to publish to DLQ: {e}")

    async def handle_job(self, body: dict) -> bool:
        """Run one job; failures go to the dead-letter queue.

        Returns:
            True when the job succeeded.
        """
        event_id = body.get("eventId")
        project_id = body.get("projectId")
        if not event_id or not project_id:
            logger.warning(f"Received job without eventId/projectId: {body}")
            await self._publish_to_dlq(body, "Missing eventId or projectId")
            return False

        try:
            await self.handler(event_id, project_id)
        except Exception as e:
            logger.error(f"ProcessEvent job failed for {event_id}: {e}")
            await self._publish_to_dlq(body, str(e))
            return False

        logger.info(f"ProcessEvent job completed for {event_id}")
        return True

    async def _handle_message(self, message: AbstractIncomingMessage) -> None:
        async with self._semaphore:
            async with message.process(requeue=False):
                try:
                    body = json.loads(message.body.decode())
                except json.JSONDecodeError as e:
                    logger.error(f"Invalid JSON in message: {e}")
                    await self._publish_to_dlq({}, f"Invalid JSON: {e}")
                    return
                await self.handle_job(body)

    async def start_consuming(self) -> None:
        """Consume until :meth:`stop` is called."""
        if self._queue is None:
            raise RabbitMQError(
                message="Cannot start consuming: not connected",
                details="Call connect() before start_consuming()",
            )

        self._is_running = True
        logger.info(f"Starting to consume from queue: {self.queue_name}")

        async with self._queue.iterator() as queue_iter:
            async for message in queue_iter:
                if not self._is_running:
                    break
                task = asyncio.create_task(self._handle_message(message))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    def stop(self) -> None:
        self._is_running = False
        logger.info("Consumer stop requested")

    async def check_connection(self) -> bool:
        return (
            self._connection is not None
            and not self._connection.is_closed
            and self._channel is not None
            and not self._channel.is_closed
        )


_consumer: ProcessEventConsumer | None = None


def get_consumer() -> ProcessEventConsumer:
    """Get the global consumer instance."""
    global _consumer
    if _consumer is None:
        _consumer = ProcessEventConsumer()
    return _consumer


async def start_consumer_background() -> asyncio.Task:
    """Connect the consumer and run it as a background task."""
    consumer = get_consumer()
    await consumer.connect()

    task = asyncio.create_task(consumer.start_consuming())
    logger.info("Consumer background task started")
    return task


async def stop_consumer() -> None:
    global _consumer
    if _consumer is not None:
        _consumer.stop()
        await _consumer.disconnect()
        _consumer = None
