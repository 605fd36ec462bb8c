"""Tests for the RabbitMQ publishers and the ProcessEvent consumer."""

import json
from types import SimpleNamespace

import pytest

from beacon.consumers.process_event import ProcessEventConsumer
from beacon.core.events import EventPublisher, ProcessEventDispatcher
from beacon.exceptions import RabbitMQError


class FakeExchange:
    def __init__(self, fail: bool = False):
        self.messages = []
        self.fail = fail

    async def publish(self, message, routing_key: str):
        if self.fail:
            raise ConnectionError("channel closed")
        self.messages.append((routing_key, json.loads(message.body)))


def fake_channel(exchange: FakeExchange) -> SimpleNamespace:
    return SimpleNamespace(default_exchange=exchange)


# ============================================================================
# PUBLISHERS
# ============================================================================


@pytest.mark.asyncio
class TestEventPublisher:
    """Test best-effort domain event publishing."""

    async def test_routing_key(self):
        publisher = EventPublisher("amqp://unused")
        exchange = FakeExchange()
        publisher._exchange = exchange

        await publisher.publish("user:created", {"id": "u1"})

        assert exchange.messages == [
            ("user.created", {"event": "user:created", "data": {"id": "u1"}})
        ]

    async def test_not_connected_drops_event(self):
        publisher = EventPublisher("amqp://unused")

        await publisher.publish("user:created", {"id": "u1"})

        assert await publisher.check_connection() is False

    async def test_publish_errors_are_swallowed(self):
        publisher = EventPublisher("amqp://unused")
        publisher._exchange = FakeExchange(fail=True)

        await publisher.publish("ai_usage:recorded", {"companyId": "c1"})


@pytest.mark.asyncio
class TestProcessEventDispatcher:
    async def test_dispatch(self):
        dispatcher = ProcessEventDispatcher("amqp://unused", queue_name="jobs")
        exchange = FakeExchange()
        dispatcher._channel = fake_channel(exchange)

        await dispatcher.dispatch("event-1", "project-1")

        assert exchange.messages == [("jobs", {"eventId": "event-1", "projectId": "project-1"})]

    async def test_not_connected(self):
        with pytest.raises(RabbitMQError):
            await ProcessEventDispatcher("amqp://unused").dispatch("event-1", "project-1")

    async def test_publish_failure(self):
        dispatcher = ProcessEventDispatcher("amqp://unused")
        dispatcher._channel = fake_channel(FakeExchange(fail=True))

        with pytest.raises(RabbitMQError):
            await dispatcher.dispatch("event-1", "project-1")


# ============================================================================
# CONSUMER
# ============================================================================


@pytest.mark.asyncio
class TestProcessEventConsumer:
    """Test job handling and dead-lettering."""

    async def test_successful_job(self):
        handled = []

        async def handler(event_id, project_id):
            handled.append((event_id, project_id))

        consumer = ProcessEventConsumer("amqp://unused", dlq_name="dlq", handler=handler)
        exchange = FakeExchange()
        consumer._channel = fake_channel(exchange)

        assert await consumer.handle_job({"eventId": "e1", "projectId": "p1"}) is True
        assert handled == [("e1", "p1")]
        assert exchange.messages == []

    async def test_failed_job_goes_to_dlq(self):
        async def handler(event_id, project_id):
            raise ValueError("database unavailable")

        consumer = ProcessEventConsumer("amqp://unused", dlq_name="dlq", handler=handler)
        exchange = FakeExchange()
        consumer._channel = fake_channel(exchange)

        assert await consumer.handle_job({"eventId": "e1", "projectId": "p1"}) is False
        assert exchange.messages == [
            (
                "dlq",
                {"eventId": "e1", "projectId": "p1", "error_message": "database unavailable"},
            )
        ]

    async def test_missing_ids(self):
        async def handler(event_id, project_id):
            raise AssertionError("handler must not run")

        consumer = ProcessEventConsumer("amqp://unused", dlq_name="dlq", handler=handler)
        exchange = FakeExchange()
        consumer._channel = fake_channel(exchange)

        assert await consumer.handle_job({"eventId": "e1"}) is False
        assert exchange.messages[0][1]["error_message"] == "Missing eventId or projectId"

    async def test_dlq_without_channel(self):
        async def handler(event_id, project_id):
            raise ValueError("boom")

        consumer = ProcessEventConsumer("amqp://unused", handler=handler)

        assert await consumer.handle_job({"eventId": "e1", "projectId": "p1"}) is False
        assert await consumer.check_connection() is False

    async def test_start_requires_connection(self):
        consumer = ProcessEventConsumer("amqp://unused")

        with pytest.raises(RabbitMQError):
            await consumer.start_consuming()
