"""Tests for SDK event ingestion."""

import json
import uuid

import pytest
from fastapi import status
from httpx import AsyncClient

from beacon.api.monitoring.ingestion import parse_event_body
from beacon.exceptions import RabbitMQError
from beacon.models.projects import ProjectStatus
from beacon.repositories.error_events import ErrorEventRepository
from beacon.services.error_event_service import ErrorEventService, build_event

PROJECT_ID = uuid.UUID("6c1b2f1e-5d4a-4c3b-9a8e-1f2d3c4b5a69")

SENTRY_EVENT = {
    "event_id": "fc6d8c0c43fc4630ad850ee518f1b9d0",
    "timestamp": "2024-05-15T10:30:00Z",
    "platform": "javascript",
    "level": "error",
    "environment": "staging",
    "release": "web@1.4.2",
    "exception": {
        "values": [
            {
                "type": "TypeError",
                "value": "Cannot read properties of undefined (reading 'map')",
                "module": "app/orders",
                "stacktrace": {"frames": [{"filename": "orders.js"}, {"filename": "list.js"}]},
            }
        ]
    },
    "request": {"url": "https://shop.example.com/orders", "method": "GET", "status_code": "500"},
    "user": {"id": "1234567890abcdef"},
    "contexts": {"session": {"id": "sess-1"}, "client": {"browser": "Firefox"}},
    "sdk": {"name": "sentry.javascript.browser", "version": "7.100.0"},
    "tags": {"feature": "orders"},
}


# ============================================================================
# UNIT TESTS - Payload parsing and mapping
# ============================================================================


class TestParseEventBody:
    """Test decoding of store and envelope bodies."""

    def test_plain_json(self):
        assert parse_event_body(json.dumps(SENTRY_EVENT).encode())["event_id"] == (
            SENTRY_EVENT["event_id"]
        )

    def test_envelope(self):
        envelope = "\n".join(
            [
                json.dumps({"event_id": "abc", "dsn": "https://key@host/1"}),
                json.dumps({"type": "session"}),
                json.dumps({"status": "ok"}),
                json.dumps({"type": "event"}),
                json.dumps({"platform": "python", "message": "boom"}),
            ]
        )

        assert parse_event_body(envelope.encode()) == {"platform": "python", "message": "boom"}

    def test_envelope_without_event(self):
        envelope = "\n".join([json.dumps({}), json.dumps({"type": "session"}), json.dumps({})])

        with pytest.raises(ValueError):
            parse_event_body(envelope.encode())

    def test_envelope_item_header_not_an_object(self):
        envelope = "\n".join([json.dumps({}), json.dumps([1, 2]), json.dumps({"platform": "python"})])

        with pytest.raises(ValueError):
            parse_event_body(envelope.encode())

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_event_body(b"definitely not an event")


class TestBuildEvent:
    """Test mapping of SDK payloads onto stored events."""

    def test_full_payload(self):
        event = build_event(PROJECT_ID, SENTRY_EVENT)

        assert event.id == SENTRY_EVENT["event_id"]
        assert event.project_id == PROJECT_ID
        assert event.type == "TypeError"
        assert event.message == "Cannot read properties of undefined (reading 'map')"
        assert event.exception_module == "app/orders"
        assert event.frames_count == 2
        assert event.url == "https://shop.example.com/orders"
        assert event.status_code == 500
        assert event.user_hash == "12345678"
        assert event.session_id == "sess-1"
        assert event.sdk_version == "7.100.0"
        assert event.environment == "staging"
        assert event.timestamp.year == 2024
        assert event.fingerprint == ["TypeError", event.message]
        assert event.has_been_processed == 0

    def test_minimal_payload(self):
        event = build_event(PROJECT_ID, {"platform": "python"})

        assert len(event.id) == 32
        assert event.type == "Error"
        assert event.message == "Unknown error"
        assert event.level == "error"
        assert event.environment == "production"
        assert json.loads(event.sdk) == {"name": "unknown", "version": "0.0.0"}
        assert event.frames_count == 0

    def test_message_wins_over_exception_value(self):
        event = build_event(
            PROJECT_ID,
            {
                "platform": "python",
                "message": "Checkout failed",
                "exception": {"values": [{"type": "KeyError", "value": "'sku'"}]},
            },
        )

        assert event.message == "Checkout failed"
        assert event.exception_value == "'sku'"

    def test_custom_fingerprint(self):
        event = build_event(PROJECT_ID, {"platform": "go", "fingerprint": ["db", "timeout"]})

        assert event.fingerprint == ["db", "timeout"]


# ============================================================================
# INTEGRATION TESTS - API Endpoints
# ============================================================================


@pytest.mark.asyncio
class TestIngestionEndpoints:
    """Test the store and envelope endpoints."""

    async def test_store_by_public_key(
        self, monitoring_client: AsyncClient, make_project, dispatcher, db_session
    ):
        project = await make_project()

        response = await monitoring_client.post(
            f"/api/{project.public_key}/store",
            json=SENTRY_EVENT,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"id": SENTRY_EVENT["event_id"]}
        assert dispatcher.jobs == [(SENTRY_EVENT["event_id"], str(project.id))]

        stored = await ErrorEventRepository(db_session).get_by_id(SENTRY_EVENT["event_id"])
        assert stored.project_id == project.id
        assert stored.release == "web@1.4.2"

    async def test_store_by_project_id(self, monitoring_client: AsyncClient, make_project):
        project = await make_project()

        response = await monitoring_client.post(
            f"/api/{project.id}/store",
            json={"platform": "python", "message": "boom"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()["id"]) == 32

    async def test_envelope(self, monitoring_client: AsyncClient, make_project, dispatcher):
        project = await make_project()
        envelope = "\n".join(
            [
                json.dumps({"event_id": "env-1"}),
                json.dumps({"type": "event"}),
                json.dumps({"event_id": "env-1", "platform": "python", "message": "boom"}),
            ]
        )

        response = await monitoring_client.post(
            f"/api/{project.public_key}/envelope/",
            content=envelope,
            headers={"content-type": "application/x-sentry-envelope"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"id": "env-1"}
        assert dispatcher.jobs[0][0] == "env-1"

    async def test_unknown_project(self, monitoring_client: AsyncClient, dispatcher):
        response = await monitoring_client.post(
            "/api/not-a-project/store",
            json={"platform": "python"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"error": "Invalid project ID or authentication"}
        assert dispatcher.jobs == []

    async def test_inactive_project(self, monitoring_client: AsyncClient, make_project):
        project = await make_project(status=ProjectStatus.INACTIVE)

        response = await monitoring_client.post(
            f"/api/{project.public_key}/store",
            json={"platform": "python"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_missing_platform(self, monitoring_client: AsyncClient, make_project):
        project = await make_project()

        response = await monitoring_client.post(
            f"/api/{project.public_key}/store",
            json={"message": "no platform"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["errors"][0]["loc"] == ["platform"]

    async def test_unreadable_body(self, monitoring_client: AsyncClient, make_project):
        project = await make_project()

        response = await monitoring_client.post(
            f"/api/{project.public_key}/store",
            content=b"<<not json>>",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Invalid event data"}

    async def test_envelope_with_malformed_item_header(
        self, monitoring_client: AsyncClient, make_project, dispatcher
    ):
        project = await make_project()
        envelope = "\n".join(
            [
                json.dumps({"event_id": "abc"}),
                json.dumps([1, 2]),
                json.dumps({"platform": "python"}),
            ]
        )

        response = await monitoring_client.post(
            f"/api/{project.public_key}/envelope/",
            content=envelope,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Invalid event data"}
        assert dispatcher.jobs == []


# ============================================================================
# SERVICE TESTS
# ============================================================================


class FailingDispatcher:
    async def dispatch(self, event_id: str, project_id: str) -> None:
        raise RabbitMQError("Cannot dispatch job: not connected")


@pytest.mark.asyncio
class TestErrorEventService:
    """Test storing events and queueing their processing jobs."""

    async def test_store_from_payload(self, db_session, make_project, dispatcher):
        project = await make_project()

        result = await ErrorEventService(db_session, dispatcher).store_from_payload(
            project.id, {"platform": "python", "message": "boom"}
        )

        assert dispatcher.jobs == [(result["id"], str(project.id))]

    async def test_store_from_payload_dispatch_failure(self, db_session, make_project):
        project = await make_project()

        with pytest.raises(RabbitMQError):
            await ErrorEventService(db_session, FailingDispatcher()).store_from_payload(
                project.id, {"platform": "python"}
            )

    async def test_store_directly_tolerates_dispatch_failure(self, db_session, make_project):
        project = await make_project()
        event = build_event(project.id, {"platform": "python", "message": "boom"})

        stored = await ErrorEventService(db_session, FailingDispatcher()).store_directly(event)

        assert (await ErrorEventRepository(db_session).get_by_id(stored.id)) is not None
