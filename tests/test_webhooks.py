"""Tests for the Logto webhook receiver and user synchronisation."""

import json

import pytest
from fastapi import status
from httpx import AsyncClient

from beacon.repositories.users import UserRepository
from beacon.services.logto_webhook_service import (
    LogtoWebhookService,
    compute_signature,
    map_logto_user,
    verify_signature,
)

SIGNING_KEY = "test-signing-key"


def logto_user(**fields):
    data = {
        "id": "logto-123",
        "primaryEmail": "jane@example.com",
        "name": "Jane Doe",
        "username": "jane",
        "avatar": "https://cdn.example.com/jane.png",
        "lastSignInAt": 1714000000000,
    }
    data.update(fields)
    return data


# ============================================================================
# UNIT TESTS - Signatures and mapping
# ============================================================================


class TestSignature:
    """Test HMAC webhook signatures."""

    def test_roundtrip(self):
        body = b'{"event":"User.Created"}'
        signature = compute_signature(SIGNING_KEY, body)

        assert verify_signature(SIGNING_KEY, body, signature)
        assert not verify_signature(SIGNING_KEY, body + b" ", signature)
        assert not verify_signature("other-key", body, signature)

    def test_non_ascii_signature(self):
        assert not verify_signature(SIGNING_KEY, b"{}", "sïgnature")


class TestMapping:
    def test_map_logto_user(self):
        fields = map_logto_user(logto_user())

        assert fields["full_name"] == "Jane Doe"
        assert fields["email"] == "jane@example.com"
        assert fields["avatar_url"] == "https://cdn.example.com/jane.png"
        assert fields["last_sign_in_at"].year == 2024

    def test_name_falls_back_to_username(self):
        fields = map_logto_user({"id": "x", "username": "jdoe"})

        assert fields == {"full_name": "jdoe", "username": "jdoe"}


# ============================================================================
# SERVICE TESTS
# ============================================================================


@pytest.mark.asyncio
class TestLogtoWebhookService:
    """Test user lifecycle events."""

    async def test_user_created(self, db_session, publisher):
        service = LogtoWebhookService(db_session, publisher)

        await service.handle({"event": "User.Created", "data": logto_user()})

        user = await UserRepository(db_session).get_by_external_id("logto-123")
        assert user.email == "jane@example.com"
        assert user.custom_data["logtoUserId"] == "logto-123"
        assert user.hashed_password is None
        assert publisher.names() == ["user:created"]

    async def test_created_links_existing_email(self, db_session, make_user, publisher):
        existing = await make_user(email="jane@example.com")

        await LogtoWebhookService(db_session, publisher).handle(
            {"event": "User.Created", "data": logto_user()}
        )

        linked = await UserRepository(db_session).get_by_logto_id("logto-123")
        assert linked.id == existing.id
        assert linked.external_id == "logto-123"
        assert publisher.names() == ["user:updated"]

    async def test_updated_creates_when_unknown(self, db_session):
        await LogtoWebhookService(db_session).handle(
            {"event": "User.Data.Updated", "data": logto_user(id="logto-new")}
        )

        assert await UserRepository(db_session).get_by_external_id("logto-new") is not None

    async def test_updated_changes_fields(self, db_session):
        service = LogtoWebhookService(db_session)
        await service.handle({"event": "User.Created", "data": logto_user()})

        await service.handle({"event": "User.Updated", "data": logto_user(name="Jane Smith")})

        user = await UserRepository(db_session).get_by_external_id("logto-123")
        assert user.full_name == "Jane Smith"

    async def test_deleted(self, db_session, publisher):
        service = LogtoWebhookService(db_session, publisher)
        await service.handle({"event": "User.Created", "data": logto_user()})

        await service.handle({"event": "User.Deleted", "data": {"id": "logto-123"}})

        assert await UserRepository(db_session).get_by_external_id("logto-123") is None
        assert publisher.names()[-1] == "user:deleted"

    async def test_deleted_unknown_user_is_ignored(self, db_session, publisher):
        await LogtoWebhookService(db_session, publisher).handle(
            {"event": "User.Deleted", "data": {"id": "nobody"}}
        )

        assert publisher.published == []

    async def test_post_sign_in_records_time(self, db_session):
        service = LogtoWebhookService(db_session)
        await service.handle({"event": "User.Created", "data": logto_user(lastSignInAt=None)})

        await service.handle({"event": "PostSignIn", "user": logto_user(lastSignInAt=None)})

        user = await UserRepository(db_session).get_by_external_id("logto-123")
        assert user.last_sign_in_at is not None
        assert "lastSignInAt" in user.custom_data


# ============================================================================
# INTEGRATION TESTS - Webhook endpoint
# ============================================================================


@pytest.mark.asyncio
class TestWebhookEndpoint:
    """Test signature handling on the webhook route."""

    async def test_valid_signature(self, client: AsyncClient, publisher):
        body = json.dumps({"event": "User.Created", "data": logto_user()}).encode()

        response = await client.post(
            "/api/webhooks/logto",
            content=body,
            headers={
                "content-type": "application/json",
                "logto-signature-sha-256": compute_signature(SIGNING_KEY, body),
            },
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "success"}
        assert publisher.names() == ["user:created"]

    async def test_forwarded_signature_header(self, client: AsyncClient):
        body = json.dumps({"event": "Unknown.Event", "hookId": "hook-1"}).encode()

        response = await client.post(
            "/api/webhooks/logto",
            content=body,
            headers={"x-forwarded-logto-signature-sha-256": compute_signature(SIGNING_KEY, body)},
        )

        assert response.status_code == status.HTTP_200_OK

    async def test_invalid_signature(self, client: AsyncClient, publisher):
        response = await client.post(
            "/api/webhooks/logto",
            content=json.dumps({"event": "User.Created", "data": logto_user()}),
            headers={"logto-signature-sha-256": "deadbeef"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"error": "Invalid signature"}
        assert publisher.published == []

    async def test_non_ascii_signature_header(self, client: AsyncClient):
        response = await client.post(
            "/api/webhooks/logto",
            content=json.dumps({"event": "User.Created", "data": logto_user()}),
            headers={"logto-signature-sha-256": "d\xe9adbeef".encode("latin-1")},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"error": "Invalid signature"}

    async def test_unsigned_request_is_accepted(self, client: AsyncClient):
        response = await client.post(
            "/api/webhooks/logto",
            content=json.dumps({"event": "User.Created", "data": logto_user(id="logto-unsigned")}),
        )

        assert response.status_code == status.HTTP_200_OK

    async def test_malformed_body(self, client: AsyncClient):
        response = await client.post("/api/webhooks/logto", content=b"not json")

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"error": "Failed to process webhook"}
