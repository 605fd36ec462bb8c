"""Synchronises local users with Logto webhook events."""

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.events import EventPublisher
from beacon.models.base import utcnow
from beacon.models.users import User, UserRole
from beacon.repositories.users import UserRepository

logger = logging.getLogger(__name__)

SOURCE = "logto_webhook"


def compute_signature(signing_key: str, raw_body: bytes) -> str:
    return hmac.new(signing_key.encode(), raw_body, hashlib.sha256).hexdigest()


def verify_signature(signing_key: str, raw_body: bytes, signature: str) -> bool:
    """Constant-time check of a ``logto-signature-sha-256`` header."""
    expected = compute_signature(signing_key, raw_body)
    return hmac.compare_digest(expected.encode(), signature.encode())


def _timestamp(value: Any) -> datetime | None:
    """Logto sends epoch milliseconds; ISO strings are accepted too."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def map_logto_user(data: dict[str, Any]) -> dict[str, Any]:
    """Column values for a Logto user object; absent keys are left out."""
    mapping = {
        "full_name": data.get("name") or data.get("username") or data.get("primaryEmail"),
        "email": data.get("primaryEmail"),
        "username": data.get("username"),
        "primary_phone": data.get("primaryPhone"),
        "avatar_url": data.get("avatar"),
        "application_id": data.get("applicationId"),
        "last_sign_in_at": _timestamp(data.get("lastSignInAt")),
        "profile": data.get("profile"),
        "identities": data.get("identities"),
        "sso_identities": data.get("ssoIdentities"),
    }
    return {key: value for key, value in mapping.items() if value is not None}


class LogtoWebhookService:
    def __init__(self, session: AsyncSession, events: EventPublisher | None = None):
        self.session = session
        self.users = UserRepository(session)
        self.events = events

    async def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self.events is not None:
            await self.events.publish(event, payload)

    async def _emit_user(self, event: str, user: User, source: str = SOURCE) -> None:
        await self._emit(event, {"userId": str(user.id), "email": user.email, "source": source})

    async def handle(self, payload: dict[str, Any]) -> None:
        """Dispatch a webhook payload to its event handler."""
        event = payload.get("event")

        if event == "User.Created":
            await self.handle_user_created(payload.get("data") or {})
        elif event in ("User.Updated", "User.Data.Updated"):
            await self.handle_user_updated(payload.get("data") or {})
        elif event == "User.Deleted":
            await self.handle_user_deleted(payload.get("data") or {})
        elif event in ("PostSignIn", "Post.SignIn"):
            await self.handle_post_sign_in(payload.get("user") or {})
        elif event in ("PostRegister", "Post.Register"):
            await self.handle_user_created(payload.get("user") or {})
        else:
            logger.info(f"Unhandled Logto webhook event: {event} - Hook ID: {payload.get('hookId')}")

    async def handle_user_created(self, data: dict[str, Any]) -> User:
        email = data.get("primaryEmail")
        user = await self.users.get_by_email(email) if email else None

        if user is not None:
            logger.info(f"User with email {email} already exists, linking Logto ID")
            user = await self.users.update_user(
                user.id,
                external_id=data["id"],
                custom_data={**(user.custom_data or {}), "logtoUserId": data["id"]},
            )
            await self._emit_user("user:updated", user)
            return user

        fields = map_logto_user(data)
        fields.pop("email", None)
        user = await self.users.create_user(
            email=email,
            role=UserRole.USER,
            external_id=data["id"],
            custom_data={**(data.get("customData") or {}), "logtoUserId": data["id"]},
            **fields,
        )
        logger.info(f"Created user {user.id} from Logto user {data['id']}")
        await self._emit_user("user:created", user)
        return user

    async def _find_linked_user(self, data: dict[str, Any]) -> User | None:
        user = await self.users.get_by_logto_id(data["id"])
        if user is None:
            user = await self.users.get_by_external_id(data["id"])
        if user is None and data.get("primaryEmail"):
            user = await self.users.get_by_email(data["primaryEmail"])
        return user

    async def handle_user_updated(self, data: dict[str, Any]) -> User:
        user = await self._find_linked_user(data)
        if user is None:
            logger.info(f"User with Logto ID {data['id']} not found, creating...")
            return await self.handle_user_created(data)

        user = await self.users.update_user(
            user.id,
            external_id=data["id"],
            custom_data={**(user.custom_data or {}), "logtoUserId": data["id"]},
            **map_logto_user(data),
        )
        logger.info(f"Updated user {user.id} from Logto")
        await self._emit_user("user:updated", user)
        return user

    async def handle_user_deleted(self, data: dict[str, Any]) -> None:
        logto_user_id = data.get("id")
        if not logto_user_id:
            logger.info("No user ID provided in User.Deleted event")
            return

        user = await self.users.get_by_external_id(logto_user_id)
        if user is None:
            user = await self.users.get_by_logto_id(logto_user_id)
        if user is None:
            logger.info(f"User with Logto ID {logto_user_id} not found for deletion")
            return

        user_id = user.id
        await self.users.delete_user(user_id)
        logger.info(f"Deleted user {user_id} (Logto ID {logto_user_id})")
        await self._emit("user:deleted", {"userId": str(user_id)})

    async def handle_post_sign_in(self, data: dict[str, Any]) -> User:
        user = await self._find_linked_user(data)
        if user is None:
            logger.info(f"User with Logto ID {data.get('id')} not found on sign-in, creating...")
            return await self.handle_user_created(data)

        now = utcnow()
        user = await self.users.update_user(
            user.id,
            last_sign_in_at=now,
            custom_data={**(user.custom_data or {}), "lastSignInAt": now.isoformat()},
        )
        logger.info(f"Updated last sign-in time for user {user.id}")
        await self._emit_user("user:updated", user)
        return user
