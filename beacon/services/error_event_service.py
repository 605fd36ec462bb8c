"""Turns SDK payloads into stored error events and queues their processing."""

import json
import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.events import ProcessEventDispatcher
from beacon.exceptions import RabbitMQError
from beacon.models.base import utcnow
from beacon.models.error_events import ErrorEvent
from beacon.repositories.error_events import ErrorEventRepository

logger = logging.getLogger(__name__)

DEFAULT_SDK = {"name": "unknown", "version": "0.0.0"}


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value).astimezone()
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return utcnow()


def _status_code(value: Any) -> int | None:
    try:
        return int(value) or None
    except (TypeError, ValueError):
        return None


def build_event(project_id: uuid.UUID, payload: dict[str, Any]) -> ErrorEvent:
    """Map an SDK payload onto an :class:`ErrorEvent` row."""
    exception = payload.get("exception")
    values = _as_dict(exception).get("values") or []
    first = values[0] if values and isinstance(values[0], dict) else {}
    stacktrace = first.get("stacktrace")

    event_type = first.get("type") or "Error"
    message = payload.get("message") or first.get("value") or "Unknown error"
    level = payload.get("level") or "error"

    request = payload.get("request")
    request_data = _as_dict(request)
    user = _as_dict(payload.get("user"))
    contexts = payload.get("contexts")
    contexts_data = _as_dict(contexts)
    sdk = payload.get("sdk")

    frames = _as_dict(stacktrace).get("frames")
    now = utcnow()

    return ErrorEvent(
        id=payload.get("event_id") or uuid.uuid4().hex,
        timestamp=_parse_timestamp(payload.get("timestamp")),
        received_at=now,
        project_id=project_id,
        level=level,
        message=message,
        type=event_type,
        handled=0,
        severity=level,
        platform=payload["platform"],
        sdk=json.dumps(sdk or DEFAULT_SDK),
        sdk_version=sdk.get("version") if isinstance(sdk, dict) and isinstance(sdk.get("version"), str) else None,
        release=payload.get("release"),
        environment=payload.get("environment") or "production",
        server_name=payload.get("server_name"),
        transaction=payload.get("transaction"),
        url=request_data.get("url"),
        method=request_data.get("method"),
        status_code=_status_code(request_data.get("status_code")),
        user_hash=str(user["id"])[:8] if user.get("id") else None,
        session_id=_as_dict(contexts_data.get("session")).get("id"),
        client_info=contexts_data.get("client"),
        exception=exception or None,
        exception_type=first.get("type"),
        exception_value=first.get("value"),
        exception_module=first.get("module"),
        stack_trace=json.dumps(stacktrace) if stacktrace else None,
        frames_count=len(frames) if isinstance(frames, list) else 0,
        request=request or None,
        tags=payload.get("tags") or None,
        extra=payload.get("extra") or None,
        breadcrumbs=payload.get("breadcrumbs") or None,
        contexts=contexts or None,
        fingerprint=payload.get("fingerprint") or [event_type, message],
        first_seen=now,
        group_id=None,
        is_sample=0,
        sample_rate=1.0,
        has_been_processed=0,
    )


class ErrorEventService:
    def __init__(self, session: AsyncSession, dispatcher: ProcessEventDispatcher):
        self.session = session
        self.repository = ErrorEventRepository(session)
        self.dispatcher = dispatcher

    async def store_from_payload(
        self,
        project_id: uuid.UUID,
        payload: dict[str, Any],
    ) -> dict[str, str]:
        """Store an SDK event and queue it for grouping and analysis.

        Returns:
            ``{"id": event_id}``

        Raises:
            RabbitMQError: If the processing job cannot be queued.
        """
        event = await self.repository.store(build_event(project_id, payload))
        await self.dispatcher.dispatch(event.id, str(event.project_id))
        logger.info(f"Stored error event {event.id} for project {project_id}")
        return {"id": event.id}

    async def store_directly(self, event: ErrorEvent) -> ErrorEvent:
        """Store a prepared event; a failed dispatch is logged, not raised."""
        event = await self.repository.store(event)
        try:
            await self.dispatcher.dispatch(event.id, str(event.project_id))
            logger.debug(f"Job dispatched for event {event.id}")
        except RabbitMQError as e:
            logger.error(f"Failed to dispatch job for event {event.id}: {e}")
        return event
