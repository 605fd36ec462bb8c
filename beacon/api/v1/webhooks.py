"""Logto webhook receiver."""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.api.deps import get_db_session, get_events
from beacon.config import Settings, get_settings
from beacon.core.events import EventPublisher
from beacon.services.logto_webhook_service import LogtoWebhookService, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

SIGNATURE_HEADERS = ("logto-signature-sha-256", "x-forwarded-logto-signature-sha-256")


@router.post(
    "/logto",
    summary="Receive a Logto webhook",
    description="Keeps local users in sync with Logto user events.",
)
async def logto_webhook(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db_session)],
    events: Annotated[EventPublisher, Depends(get_events)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> dict[str, str]:
    raw_body = await request.body()

    signature = next(
        (request.headers[name] for name in SIGNATURE_HEADERS if name in request.headers),
        None,
    )
    signing_key = settings.logto_webhook_signing_key
    if signing_key and signature and not verify_signature(signing_key, raw_body, signature):
        logger.warning("Rejected Logto webhook with invalid signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid signature"},
        )

    try:
        payload = json.loads(raw_body)
        logger.info(f"Logto webhook received: {payload.get('event')}")
        await LogtoWebhookService(session, events).handle(payload)
    except Exception as e:
        logger.error(f"Error processing Logto webhook: {e}", exc_info=True)
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to process webhook"},
        ) from e

    return {"status": "success"}
