"""Background processing of stored error events.

Each event is assigned to a group by fingerprint, the group's statistics are
refreshed, and AI analysis and similarity indexing run when the group calls
for it.
"""

import hashlib
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.exceptions import NotFoundError
from beacon.models.base import utcnow
from beacon.models.error_events import ErrorEvent
from beacon.models.error_groups import ErrorGroup, ErrorGroupStatus
from beacon.repositories.error_events import ErrorEventRepository
from beacon.repositories.error_groups import ErrorGroupRepository
from beacon.services.ai_analysis_service import AIAnalysisService

logger = logging.getLogger(__name__)

REANALYSIS_INTERVAL = timedelta(days=7)
SPIKE_MULTIPLIER = 10


def calculate_fingerprint_hash(fingerprint: list[str]) -> str:
    return hashlib.sha256("::".join(fingerprint).encode()).hexdigest()


def generate_group_title(event: ErrorEvent) -> str:
    if event.exception_type and event.exception_value:
        return f"{event.exception_type}: {event.exception_value[:100]}"
    return event.message[:100]


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def should_trigger_ai_analysis(group: ErrorGroup, now: datetime | None = None) -> bool:
    """New groups, groups that doubled since the last analysis, and stale analyses."""
    if not group.ai_summary:
        return True

    metadata = group.metadata_ or {}
    if group.event_count > (metadata.get("lastAnalysisCount") or 0) * 2:
        return True

    last_analysis = metadata.get("lastAnalysisDate")
    if last_analysis:
        now = now or utcnow()
        if now - _parse_datetime(last_analysis) > REANALYSIS_INTERVAL:
            return True

    return False


class ErrorProcessingService:
    def __init__(self, session: AsyncSession, ai_analysis: AIAnalysisService):
        self.session = session
        self.events = ErrorEventRepository(session)
        self.groups = ErrorGroupRepository(session)
        self.ai_analysis = ai_analysis

    async def process_event(self, event_id: str, project_id: uuid.UUID | str) -> ErrorGroup:
        """Group, analyze and index one event.

        Raises:
            NotFoundError: If the event does not exist.
        """
        project_id = uuid.UUID(str(project_id))
        logger.info(f"Starting to process event {event_id} for project {project_id}")

        event = await self.events.get_by_id(event_id)
        if event is None:
            logger.error(f"Event {event_id} not found")
            raise NotFoundError(f"Event {event_id} not found")

        fingerprint_hash = calculate_fingerprint_hash(event.fingerprint)
        logger.debug(f"Calculated fingerprint hash: {fingerprint_hash}")

        group, created = await self.find_or_create_group(project_id, fingerprint_hash, event)

        await self.events.update_group_id(event.id, group.id)
        group = await self.update_group_statistics(group)
        logger.info(f"Error group {group.id} - {group.title} ({group.event_count} events)")

        if should_trigger_ai_analysis(group):
            logger.info(f"Triggering AI analysis for group {group.id}")
            analysis = await self.ai_analysis.analyze_error(event)
            if analysis:
                group = await self.update_group_with_ai_analysis(group, analysis)

        if group.event_count == 1 or group.event_count % 100 == 0:
            await self.ai_analysis.index_error(event)

        await self.check_alert_conditions(group, event, created)

        await self.events.mark_processed(event.id)
        logger.info(f"Successfully processed event {event_id}")
        return group

    async def find_or_create_group(
        self,
        project_id: uuid.UUID,
        fingerprint_hash: str,
        event: ErrorEvent,
    ) -> tuple[ErrorGroup, bool]:
        """Locked lookup of the fingerprint's group, creating it when missing.

        Returns:
            The group and whether it was created by this call.
        """
        group = await self.groups.get_by_fingerprint(project_id, fingerprint_hash, for_update=True)
        if group is not None:
            group.last_seen = event.timestamp
            return await self.groups.save(group), False

        group = ErrorGroup(
            project_id=project_id,
            fingerprint_hash=fingerprint_hash,
            fingerprint=event.fingerprint,
            title=generate_group_title(event),
            type=event.exception_type or event.type,
            message=event.exception_value or event.message,
            platform=event.platform,
            first_seen=event.timestamp,
            last_seen=event.timestamp,
            status=ErrorGroupStatus.UNRESOLVED,
            metadata_={
                "level": event.level,
                "environment": event.environment,
                "release": event.release,
            },
        )
        try:
            return await self.groups.create(group), True
        except IntegrityError:
            # Another worker created the group first
            await self.session.rollback()
            # The rollback expires the event loaded earlier in this session
            await self.session.refresh(event)
            logger.debug("Unique constraint violation, fetching existing group...")
            existing = await self.groups.get_by_fingerprint(
                project_id, fingerprint_hash, for_update=True
            )
            if existing is None:
                raise
            existing.last_seen = event.timestamp
            return await self.groups.save(existing), False

    async def update_group_statistics(self, group: ErrorGroup) -> ErrorGroup:
        stats = await self.events.get_group_statistics(group.id)
        group.event_count = stats["count"]
        group.user_count = stats["uniqueUsers"]
        group.metadata_ = {
            **(group.metadata_ or {}),
            "stats": {
                "last24h": stats["last24h"],
                "last7d": stats["last7d"],
                "last30d": stats["last30d"],
            },
        }
        return await self.groups.save(group)

    async def update_group_with_ai_analysis(
        self,
        group: ErrorGroup,
        analysis: dict[str, Any],
    ) -> ErrorGroup:
        now = utcnow()
        group.ai_summary = analysis.get("summary")
        group.metadata_ = {
            **(group.metadata_ or {}),
            "aiAnalysis": {
                "severity": analysis.get("severity"),
                "category": analysis.get("category"),
                "possibleCauses": analysis.get("possibleCauses"),
                "suggestedFixes": analysis.get("suggestedFixes"),
                "relatedErrors": analysis.get("relatedErrors"),
                "timestamp": now.isoformat(),
            },
            "lastAnalysisDate": now.isoformat(),
            "lastAnalysisCount": group.event_count,
        }
        return await self.groups.save(group)

    async def check_alert_conditions(
        self,
        group: ErrorGroup,
        event: ErrorEvent,
        created: bool,
    ) -> list[str]:
        """Detect alert-worthy conditions and log them.

        Returns:
            The alert types raised: ``new_error``, ``error_spike`` and
            ``high_error_count``.
        """
        alerts: list[str] = []

        if created or group.event_count == 1:
            alerts.append("new_error")
            logger.warning(f"New error group {group.id} in project {group.project_id}: {group.title}")

        recent = await self.events.get_recent_group_stats(group.id, 60)
        if recent["current"] > recent["previous"] * SPIKE_MULTIPLIER:
            alerts.append("error_spike")
            logger.warning(
                f"Error spike in group {group.id}: {recent['current']} events in the last hour "
                f"(previous hour {recent['previous']})"
            )

        if event.level in ("fatal", "error") and group.event_count % 100 == 0:
            alerts.append("high_error_count")
            logger.warning(f"Error group {group.id} reached {group.event_count} events")

        return alerts
