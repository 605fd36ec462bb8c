"""Error event repository: storage, filtering and aggregations."""

import uuid
from datetime import datetime, timedelta
from typing import Any, Sequence

from sqlalchemy import Select, case, distinct, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.models.base import utcnow
from beacon.models.error_events import ErrorEvent

BUCKET_PERIODS = ("hour", "day", "week", "month")


def truncate_timestamp(value: datetime, period: str) -> datetime:
    """Floor ``value`` to the start of its hour, day, ISO week or month."""
    if period == "hour":
        return value.replace(minute=0, second=0, microsecond=0)
    day = value.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "day":
        return day
    if period == "week":
        return day - timedelta(days=day.weekday())
    if period == "month":
        return day.replace(day=1)
    raise ValueError(f"Unsupported period: {period}")


def _count_if(condition) -> Any:
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


class ErrorEventRepository:
    """Repository for error events.

    Aggregations default to the last 30 days, the window every dashboard
    view works with.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def store(self, event: ErrorEvent) -> ErrorEvent:
        self.session.add(event)
        await self.session.commit()
        await self.session.refresh(event)
        return event

    async def get_by_id(self, event_id: str) -> ErrorEvent | None:
        stmt = select(ErrorEvent).where(ErrorEvent.id == event_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_ids(
        self,
        event_ids: list[str],
        project_id: uuid.UUID | None = None,
    ) -> Sequence[ErrorEvent]:
        if not event_ids:
            return []
        stmt = select(ErrorEvent).where(ErrorEvent.id.in_(event_ids))
        if project_id is not None:
            stmt = stmt.where(ErrorEvent.project_id == project_id)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    def _filtered(
        self,
        stmt: Select,
        project_id: uuid.UUID | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        level: str | None = None,
        environment: str | None = None,
        search: str | None = None,
        group_id: uuid.UUID | None = None,
    ) -> Select:
        if project_id is not None:
            stmt = stmt.where(ErrorEvent.project_id == project_id)
        if start_date is not None:
            stmt = stmt.where(ErrorEvent.timestamp >= start_date)
        if end_date is not None:
            stmt = stmt.where(ErrorEvent.timestamp <= end_date)
        if level:
            stmt = stmt.where(ErrorEvent.level == level)
        if environment:
            stmt = stmt.where(ErrorEvent.environment == environment)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(ErrorEvent.message.ilike(pattern), ErrorEvent.type.ilike(pattern))
            )
        if group_id is not None:
            stmt = stmt.where(ErrorEvent.group_id == group_id)
        return stmt

    async def query(
        self,
        limit: int = 100,
        offset: int = 0,
        **filters: Any,
    ) -> Sequence[ErrorEvent]:
        """Filtered events, newest first.

        Args:
            limit: Maximum number of events
            offset: Number of events to skip
            **filters: project_id, start_date, end_date, level, environment,
                search (case-insensitive match on message or type), group_id
        """
        stmt = self._filtered(select(ErrorEvent), **filters)
        stmt = stmt.order_by(ErrorEvent.timestamp.desc()).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count(self, **filters: Any) -> int:
        stmt = self._filtered(select(func.count()).select_from(ErrorEvent), **filters)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def count_by_level(self, **filters: Any) -> dict[str, int]:
        stmt = self._filtered(
            select(ErrorEvent.level, func.count()).group_by(ErrorEvent.level),
            **filters,
        )
        result = await self.session.execute(stmt)
        return {level: count for level, count in result.all()}

    async def get_event_counts(
        self,
        project_id: uuid.UUID,
        period: str = "day",
        days: int = 30,
    ) -> list[dict[str, Any]]:
        """Event counts per time bucket with a per-level breakdown."""
        if period not in BUCKET_PERIODS:
            raise ValueError(f"Unsupported period: {period}")

        since = utcnow() - timedelta(days=days)
        stmt = select(ErrorEvent.timestamp, ErrorEvent.level).where(
            ErrorEvent.project_id == project_id,
            ErrorEvent.timestamp >= since,
        )
        result = await self.session.execute(stmt)

        buckets: dict[datetime, dict[str, Any]] = {}
        for timestamp, level in result.all():
            key = truncate_timestamp(timestamp, period)
            bucket = buckets.setdefault(
                key,
                {
                    "time_bucket": key.isoformat(),
                    "count": 0,
                    "error_count": 0,
                    "warning_count": 0,
                    "info_count": 0,
                },
            )
            bucket["count"] += 1
            if level in ("error", "warning", "info"):
                bucket[f"{level}_count"] += 1

        return [buckets[key] for key in sorted(buckets)]

    async def get_top_error_types(
        self,
        project_id: uuid.UUID,
        limit: int = 10,
        days: int = 30,
    ) -> list[dict[str, Any]]:
        since = utcnow() - timedelta(days=days)
        stmt = (
            select(
                ErrorEvent.type,
                func.count().label("count"),
                func.min(ErrorEvent.timestamp).label("first_seen"),
                func.max(ErrorEvent.timestamp).label("last_seen"),
                func.count(distinct(ErrorEvent.id)).label("unique_events"),
            )
            .where(ErrorEvent.project_id == project_id, ErrorEvent.timestamp >= since)
            .group_by(ErrorEvent.type)
            .order_by(func.count().desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [
            {
                "type": row.type,
                "count": row.count,
                "first_seen": row.first_seen,
                "last_seen": row.last_seen,
                "unique_events": row.unique_events,
            }
            for row in result.all()
        ]

    async def get_summary(self, project_id: uuid.UUID, days: int = 30) -> dict[str, Any]:
        now = utcnow()
        stmt = select(
            func.count().label("total_events"),
            _count_if(ErrorEvent.level == "error").label("error_count"),
            _count_if(ErrorEvent.level == "warning").label("warning_count"),
            _count_if(ErrorEvent.level == "info").label("info_count"),
            _count_if(ErrorEvent.handled == 0).label("unhandled_count"),
            _count_if(ErrorEvent.timestamp >= now - timedelta(hours=24)).label("events_24h"),
            func.min(ErrorEvent.timestamp).label("first_event"),
            func.max(ErrorEvent.timestamp).label("last_event"),
            func.count(distinct(ErrorEvent.type)).label("unique_error_types"),
        ).where(
            ErrorEvent.project_id == project_id,
            ErrorEvent.timestamp >= now - timedelta(days=days),
        )
        row = (await self.session.execute(stmt)).one()
        return dict(row._mapping)

    async def update_group_id(self, event_id: str, group_id: uuid.UUID) -> None:
        await self.session.execute(
            update(ErrorEvent).where(ErrorEvent.id == event_id).values(group_id=group_id)
        )
        await self.session.commit()

    async def assign_group(self, event_ids: list[str], group_id: uuid.UUID) -> int:
        """Move ``event_ids`` into ``group_id``; returns the number of rows changed."""
        result = await self.session.execute(
            update(ErrorEvent)
            .where(ErrorEvent.id.in_(event_ids))
            .values(group_id=group_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount

    async def mark_processed(self, event_id: str) -> None:
        await self.session.execute(
            update(ErrorEvent).where(ErrorEvent.id == event_id).values(has_been_processed=1)
        )
        await self.session.commit()

    async def get_group_statistics(self, group_id: uuid.UUID) -> dict[str, int]:
        now = utcnow()
        stmt = select(
            func.count().label("count"),
            func.count(distinct(ErrorEvent.user_hash)).label("uniqueUsers"),
            _count_if(ErrorEvent.timestamp >= now - timedelta(hours=24)).label("last24h"),
            _count_if(ErrorEvent.timestamp >= now - timedelta(days=7)).label("last7d"),
            _count_if(ErrorEvent.timestamp >= now - timedelta(days=30)).label("last30d"),
        ).where(ErrorEvent.group_id == group_id)
        row = (await self.session.execute(stmt)).one()
        return {key: int(value or 0) for key, value in row._mapping.items()}

    async def get_recent_group_stats(
        self,
        group_id: uuid.UUID,
        minutes: int = 60,
    ) -> dict[str, int]:
        """Events in the last ``minutes`` versus the window just before it."""
        now = utcnow()
        window = timedelta(minutes=minutes)
        stmt = select(
            _count_if(ErrorEvent.timestamp >= now - window).label("current"),
            _count_if(
                (ErrorEvent.timestamp >= now - 2 * window)
                & (ErrorEvent.timestamp < now - window)
            ).label("previous"),
        ).where(ErrorEvent.group_id == group_id)
        row = (await self.session.execute(stmt)).one()
        return {"current": int(row.current or 0), "previous": int(row.previous or 0)}
