"""AI usage recording, limit enforcement and reporting.

Every AI call made by any application is recorded against a company. Recording
prices the call from ``ai_cost_config``, increments the company's usage limits
and emits ``ai_usage:*`` events for warnings, overruns and the record itself.
"""

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Sequence

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.events import EventPublisher
from beacon.models.ai_usage import AIOperation, AIUsage, AIUsageLimit, LimitPeriod
from beacon.models.base import utcnow
from beacon.services.ai_cost_service import AICostService

logger = logging.getLogger(__name__)


class UsageData(BaseModel):
    """A single AI call to be recorded."""

    company_id: uuid.UUID
    user_id: uuid.UUID | None = None
    project_id: uuid.UUID | None = None
    app_name: str
    provider: str
    model: str
    operation: str
    prompt_tokens: int
    completion_tokens: int = 0
    latency_ms: int | None = None
    success: bool | None = None
    error_message: str | None = None
    feature: str | None = None
    prompt: str | None = None
    completion: str | None = None
    metadata: dict[str, Any] | None = None
    cached: bool = False


class LimitValues(BaseModel):
    max_requests: int | None = None
    max_tokens: int | None = None
    max_cost_cents: int | None = None
    warning_threshold_percent: int | None = Field(None, ge=1, le=100)


def period_bounds(period: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Start and end of the calendar day, ISO week or month containing ``now``."""
    now = now or utcnow()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == LimitPeriod.DAILY:
        start = day_start
        end = start + timedelta(days=1)
    elif period == LimitPeriod.WEEKLY:
        start = day_start - timedelta(days=day_start.weekday())
        end = start + timedelta(days=7)
    elif period == LimitPeriod.MONTHLY:
        start = day_start.replace(day=1)
        end = (start + timedelta(days=32)).replace(day=1)
    else:
        raise ValueError(f"Unsupported period: {period}")

    return start, end - timedelta(microseconds=1)


def _bucket() -> dict[str, int]:
    return {"requests": 0, "tokens": 0, "costCents": 0}


class AIUsageService:
    """Records AI usage and enforces per-company limits."""

    def __init__(
        self,
        session: AsyncSession,
        events: EventPublisher | None = None,
    ):
        self.session = session
        self.events = events
        self.cost_service = AICostService(session)

    async def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self.events is not None:
            await self.events.publish(event, payload)

    async def record_usage(self, data: UsageData) -> AIUsage:
        """Store a usage record, update limits and emit events."""
        cost_operation = (
            AIOperation.EMBED if data.operation == AIOperation.EMBED else AIOperation.GENERATE
        )
        config = await self.cost_service.get_active_config(
            data.provider,
            data.model,
            cost_operation,
        )
        if config is not None:
            costs = config.calculate_cost(data.prompt_tokens, data.completion_tokens)
        else:
            costs = {"prompt_cost_cents": 0, "completion_cost_cents": 0, "total_cost_cents": 0}

        usage = AIUsage(
            company_id=data.company_id,
            user_id=data.user_id,
            project_id=data.project_id,
            app_name=data.app_name,
            provider=data.provider,
            model=data.model,
            operation=data.operation,
            prompt_tokens=data.prompt_tokens,
            completion_tokens=data.completion_tokens,
            total_tokens=data.prompt_tokens + data.completion_tokens,
            currency="USD",
            latency_ms=data.latency_ms,
            cached=data.cached,
            success=data.success is not False,
            error_message=data.error_message,
            feature=data.feature,
            prompt=data.prompt,
            completion=data.completion,
            metadata_=data.metadata,
            **costs,
        )
        self.session.add(usage)
        await self.session.flush()

        await self._update_usage_limits(
            data.company_id,
            tokens=usage.total_tokens,
            cost_cents=usage.total_cost_cents,
        )

        await self.session.commit()
        await self.session.refresh(usage)

        await self._emit(
            "ai_usage:recorded",
            {
                "usageId": str(usage.id),
                "companyId": str(usage.company_id),
                "provider": usage.provider,
                "model": usage.model,
                "totalTokens": usage.total_tokens,
                "totalCostCents": usage.total_cost_cents,
            },
        )
        return usage

    async def _update_usage_limits(
        self,
        company_id: uuid.UUID,
        tokens: int,
        cost_cents: int,
    ) -> None:
        now = utcnow()
        stmt = select(AIUsageLimit).where(AIUsageLimit.company_id == company_id)
        limits = (await self.session.execute(stmt)).scalars().all()

        for limit in limits:
            # Stale periods are rolled forward without counting this call
            if limit.is_period_expired(now):
                self._reset_period(limit, now)
                continue

            limit.current_requests += 1
            limit.current_tokens += tokens
            limit.current_cost_cents += cost_cents

            exceeded_type = limit.exceeded_limit_type()
            if exceeded_type is not None:
                logger.error(
                    f"AI usage limit exceeded: {exceeded_type} for {limit.period} period"
                )
                await self._emit(
                    "ai_usage:limit_exceeded",
                    {
                        "companyId": str(company_id),
                        "limitId": str(limit.id),
                        "period": limit.period,
                        "limitType": exceeded_type,
                    },
                )
            elif limit.is_warning_threshold_reached() and not limit.warning_sent:
                limit.warning_sent = True
                limit_type, percentage = max(
                    (
                        (name, pct)
                        for name, pct in limit.get_usage_percentage().items()
                        if pct is not None
                    ),
                    key=lambda item: item[1],
                )
                logger.warning(
                    f"AI usage warning: {limit_type} at {percentage:.1f}% "
                    f"for {limit.period} period"
                )
                await self._emit(
                    "ai_usage:limit_warning",
                    {
                        "companyId": str(company_id),
                        "limitId": str(limit.id),
                        "period": limit.period,
                        "limitType": limit_type,
                        "percentage": percentage,
                    },
                )

    @staticmethod
    def _reset_period(limit: AIUsageLimit, now: datetime) -> None:
        limit.period_start, limit.period_end = period_bounds(limit.period, now)
        limit.current_requests = 0
        limit.current_tokens = 0
        limit.current_cost_cents = 0
        limit.warning_sent = False

    async def get_usage(self, usage_id: uuid.UUID, company_id: uuid.UUID) -> AIUsage | None:
        stmt = select(AIUsage).where(
            AIUsage.id == usage_id,
            AIUsage.company_id == company_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_usage_summary(
        self,
        company_id: uuid.UUID,
        start_date: datetime,
        end_date: datetime,
        provider: str | None = None,
        model: str | None = None,
        feature: str | None = None,
    ) -> dict[str, Any]:
        """Totals, breakdowns and a daily timeline for a company and date range."""
        stmt = select(AIUsage).where(
            AIUsage.company_id == company_id,
            AIUsage.created_at >= start_date,
            AIUsage.created_at <= end_date,
        )
        if provider:
            stmt = stmt.where(AIUsage.provider == provider)
        if model:
            stmt = stmt.where(AIUsage.model == model)
        if feature:
            stmt = stmt.where(AIUsage.feature == feature)

        rows: Sequence[AIUsage] = (await self.session.execute(stmt)).scalars().all()

        total_requests = len(rows)
        latencies = [row.latency_ms for row in rows if row.latency_ms]
        successes = sum(1 for row in rows if row.success)
        success_rate = (successes / total_requests) * 100 if total_requests else 0

        by_provider: dict[str, dict[str, int]] = defaultdict(_bucket)
        by_model: dict[str, dict[str, int]] = defaultdict(_bucket)
        by_feature: dict[str, dict[str, int]] = defaultdict(_bucket)
        timeline: dict[str, dict[str, int]] = defaultdict(_bucket)

        for row in rows:
            for breakdown, key in (
                (by_provider, row.provider),
                (by_model, row.model),
                (by_feature, row.feature or "unknown"),
                (timeline, row.created_at.strftime("%Y-%m-%d")),
            ):
                breakdown[key]["requests"] += 1
                breakdown[key]["tokens"] += row.total_tokens
                breakdown[key]["costCents"] += row.total_cost_cents

        return {
            "stats": {
                "totalRequests": total_requests,
                "totalTokens": sum(row.total_tokens for row in rows),
                "totalCostCents": sum(row.total_cost_cents for row in rows),
                "averageLatencyMs": round(sum(latencies) / len(latencies)) if latencies else 0,
                "successRate": success_rate,
                "errorRate": 100 - success_rate if total_requests else 0,
            },
            "byProvider": dict(by_provider),
            "byModel": dict(by_model),
            "byFeature": dict(by_feature),
            "timeline": [{"date": day, **timeline[day]} for day in sorted(timeline)],
        }

    async def get_active_limits(self, company_id: uuid.UUID) -> Sequence[AIUsageLimit]:
        stmt = (
            select(AIUsageLimit)
            .where(
                AIUsageLimit.company_id == company_id,
                AIUsageLimit.period_end > utcnow(),
            )
            .order_by(AIUsageLimit.period.asc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def can_make_request(self, company_id: uuid.UUID) -> dict[str, Any]:
        """Whether the company is within every active limit."""
        limits = await self.get_active_limits(company_id)
        exceeded = [limit for limit in limits if limit.is_limit_exceeded()]

        if not exceeded:
            return {"allowed": True}

        return {
            "allowed": False,
            "reason": ", ".join(
                f"{limit.period} {limit.exceeded_limit_type()} limit exceeded"
                for limit in exceeded
            ),
            "limits": exceeded,
        }

    async def set_usage_limits(
        self,
        company_id: uuid.UUID,
        period: str,
        limits: LimitValues,
    ) -> AIUsageLimit:
        """Create or update the company's limit for ``period``.

        Values left unset keep their current setting on update.
        """
        if period not in LimitPeriod.ALL:
            raise ValueError(f"Unsupported period: {period}")

        stmt = select(AIUsageLimit).where(
            AIUsageLimit.company_id == company_id,
            AIUsageLimit.period == period,
        )
        limit = (await self.session.execute(stmt)).scalars().first()

        if limit is not None:
            for key, value in limits.model_dump(exclude_none=True).items():
                setattr(limit, key, value)
        else:
            start, end = period_bounds(period)
            limit = AIUsageLimit(
                company_id=company_id,
                period=period,
                max_requests=limits.max_requests,
                max_tokens=limits.max_tokens,
                max_cost_cents=limits.max_cost_cents,
                warning_threshold_percent=limits.warning_threshold_percent or 80,
                current_requests=0,
                current_tokens=0,
                current_cost_cents=0,
                period_start=start,
                period_end=end,
                warning_sent=False,
            )
            self.session.add(limit)

        await self.session.commit()
        await self.session.refresh(limit)
        logger.info(f"AI usage limits set for company {company_id} ({period})")
        return limit
