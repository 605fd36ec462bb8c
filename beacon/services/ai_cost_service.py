"""AI pricing: default rates, versioned updates and cost lookups."""

import logging
from typing import Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.models.ai_usage import AICostConfig, AIOperation
from beacon.models.base import utcnow

logger = logging.getLogger(__name__)

# (provider, model, operation, prompt cents / 1K, completion cents / 1K)
DEFAULT_COSTS: list[tuple[str, str, str, float, float]] = [
    ("openai", "gpt-4", AIOperation.GENERATE, 3, 6),
    ("openai", "gpt-4-turbo", AIOperation.GENERATE, 1, 3),
    ("openai", "gpt-3.5-turbo", AIOperation.GENERATE, 0.05, 0.15),
    ("openai", "text-embedding-ada-002", AIOperation.EMBED, 0.01, 0),
    ("openai", "text-embedding-3-small", AIOperation.EMBED, 0.002, 0),
    ("openai", "text-embedding-3-large", AIOperation.EMBED, 0.013, 0),
    ("anthropic", "claude-3-opus", AIOperation.GENERATE, 1.5, 7.5),
    ("anthropic", "claude-3-sonnet", AIOperation.GENERATE, 0.3, 1.5),
    ("anthropic", "claude-3-haiku", AIOperation.GENERATE, 0.025, 0.125),
]


class AICostService:
    """Maintains ``ai_cost_config`` rows.

    A price change never edits a row in place: the current row is closed by
    setting ``effective_to`` and a new row takes over, so historical usage
    keeps the price it was billed at.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_config(
        self,
        provider: str,
        model: str,
        operation: str,
    ) -> AICostConfig | None:
        now = utcnow()
        stmt = (
            select(AICostConfig)
            .where(
                AICostConfig.provider == provider,
                AICostConfig.model == model,
                AICostConfig.operation == operation,
                AICostConfig.effective_from <= now,
                or_(AICostConfig.effective_to.is_(None), AICostConfig.effective_to > now),
            )
            .order_by(AICostConfig.effective_from.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def seed_default_costs(self) -> int:
        """Insert default rates that have no open config yet.

        Returns:
            Number of configs created.
        """
        created = 0
        for provider, model, operation, prompt_cost, completion_cost in DEFAULT_COSTS:
            stmt = select(AICostConfig.id).where(
                AICostConfig.provider == provider,
                AICostConfig.model == model,
                AICostConfig.operation == operation,
                AICostConfig.effective_to.is_(None),
            )
            if (await self.session.execute(stmt)).first() is not None:
                continue

            self.session.add(
                AICostConfig(
                    provider=provider,
                    model=model,
                    operation=operation,
                    prompt_cost_per_1k_cents=prompt_cost,
                    completion_cost_per_1k_cents=completion_cost,
                    effective_from=utcnow(),
                )
            )
            created += 1

        await self.session.commit()
        if created:
            logger.info(f"Seeded {created} default AI cost configurations")
        return created

    async def update_cost_config(
        self,
        provider: str,
        model: str,
        operation: str,
        prompt_cost_per_1k_cents: float,
        completion_cost_per_1k_cents: float = 0,
    ) -> AICostConfig:
        """Close the current rate and start a new one from now."""
        now = utcnow()
        current = await self.get_active_config(provider, model, operation)
        if current is not None:
            current.effective_to = now

        config = AICostConfig(
            provider=provider,
            model=model,
            operation=operation,
            prompt_cost_per_1k_cents=prompt_cost_per_1k_cents,
            completion_cost_per_1k_cents=completion_cost_per_1k_cents,
            effective_from=now,
        )
        self.session.add(config)
        await self.session.commit()
        await self.session.refresh(config)

        logger.info(
            f"Updated cost config for {provider}/{model} ({operation}): "
            f"{prompt_cost_per_1k_cents}/{completion_cost_per_1k_cents} cents per 1K"
        )
        return config

    async def get_active_costs(self) -> Sequence[AICostConfig]:
        now = utcnow()
        stmt = (
            select(AICostConfig)
            .where(or_(AICostConfig.effective_to.is_(None), AICostConfig.effective_to > now))
            .order_by(AICostConfig.provider.asc(), AICostConfig.model.asc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
