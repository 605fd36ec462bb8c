"""Error group repository for database operations."""

import uuid
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.models.error_groups import ErrorGroup


class ErrorGroupRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, group_id: uuid.UUID) -> ErrorGroup | None:
        stmt = select(ErrorGroup).where(ErrorGroup.id == group_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_project(
        self,
        project_id: uuid.UUID,
        group_id: uuid.UUID,
    ) -> ErrorGroup | None:
        stmt = select(ErrorGroup).where(
            ErrorGroup.id == group_id,
            ErrorGroup.project_id == project_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_fingerprint(
        self,
        project_id: uuid.UUID,
        fingerprint_hash: str,
        for_update: bool = False,
    ) -> ErrorGroup | None:
        stmt = select(ErrorGroup).where(
            ErrorGroup.project_id == project_id,
            ErrorGroup.fingerprint_hash == fingerprint_hash,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_project(
        self,
        project_id: uuid.UUID,
        group_ids: list[uuid.UUID],
    ) -> Sequence[ErrorGroup]:
        if not group_ids:
            return []
        stmt = select(ErrorGroup).where(
            ErrorGroup.project_id == project_id,
            ErrorGroup.id.in_(group_ids),
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_titles(self, group_ids: list[uuid.UUID]) -> dict[uuid.UUID, str]:
        if not group_ids:
            return {}
        stmt = select(ErrorGroup.id, ErrorGroup.title).where(ErrorGroup.id.in_(group_ids))
        result = await self.session.execute(stmt)
        return {group_id: title for group_id, title in result.all()}

    async def create(self, group: ErrorGroup) -> ErrorGroup:
        self.session.add(group)
        await self.session.commit()
        await self.session.refresh(group)
        return group

    async def save(self, group: ErrorGroup) -> ErrorGroup:
        await self.session.commit()
        await self.session.refresh(group)
        return group

    async def count_by_status(self, project_id: uuid.UUID, status: str) -> int:
        stmt = select(func.count()).select_from(ErrorGroup).where(
            ErrorGroup.project_id == project_id,
            ErrorGroup.status == status,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()
