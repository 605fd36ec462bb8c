"""Company repository for database operations."""

import uuid
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from beacon.exceptions import DuplicateCompanyError, NotFoundError
from beacon.models.companies import Company
from beacon.models.users import UserCompany


class CompanyRepository:
    """Repository for companies and their memberships."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _with_members(self):
        return selectinload(Company.memberships).selectinload(UserCompany.user)

    async def get_by_id(self, company_id: uuid.UUID, with_members: bool = False) -> Company | None:
        stmt = select(Company).where(Company.id == company_id)
        if with_members:
            stmt = stmt.options(self._with_members())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Company | None:
        """Case-insensitive lookup by name."""
        stmt = select(Company).where(func.lower(Company.name) == name.lower())
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_companies(self, with_members: bool = False) -> Sequence[Company]:
        stmt = select(Company).order_by(Company.name.asc())
        if with_members:
            stmt = stmt.options(self._with_members())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def _ensure_unique_name(self, name: str, exclude_id: uuid.UUID | None = None) -> None:
        existing = await self.get_by_name(name)
        if existing and existing.id != exclude_id:
            raise DuplicateCompanyError(
                f"A company with the name '{name}' already exists.",
                field="name",
            )

    async def create_company(self, name: str, **fields: Any) -> Company:
        """Create a company.

        Raises:
            DuplicateCompanyError: If the name is taken
        """
        await self._ensure_unique_name(name)

        company = Company(name=name, **fields)
        self.session.add(company)
        await self.session.commit()
        await self.session.refresh(company)
        return company

    async def update_company(self, company_id: uuid.UUID, **fields: Any) -> Company:
        """Apply ``fields`` to a company, keeping the name unique.

        Raises:
            NotFoundError: If the company does not exist
            DuplicateCompanyError: If the new name belongs to another company
        """
        company = await self.get_by_id(company_id)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found")

        if fields.get("name"):
            await self._ensure_unique_name(fields["name"], exclude_id=company.id)

        for key, value in fields.items():
            if hasattr(company, key):
                setattr(company, key, value)

        await self.session.commit()
        await self.session.refresh(company)
        return company

    async def delete_company(self, company_id: uuid.UUID) -> None:
        company = await self.get_by_id(company_id, with_members=True)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found")

        await self.session.delete(company)
        await self.session.commit()

    async def attach_user(
        self,
        company_id: uuid.UUID,
        user_id: uuid.UUID,
        role: str = "member",
        is_primary: bool = False,
    ) -> UserCompany:
        membership = UserCompany(
            company_id=company_id,
            user_id=user_id,
            role=role,
            is_primary=is_primary,
        )
        self.session.add(membership)
        await self.session.commit()
        await self.session.refresh(membership)
        return membership

    async def get_membership(
        self,
        company_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> UserCompany | None:
        stmt = select(UserCompany).where(
            UserCompany.company_id == company_id,
            UserCompany.user_id == user_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
