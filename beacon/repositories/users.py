"""User repository for database operations."""

import uuid
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.exceptions import DuplicateUserError, UserNotFoundError
from beacon.models.companies import Company
from beacon.models.users import User, UserCompany


class UserRepository:
    """Repository for user-related database operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def create_user(self, email: str | None = None, **fields: Any) -> User:
        """Create a new user.

        Args:
            email: Email address; lower-cased and checked for uniqueness
            **fields: Any other ``User`` column values

        Returns:
            Created user instance

        Raises:
            DuplicateUserError: If email or external id already exists
        """
        if email:
            email = email.lower()
            if await self.get_by_email(email):
                raise DuplicateUserError(
                    f"User with email {email} already exists",
                    field="email",
                )

        external_id = fields.get("external_id")
        if external_id and await self.get_by_external_id(external_id):
            raise DuplicateUserError(
                f"User with external ID {external_id} already exists",
                field="external_id",
            )

        user = User(email=email, **fields)
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)

        return user

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        stmt = select(User).where(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_external_id(self, external_id: str) -> User | None:
        stmt = select(User).where(User.external_id == external_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_logto_id(self, logto_user_id: str) -> User | None:
        """Find a user linked to a Logto account through ``custom_data.logtoUserId``."""
        stmt = select(User).where(
            User.custom_data["logtoUserId"].as_string() == logto_user_id
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_id_or_external_id(self, identifier: str) -> User | None:
        """Resolve a UUID or an external id to a user."""
        try:
            user = await self.get_by_id(uuid.UUID(identifier))
        except ValueError:
            user = None
        if user is None:
            user = await self.get_by_external_id(identifier)
        return user

    async def update_user(
        self,
        user_id: uuid.UUID,
        **kwargs: Any,
    ) -> User:
        """Update user fields.

        Only keys that are user attributes are applied; ``None`` values are
        skipped so partial payloads can be passed straight through.

        Raises:
            UserNotFoundError: If user doesn't exist
            DuplicateUserError: If the new email belongs to another user
        """
        user = await self.get_by_id(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")

        email = kwargs.get("email")
        if email:
            kwargs["email"] = email.lower()
            existing = await self.get_by_email(email)
            if existing and existing.id != user.id:
                raise DuplicateUserError(
                    f"User with email {email} already exists",
                    field="email",
                )

        for key, value in kwargs.items():
            if hasattr(user, key) and value is not None:
                setattr(user, key, value)

        await self.session.commit()
        await self.session.refresh(user)

        return user

    async def delete_user(self, user_id: uuid.UUID) -> None:
        """Delete a user and their memberships.

        Raises:
            UserNotFoundError: If user doesn't exist
        """
        user = await self.get_by_id(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")

        await self.session.delete(user)
        await self.session.commit()

    async def list_users(
        self,
        skip: int = 0,
        limit: int = 100,
        is_active: bool | None = None,
    ) -> Sequence[User]:
        stmt = select(User)

        if is_active is not None:
            stmt = stmt.where(User.is_active == is_active)

        stmt = stmt.offset(skip).limit(limit).order_by(User.created_at.desc())

        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_companies(self, user_id: uuid.UUID) -> list[tuple[Company, UserCompany]]:
        """Companies the user belongs to, primary membership first."""
        stmt = (
            select(Company, UserCompany)
            .join(UserCompany, UserCompany.company_id == Company.id)
            .where(UserCompany.user_id == user_id)
            .order_by(UserCompany.is_primary.desc(), UserCompany.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return [(company, membership) for company, membership in result.all()]
