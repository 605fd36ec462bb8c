"""Project repository for database operations."""

import uuid
from typing import Any, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.config import settings
from beacon.exceptions import DuplicateError, ProjectNotFoundError
from beacon.models.projects import Project


class ProjectRepository:
    """Repository for monitoring projects."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, project_id: uuid.UUID) -> Project | None:
        stmt = select(Project).where(Project.id == project_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_slug(self, slug: str) -> Project | None:
        stmt = select(Project).where(Project.slug == slug)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_key(self, key: str) -> Project | None:
        """Resolve the key used in ingestion URLs.

        A UUID matches either the project id or its public key; any other
        string only matches a public key.
        """
        try:
            project_id = uuid.UUID(key)
        except ValueError:
            project_id = None

        if project_id is not None:
            stmt = select(Project).where(
                or_(Project.id == project_id, Project.public_key == key)
            )
        else:
            stmt = select(Project).where(Project.public_key == key)

        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_projects(self) -> Sequence[Project]:
        stmt = select(Project).order_by(Project.created_at.desc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def create_project(self, **fields: Any) -> Project:
        """Create a project with fresh keys and its DSN.

        Raises:
            DuplicateError: If the slug is taken
        """
        if await self.get_by_slug(fields["slug"]):
            raise DuplicateError(
                f"Project with slug {fields['slug']} already exists",
                field="slug",
            )

        project = Project(id=uuid.uuid4(), **fields)
        project.public_key = uuid.uuid4().hex
        project.secret_key = uuid.uuid4().hex
        project.dsn = project.build_dsn(settings.ingest_host)

        self.session.add(project)
        await self.session.commit()
        await self.session.refresh(project)
        return project

    async def update_project(self, project_id: uuid.UUID, **fields: Any) -> Project:
        """Update a project.

        Raises:
            ProjectNotFoundError: If the project does not exist
            DuplicateError: If the new slug belongs to another project
        """
        project = await self.get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project {project_id} not found")

        slug = fields.get("slug")
        if slug:
            existing = await self.get_by_slug(slug)
            if existing and existing.id != project.id:
                raise DuplicateError(f"Project with slug {slug} already exists", field="slug")

        for key, value in fields.items():
            if hasattr(project, key):
                setattr(project, key, value)

        await self.session.commit()
        await self.session.refresh(project)
        return project

    async def delete_project(self, project_id: uuid.UUID) -> None:
        project = await self.get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project {project_id} not found")

        await self.session.delete(project)
        await self.session.commit()
