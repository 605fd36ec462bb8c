"""Shared fixtures: in-memory database, app clients and fake collaborators."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./beacon-test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-do-not-use-in-production")
os.environ.setdefault("LOGTO_WEBHOOK_SIGNING_KEY", "test-signing-key")
os.environ.setdefault("AI_API_KEY", "")

import uuid  # noqa: E402
from contextlib import asynccontextmanager  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from beacon.api.deps import (  # noqa: E402
    get_ai_analysis,
    get_db_session,
    get_events,
    get_process_dispatcher,
)
from beacon.config import get_settings  # noqa: E402
from beacon.core.security import SecurityUtils  # noqa: E402
from beacon.main import app as main_app  # noqa: E402
from beacon.models import Base, ErrorEvent, Project  # noqa: E402
from beacon.models.companies import Company  # noqa: E402
from beacon.models.users import User, UserCompany, UserRole  # noqa: E402
from beacon.monitoring import app as monitoring_app  # noqa: E402
from beacon.repositories.error_events import ErrorEventRepository  # noqa: E402
from beacon.repositories.projects import ProjectRepository  # noqa: E402
from beacon.services.error_event_service import build_event  # noqa: E402

TEST_PASSWORD = "SecurePass123"


# ============================================================================
# FAKES
# ============================================================================


class FakePublisher:
    """Collects published domain events instead of sending them to RabbitMQ."""

    def __init__(self):
        self.published: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        self.published.append((event, payload))

    def names(self) -> list[str]:
        return [event for event, _ in self.published]


class FakeDispatcher:
    def __init__(self):
        self.jobs: list[tuple[str, str]] = []

    async def dispatch(self, event_id: str, project_id: str) -> None:
        self.jobs.append((event_id, project_id))


class FakeAIAnalysis:
    """Stands in for the AI analysis service with canned results."""

    def __init__(self):
        self.analysis: dict[str, Any] | None = {
            "summary": "Null reference while rendering the profile page",
            "severity": "high",
            "category": "runtime",
            "possibleCauses": ["user is undefined"],
            "suggestedFixes": ["guard against missing user"],
            "relatedErrors": [],
        }
        self.similar: list[dict[str, Any]] = []
        self.fix: str | None = "Check that the user is loaded before rendering."
        self.grouping: dict[str, Any] | None = None
        self.trends: dict[str, Any] | None = {
            "summary": "Errors are stable",
            "insights": [],
            "recommendations": [],
            "anomalies": [],
        }
        self.analyzed: list[str] = []
        self.indexed: list[str] = []
        self.trend_requests: list[dict[str, Any]] = []

    async def analyze_error(self, event: ErrorEvent) -> dict[str, Any] | None:
        self.analyzed.append(event.id)
        return self.analysis

    async def index_error(self, event: ErrorEvent) -> None:
        self.indexed.append(event.id)

    async def find_similar_errors(self, event: ErrorEvent, limit: int = 5) -> list[dict[str, Any]]:
        return self.similar

    async def generate_suggested_fix(self, event: ErrorEvent) -> str | None:
        return self.fix

    async def suggest_error_grouping(self, events: list[ErrorEvent]) -> dict[str, Any] | None:
        return self.grouping

    async def analyze_trends(self, data: dict[str, Any]) -> dict[str, Any] | None:
        self.trend_requests.append(data)
        return self.trends


# ============================================================================
# DATABASE
# ============================================================================


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def session_context(session_factory):
    """Drop-in for ``get_session_context`` bound to the test database."""

    @asynccontextmanager
    async def factory():
        async with session_factory() as session:
            yield session

    return factory


# ============================================================================
# APPLICATION CLIENTS
# ============================================================================


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def ai_analysis():
    return FakeAIAnalysis()


@pytest.fixture
def overrides(session_factory, publisher, dispatcher, ai_analysis):
    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return {
        get_db_session: override_db_session,
        get_events: lambda: publisher,
        get_process_dispatcher: lambda: dispatcher,
        get_ai_analysis: lambda: ai_analysis,
    }


@pytest.fixture
async def client(overrides):
    """Client for the main application."""
    main_app.dependency_overrides.update(overrides)
    async with AsyncClient(transport=ASGITransport(app=main_app), base_url="http://test") as client:
        yield client
    main_app.dependency_overrides.clear()


@pytest.fixture
async def monitoring_client(overrides):
    """Client for the monitoring application."""
    monitoring_app.dependency_overrides.update(overrides)
    async with AsyncClient(
        transport=ASGITransport(app=monitoring_app),
        base_url="http://test",
    ) as client:
        yield client
    monitoring_app.dependency_overrides.clear()


# ============================================================================
# DATA BUILDERS
# ============================================================================


@pytest.fixture
def security_utils():
    return SecurityUtils(get_settings())


@pytest.fixture
def make_user(db_session, security_utils):
    async def factory(
        email: str | None = None,
        role: str = UserRole.USER,
        password: str | None = TEST_PASSWORD,
        **fields: Any,
    ) -> User:
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            role=role,
            full_name=fields.pop("full_name", "Test User"),
            hashed_password=security_utils.hash_password(password) if password else None,
            **fields,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return factory


@pytest.fixture
def make_company(db_session):
    async def factory(name: str | None = None, members: list[tuple[User, str, bool]] = (), **fields):
        company = Company(name=name or f"Company {uuid.uuid4().hex[:6]}", **fields)
        db_session.add(company)
        await db_session.flush()
        for user, role, is_primary in members:
            db_session.add(
                UserCompany(user_id=user.id, company_id=company.id, role=role, is_primary=is_primary)
            )
        await db_session.commit()
        await db_session.refresh(company)
        return company

    return factory


@pytest.fixture
def auth_headers(security_utils):
    def build(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {security_utils.create_access_token(str(user.id))}"}

    return build


@pytest.fixture
def logto_headers():
    """Bearer header carrying a Logto-shaped token (claims are not verified)."""

    def build(
        scopes: str = "",
        m2m: bool = False,
        sub: str = "logto-user-1",
    ) -> dict[str, str]:
        claims: dict[str, Any] = {
            "sub": sub,
            "iss": f"{get_settings().logto_issuer}",
            "scope": scopes,
        }
        if m2m:
            claims["grant_type"] = "client_credentials"
            claims["client_id"] = sub
        token = jwt.encode(claims, "logto-test-key", algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
def make_project(db_session):
    async def factory(**fields: Any) -> Project:
        suffix = uuid.uuid4().hex[:6]
        values = {
            "name": f"Project {suffix}",
            "slug": f"project-{suffix}",
            "platform": "javascript",
        }
        values.update(fields)
        return await ProjectRepository(db_session).create_project(**values)

    return factory


@pytest.fixture
def make_event(db_session):
    async def factory(project: Project, **payload: Any) -> ErrorEvent:
        body: dict[str, Any] = {
            "platform": "javascript",
            "level": "error",
            "environment": "production",
            "exception": {
                "values": [
                    {"type": "TypeError", "value": "Cannot read property 'name' of undefined"}
                ]
            },
        }
        body.update(payload)
        return await ErrorEventRepository(db_session).store(build_event(project.id, body))

    return factory
