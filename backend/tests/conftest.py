"""
Test fixtures for the backend test suite.

Engine, tracker and service tests run against an in-memory repository; API
tests mount the real router with the service and database dependencies
overridden, so no PostgreSQL or Redis instance is needed.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.api.v1.onboarding import get_onboarding_service
from app.core.database import get_db
from app.core.security import create_access_token
from app.main import create_app
from app.services.onboarding.content import parse_step_content
from app.services.onboarding.types import (
    Milestone,
    OnboardingPath,
    OnboardingSession,
    OnboardingStep,
)
from app.services.onboarding_service import OnboardingService
from tests.fakes import InMemoryBackupStore, InMemoryOnboardingRepository, RecordingNotifier

# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def new_id() -> str:
    return str(uuid.uuid4())


def make_step(
    path_id: str,
    order: int,
    title: str | None = None,
    *,
    step_id: str | None = None,
    dependencies: list[str] | None = None,
    is_required: bool = True,
    estimated_time: int = 10,
    step_type: str = "tutorial",
    content: dict | None = None,
) -> OnboardingStep:
    return OnboardingStep(
        id=step_id or new_id(),
        path_id=path_id,
        title=title or f"Step {order}",
        step_type=step_type,
        order=order,
        estimated_time=estimated_time,
        is_required=is_required,
        dependencies=dependencies or [],
        content=parse_step_content(content),
    )


def make_path(
    name: str = "Developer Basics",
    *,
    path_id: str | None = None,
    target_role: str = "developer",
    subscription_tier: str | None = None,
    estimated_duration: int = 60,
    steps: int = 0,
    chain: bool = True,
    prerequisites: list[str] | None = None,
    learning_objectives: list[str] | None = None,
    is_active: bool = True,
    updated_at: datetime | None = None,
) -> OnboardingPath:
    """Build a path with ``steps`` steps; with ``chain`` each step depends on the previous one."""
    path_id = path_id or new_id()
    built: list[OnboardingStep] = []
    for order in range(1, steps + 1):
        deps = [built[-1].id] if chain and built else []
        built.append(make_step(path_id, order, dependencies=deps))
    return OnboardingPath(
        id=path_id,
        name=name,
        target_role=target_role,
        subscription_tier=subscription_tier,
        estimated_duration=estimated_duration,
        prerequisites=prerequisites or [],
        learning_objectives=learning_objectives or [],
        is_active=is_active,
        steps=built,
        updated_at=updated_at or datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def make_session(
    path: OnboardingPath,
    *,
    user_id: str | None = None,
    organization_id: str | None = None,
    status: str = "active",
    metadata: dict | None = None,
) -> OnboardingSession:
    return OnboardingSession(
        id=new_id(),
        user_id=user_id or new_id(),
        organization_id=organization_id,
        path_id=path.id,
        status=status,
        current_step_id=path.steps[0].id if path.steps else None,
        started_at=datetime.now(timezone.utc),
        session_metadata=metadata if metadata is not None else {"userRole": path.target_role},
    )


def make_milestone(name: str, milestone_type: str, criteria: dict, points: int = 10) -> Milestone:
    return Milestone(id=new_id(), name=name, milestone_type=milestone_type, criteria=criteria, points=points)


def make_auth_headers(user_id: str, org_id: str | None = None, role: str = "developer", tier: str | None = None) -> dict[str, str]:
    """Generate bearer headers carrying the identity claims the API reads."""
    claims = {"sub": user_id, "role": role}
    if org_id:
        claims["org_id"] = org_id
    if tier:
        claims["tier"] = tier
    token = create_access_token(claims, expires_delta=timedelta(minutes=5))
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def repo() -> InMemoryOnboardingRepository:
    return InMemoryOnboardingRepository()


@pytest_asyncio.fixture
async def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def backup_store() -> InMemoryBackupStore:
    return InMemoryBackupStore()


@pytest_asyncio.fixture
async def service(repo, notifier, backup_store) -> OnboardingService:
    return OnboardingService(repo, notifier=notifier, backup_store=backup_store)


@pytest_asyncio.fixture
async def db_mock():
    """Stand-in for the request's AsyncSession; routers only commit on it."""
    db = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


@pytest_asyncio.fixture
async def app(service: OnboardingService, db_mock):
    """FastAPI app with the onboarding service and database session injected."""
    application = create_app()

    async def override_get_db():
        yield db_mock

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_onboarding_service] = lambda: service
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncClient:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
