"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leave_engine.common.constants import UserRole
from leave_engine.config import settings
from leave_engine.database import Base, get_db
from leave_engine.dependencies import get_calendar_publisher, get_holiday_classifier
from leave_engine.holidays.classifier import StaticHolidayClassifier
from leave_engine.main import create_app
from leave_engine.notifications.calendar import ApprovedLeaveEvent

# Import ALL model modules so every table is registered on Base.metadata
import leave_engine.common.audit  # noqa: F401
import leave_engine.core_hr.models  # noqa: F401
import leave_engine.leave.models  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT ────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leave_engine.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Collaborator fakes ──────────────────────────────────────────────

class RecordingPublisher:
    """Calendar publisher that remembers what it was asked to publish."""

    enabled = True

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[ApprovedLeaveEvent] = []

    async def publish(self, event: ApprovedLeaveEvent) -> None:
        if self.fail:
            raise RuntimeError("calendar down")
        self.events.append(event)


@pytest.fixture
def holidays() -> dict[date, str]:
    """Mutable holiday map served by the app's holiday classifier."""
    return {}


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(holidays, publisher):
    """Create a fresh app instance with DB and collaborators overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_holiday_classifier] = (
        lambda: StaticHolidayClassifier(holidays)
    )
    application.dependency_overrides[get_calendar_publisher] = lambda: publisher
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    email: Optional[str] = None,
    full_name: str = "Test User",
    hire_date: Optional[date] = date(2020, 3, 2),
    termination_date: Optional[date] = None,
    is_active: bool = True,
) -> dict:
    code = uuid.uuid4().hex[:6].upper()
    return dict(
        id=uuid.uuid4(),
        employee_code=f"EMP-{code}",
        full_name=full_name,
        email=email or f"user.{code.lower()}@example.com",
        hire_date=hire_date,
        termination_date=termination_date,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


def _make_ledger(
    employee_id: uuid.UUID,
    *,
    annual_days: int = 15,
    used_annual_days: float = 0.0,
    sick_days: int = 60,
    used_sick_days: float = 0.0,
    substitute_leave_hours: float = 0.0,
    compensatory_leave_hours: float = 0.0,
) -> dict:
    return dict(
        employee_id=employee_id,
        annual_days=annual_days,
        used_annual_days=used_annual_days,
        sick_days=sick_days,
        used_sick_days=used_sick_days,
        substitute_leave_hours=substitute_leave_hours,
        compensatory_leave_hours=compensatory_leave_hours,
        version=1,
        updated_at=datetime.now(timezone.utc),
    )


@pytest.fixture
async def test_employee(db) -> dict:
    """Insert an active employee and return its data dict."""
    from leave_engine.core_hr.models import Employee

    data = _make_employee()
    db.add(Employee(**data))
    await db.flush()
    return data


@pytest.fixture
async def hr_admin(db) -> dict:
    """Insert the HR admin who processes requests."""
    from leave_engine.core_hr.models import Employee

    data = _make_employee(full_name="HR Admin")
    db.add(Employee(**data))
    await db.flush()
    return data


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate an identity-service style JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _make_auth_headers(employee_id: uuid.UUID, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id, role=role)}"}


@pytest.fixture
def auth_headers(test_employee) -> dict[str, str]:
    return _make_auth_headers(test_employee["id"])


@pytest.fixture
def admin_headers(hr_admin) -> dict[str, str]:
    return _make_auth_headers(hr_admin["id"], role=UserRole.hr_admin)
