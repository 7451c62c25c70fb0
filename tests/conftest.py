"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (engine, leave, company, API).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from backend.auth.tokens import create_access_token
from backend.common.constants import UserRole
from backend.database import Base, get_db
from backend.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
# (e.g. Employee → Company, LeaveRequest)
import backend.common.audit  # noqa: F401
import backend.company.models  # noqa: F401
import backend.core_hr.models  # noqa: F401
import backend.leave.models  # noqa: F401

from backend.company.models import BankHoliday, Company, CompanyDayOverride
from backend.core_hr.models import Employee

# ── SQLite compat: compile PG-specific types to TEXT/CHAR ───────────

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


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
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
    from backend.common.rate_limit import limiter

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


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
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

def _make_company(
    *,
    name: str = "Acme Studios",
    cap_paid: Decimal = Decimal("12"),
    cap_casual: Decimal = Decimal("6"),
    cap_sick: Decimal = Decimal("6"),
    total_annual: Decimal = Decimal("24"),
    rate_per_month: Decimal = Decimal("2"),
    sandwich_enabled: bool = False,
    sandwich_min_days: Optional[int] = None,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        name=name,
        cap_paid=cap_paid,
        cap_casual=cap_casual,
        cap_sick=cap_sick,
        total_annual=total_annual,
        rate_per_month=rate_per_month,
        sandwich_enabled=sandwich_enabled,
        sandwich_min_days=sandwich_min_days,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


def _make_employee(
    company_id: uuid.UUID,
    *,
    email: Optional[str] = None,
    name: str = "Test User",
    role: UserRole = UserRole.employee,
    reporting_manager_id: Optional[uuid.UUID] = None,
    pool: Decimal = Decimal("0"),
    used: Optional[dict[str, Decimal]] = None,
    last_accrued_year_month: Optional[str] = None,
    created_at: Optional[datetime] = None,
    is_active: bool = True,
) -> dict:
    data: dict[str, Any] = dict(
        id=uuid.uuid4(),
        company_id=company_id,
        name=name,
        email=email or f"user.{uuid.uuid4().hex[:8]}@acme.io",
        role=role,
        reporting_manager_id=reporting_manager_id,
        is_active=is_active,
        total_leave_available=pool,
        last_accrued_year_month=last_accrued_year_month,
        ledger_version=0,
        created_at=created_at or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    for kind, amount in (used or {}).items():
        data[f"used_{kind}"] = amount
    return data


async def seed_company(db: AsyncSession, **overrides: Any) -> Company:
    company = Company(**_make_company(**overrides))
    db.add(company)
    await db.flush()
    return company


async def seed_employee(
    db: AsyncSession, company_id: uuid.UUID, **overrides: Any,
) -> Employee:
    employee = Employee(**_make_employee(company_id, **overrides))
    db.add(employee)
    await db.flush()
    return employee


async def seed_bank_holiday(
    db: AsyncSession, company_id: uuid.UUID, day, name: str = "Holiday",
) -> BankHoliday:
    holiday = BankHoliday(id=uuid.uuid4(), company_id=company_id, date=day, name=name)
    db.add(holiday)
    await db.flush()
    return holiday


async def seed_day_override(
    db: AsyncSession, company_id: uuid.UUID, day, kind,
) -> CompanyDayOverride:
    override = CompanyDayOverride(
        id=uuid.uuid4(),
        company_id=company_id,
        date=day,
        kind=kind,
        updated_at=datetime.now(timezone.utc),
    )
    db.add(override)
    await db.flush()
    return override


# ── Fixtures: a small company with a manager, an employee and an admin ──

@pytest.fixture
async def company(db) -> Company:
    return await seed_company(db)


@pytest.fixture
async def manager(db, company) -> Employee:
    return await seed_employee(
        db, company.id, name="Mina Manager", email="mina@acme.io",
        role=UserRole.manager, pool=Decimal("10"),
    )


@pytest.fixture
async def employee(db, company, manager) -> Employee:
    return await seed_employee(
        db, company.id, name="Eli Employee", email="eli@acme.io",
        reporting_manager_id=manager.id, pool=Decimal("10"),
        last_accrued_year_month="2026-03",
    )


@pytest.fixture
async def hr_admin(db, company) -> Employee:
    return await seed_employee(
        db, company.id, name="Hana HR", email="hana@acme.io",
        role=UserRole.hr_admin,
    )


# ── Auth helpers ────────────────────────────────────────────────────

def bearer(employee: Employee, *, expired: bool = False) -> dict[str, str]:
    """Authorization header for ``employee`` (role taken from the row)."""
    delta = timedelta(hours=-1) if expired else None
    token = create_access_token(employee.id, employee.role, expires_delta=delta)
    return {"Authorization": f"Bearer {token}"}
