"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (ledger, state machine, leave, API, ...).
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
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavepro.auth.schemas import CallerIdentity
from leavepro.common.constants import LeaveStatus, UserRole
from leavepro.config import settings
from leavepro.database import Base, get_db
from leavepro.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
# (e.g. Employee → LeaveBalance, Notification, etc.)
import leavepro.common.audit  # noqa: F401
import leavepro.core_hr.models  # noqa: F401
import leavepro.leave.models  # noqa: F401
import leavepro.notifications.models  # noqa: F401

from leavepro.core_hr.models import Department, Employee
from leavepro.leave.models import LeaveApplication, LeaveBalance, LeaveType

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


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
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
    from leavepro.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
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

async def seed_department(db: AsyncSession, *, name: str = "Engineering") -> Department:
    dept = Department(id=uuid.uuid4(), name=name)
    db.add(dept)
    await db.flush()
    return dept


async def seed_employee(
    db: AsyncSession,
    *,
    full_name: str = "Test Employee",
    email: Optional[str] = None,
    role: UserRole = UserRole.employee,
    department_id: Optional[uuid.UUID] = None,
    manager_id: Optional[uuid.UUID] = None,
    is_active: bool = True,
) -> Employee:
    emp = Employee(
        id=uuid.uuid4(),
        full_name=full_name,
        email=email or f"{uuid.uuid4().hex[:8]}@leavepro.test",
        role=role,
        department_id=department_id,
        manager_id=manager_id,
        date_of_joining=date(2024, 1, 15),
        is_active=is_active,
    )
    db.add(emp)
    await db.flush()
    return emp


async def seed_leave_type(
    db: AsyncSession,
    *,
    name: str = "Casual Leave",
    max_per_year: int = 12,
) -> LeaveType:
    lt = LeaveType(id=uuid.uuid4(), name=name, max_per_year=max_per_year)
    db.add(lt)
    await db.flush()
    return lt


async def seed_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    total_assigned: int = 12,
    used: int = 0,
) -> LeaveBalance:
    bal = LeaveBalance(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        total_assigned=total_assigned,
        used=used,
        remaining=total_assigned - used,
    )
    db.add(bal)
    await db.flush()
    return bal


async def seed_application(
    db: AsyncSession,
    employee: Employee,
    leave_type: LeaveType,
    *,
    start: date = date(2026, 1, 1),
    end: date = date(2026, 1, 5),
    status: LeaveStatus = LeaveStatus.pending,
    reason: str = "Family function out of town",
) -> LeaveApplication:
    """Insert an application directly, bypassing the submission rules."""
    app = LeaveApplication(
        id=uuid.uuid4(),
        employee_id=employee.id,
        leave_type_id=leave_type.id,
        start_date=start,
        end_date=end,
        total_days=(end - start).days + 1,
        reason=reason,
        status=status,
        applied_on=datetime.now(timezone.utc),
    )
    db.add(app)
    await db.flush()
    return app


def caller(employee: Employee) -> CallerIdentity:
    return CallerIdentity(id=employee.id, role=employee.role)


class Org:
    """A department with a manager, two reports and an admin."""

    department: Department
    manager: Employee
    employee: Employee
    colleague: Employee
    admin: Employee
    leave_type: LeaveType


@pytest.fixture
async def org() -> Org:
    """Seed a small organisation with a 12-day Casual Leave type.

    Seeded in its own session, so the returned objects are detached and a
    rollback in the test's ``db`` session cannot expire them.
    """
    o = Org()
    async with TestSessionFactory() as session:
        o.department = await seed_department(session)
        o.manager = await seed_employee(
            session, full_name="Meera Manager", role=UserRole.manager,
            department_id=o.department.id,
        )
        o.employee = await seed_employee(
            session, full_name="Ravi Kumar",
            department_id=o.department.id, manager_id=o.manager.id,
        )
        o.colleague = await seed_employee(
            session, full_name="Anita Shah",
            department_id=o.department.id, manager_id=o.manager.id,
        )
        o.admin = await seed_employee(
            session, full_name="Asha Admin", role=UserRole.admin,
        )
        o.leave_type = await seed_leave_type(session)
        await session.commit()
    return o


# ── Fresh-session readers ───────────────────────────────────────────
# Use only once the test's own session has committed or rolled back.

async def fetch_balance(
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> Optional[LeaveBalance]:
    async with TestSessionFactory() as session:
        result = await session.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type_id,
            )
        )
        return result.scalars().first()


async def fetch_application(application_id: uuid.UUID) -> Optional[LeaveApplication]:
    async with TestSessionFactory() as session:
        return await session.get(LeaveApplication, application_id)


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Mint a JWT the way the upstream identity provider would."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers_for(employee: Employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee.id, employee.role)}"}
