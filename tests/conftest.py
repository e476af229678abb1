"""Shared test fixtures — async DB, client, fake mail gateway, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Keep the real SMTP settings of a developer machine out of the tests
os.environ["SMTP_HOST"] = ""
os.environ["ENVIRONMENT"] = "test"

import asyncio
import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from payroll_backend.common.exceptions import DeliveryError, TransportError
from payroll_backend.database import Base, get_db
from payroll_backend.main import create_app
from payroll_backend.notifications.gateway import OutgoingEmail
from payroll_backend.payroll.service import PayPeriodManager
from payroll_backend.salary_config.service import SalaryConfigStore

# Import ALL model modules so every table is registered on Base.metadata
import payroll_backend.attendance.models  # noqa: F401
import payroll_backend.directory.models  # noqa: F401
import payroll_backend.payroll.models  # noqa: F401
import payroll_backend.salary_config.models  # noqa: F401

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
    from payroll_backend.common.rate_limit import limiter

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


# ── Fake mail gateway ───────────────────────────────────────────────

class FakeGateway:
    """Records messages; fails the addresses listed in ``fail_for``.

    ``delay`` makes each send sleep so concurrency can be observed through
    ``max_in_flight``.
    """

    def __init__(
        self,
        *,
        fail_for: tuple[str, ...] = (),
        verify_error: Optional[str] = None,
        delay: float = 0.0,
        hang_for: tuple[str, ...] = (),
        simulated: bool = False,
    ) -> None:
        self.fail_for = set(fail_for)
        self.hang_for = set(hang_for)
        self.verify_error = verify_error
        self.delay = delay
        self.simulated = simulated
        self.sent: list[OutgoingEmail] = []
        self.verify_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def verify(self) -> None:
        self.verify_calls += 1
        if self.verify_error:
            raise TransportError(self.verify_error)

    async def send(self, message: OutgoingEmail) -> str:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if message.to in self.hang_for:
                await asyncio.sleep(3600)
            if self.delay:
                await asyncio.sleep(self.delay)
            if message.to in self.fail_for:
                raise DeliveryError(f"550 mailbox unavailable: {message.to}")
            self.sent.append(message)
            return f"<{uuid.uuid4().hex}@test.local>"
        finally:
            self.in_flight -= 1


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(gateway):
    """Create a fresh app instance with DB dependency and mail gateway overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.state.email_gateway = gateway
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


@pytest.fixture
def session_factory() -> async_sessionmaker:
    """Open extra sessions on the test engine (e.g. to observe committed state)."""
    return TestSessionFactory


# ── Services ────────────────────────────────────────────────────────

@pytest.fixture
def config_store() -> SalaryConfigStore:
    return SalaryConfigStore()


@pytest.fixture
def manager(config_store) -> PayPeriodManager:
    return PayPeriodManager(config_store)


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    employee_id: Optional[str] = None,
    first_name: str = "Amira",
    last_name: str = "Ben Salah",
    email: Optional[str] = "amira@example.com",
    department: Optional[str] = "Finance",
    is_active: bool = True,
) -> dict:
    return dict(
        employee_id=employee_id or f"EMP-{uuid.uuid4().hex[:6].upper()}",
        first_name=first_name,
        last_name=last_name,
        email=email,
        department=department,
        position="Accountant",
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
    )


def _make_salary_config(
    employee_id: str,
    *,
    base_salary: Decimal = Decimal("900"),
    tax_rate: Decimal = Decimal("15"),
    social_security_rate: Decimal = Decimal("9"),
    working_days: Optional[int] = 22,
    daily_hours: Optional[Decimal] = Decimal("8"),
    overtime_multiplier: Optional[Decimal] = Decimal("1.5"),
    allowances=None,
    deductions=None,
    is_active: bool = True,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        employee_id=employee_id,
        base_salary=base_salary,
        tax_rate=tax_rate,
        social_security_rate=social_security_rate,
        working_days=working_days,
        daily_hours=daily_hours,
        overtime_multiplier=overtime_multiplier,
        bonus_fixed=Decimal("0"),
        bonus_variable=Decimal("0"),
        other_deductions=Decimal("0"),
        allowances=[{"name": "Transport", "amount": 50, "kind": "fixed"}] if allowances is None else allowances,
        deductions=[] if deductions is None else deductions,
        is_active=is_active,
    )


async def create_employee(db: AsyncSession, **kwargs) -> dict:
    """Insert an employee with an active salary config; return the employee data."""
    from payroll_backend.directory.models import Employee
    from payroll_backend.salary_config.models import SalaryConfig

    config_kwargs = kwargs.pop("config", {})
    data = _make_employee(**kwargs)
    db.add(Employee(**data))
    await db.flush()
    if config_kwargs is not None:
        db.add(SalaryConfig(**_make_salary_config(data["employee_id"], **config_kwargs)))
        await db.flush()
    return data


async def add_attendance(
    db: AsyncSession,
    employee_id: str,
    day: date,
    *,
    hours: float = 8,
    status: str = "present",
) -> None:
    from payroll_backend.attendance.models import AttendanceRecord

    check_in = datetime.combine(day, time(8, 0), tzinfo=timezone.utc)
    db.add(AttendanceRecord(
        id=uuid.uuid4(),
        employee_id=employee_id,
        record_date=day,
        status=status,
        check_in_time=check_in,
        check_out_time=check_in + timedelta(hours=hours),
    ))
    await db.flush()


async def calculated_period(
    db: AsyncSession,
    manager: PayPeriodManager,
    period: str = "2026-01",
) -> None:
    """Create ``period`` and run the calculation over the seeded employees."""
    await manager.create_period(db, period)
    await manager.calculate(db, period)
    await db.commit()
