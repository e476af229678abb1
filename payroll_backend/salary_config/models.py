"""Salary config ORM model — per-employee pay policy."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from payroll_backend.database import Base


class SalaryConfig(Base):
    """Pay policy of one employee.

    ``allowances`` and ``deductions`` hold the raw JSON payload as written by
    HR administration; they are parsed into typed adjustments when read.
    """

    __tablename__ = "salary_configs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_id: Mapped[str] = mapped_column(
        sa.String(50),
        sa.ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    base_salary: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    tax_rate: Mapped[float] = mapped_column(sa.Numeric(5, 2), default=0)
    social_security_rate: Mapped[float] = mapped_column(sa.Numeric(5, 2), default=0)
    contract_type: Mapped[Optional[str]] = mapped_column(sa.String(50))
    working_days: Mapped[Optional[int]] = mapped_column(sa.Integer, default=22)
    daily_hours: Mapped[Optional[float]] = mapped_column(sa.Numeric(4, 2), default=8)
    overtime_multiplier: Mapped[Optional[float]] = mapped_column(sa.Numeric(4, 2), default=1.5)
    bonus_fixed: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    bonus_variable: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    other_deductions: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    allowances: Mapped[Optional[list]] = mapped_column(JSONB, default=list)
    deductions: Mapped[Optional[list]] = mapped_column(JSONB, default=list)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<SalaryConfig employee_id={self.employee_id} base={self.base_salary}>"
