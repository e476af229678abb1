"""Payroll ORM models: PayPeriod, SalaryPayment.

SQLAlchemy 2.0 async-compatible models.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from payroll_backend.common.constants import EmailStatus, PaymentStatus, PayPeriodStatus
from payroll_backend.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PayPeriod(Base):
    """A calendar month going through payroll; mutated only by the period state machine."""

    __tablename__ = "pay_periods"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    period: Mapped[str] = mapped_column(sa.String(7), unique=True, nullable=False)
    label: Mapped[Optional[str]] = mapped_column(sa.String(50))
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    status: Mapped[str] = mapped_column(
        sa.String(20), default=PayPeriodStatus.draft.value, nullable=False,
    )
    total_employees: Mapped[int] = mapped_column(sa.Integer, default=0)
    total_amount: Mapped[float] = mapped_column(sa.Numeric(14, 2), default=0)
    paid_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    paid_by: Mapped[Optional[str]] = mapped_column(sa.String(100))
    emails_sent: Mapped[int] = mapped_column(sa.Integer, default=0)
    emails_failed: Mapped[int] = mapped_column(sa.Integer, default=0)
    email_details: Mapped[Optional[dict]] = mapped_column(JSONB)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('draft', 'calculated', 'processing', 'paid')",
            name="ck_pay_periods_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<PayPeriod {self.period} {self.status}>"


class SalaryPayment(Base):
    """Computed compensation of one employee for one period; upserted on recalculation."""

    __tablename__ = "salary_payments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_id: Mapped[str] = mapped_column(
        sa.String(50),
        sa.ForeignKey("employees.employee_id"),
        nullable=False,
    )
    period: Mapped[str] = mapped_column(
        sa.String(7),
        sa.ForeignKey("pay_periods.period", ondelete="CASCADE"),
        nullable=False,
    )

    # Attendance inputs
    days_worked: Mapped[int] = mapped_column(sa.Integer, default=0)
    days_present: Mapped[int] = mapped_column(sa.Integer, default=0)
    days_absent: Mapped[int] = mapped_column(sa.Integer, default=0)
    late_days: Mapped[int] = mapped_column(sa.Integer, default=0)
    early_leave_days: Mapped[int] = mapped_column(sa.Integer, default=0)
    overtime_hours: Mapped[float] = mapped_column(sa.Numeric(8, 2), default=0)

    # Breakdown
    base_salary: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    overtime_amount: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    bonus_amount: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    allowances_amount: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    gross_salary: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    tax_amount: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    social_security_amount: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    other_deductions: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    specific_deduction_amount: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    total_deductions: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)
    net_salary: Mapped[float] = mapped_column(sa.Numeric(12, 2), default=0)

    # Workflow
    payment_status: Mapped[str] = mapped_column(
        sa.String(20), default=PaymentStatus.pending.value, nullable=False,
    )
    payment_date: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))

    # Payslip delivery
    email_status: Mapped[str] = mapped_column(
        sa.String(20), default=EmailStatus.unsent.value, nullable=False,
    )
    email_attempts: Mapped[int] = mapped_column(sa.Integer, default=0)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    message_id: Mapped[Optional[str]] = mapped_column(sa.String(255))
    last_error: Mapped[Optional[str]] = mapped_column(sa.Text)

    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    __table_args__ = (
        sa.UniqueConstraint("employee_id", "period", name="uq_salary_payment_employee_period"),
        sa.Index("ix_salary_payments_period", "period"),
    )

    def __repr__(self) -> str:
        return f"<SalaryPayment {self.employee_id} {self.period} net={self.net_salary}>"
