"""Compensation calculator — attendance + salary policy → salary payment rows.

Arithmetic:
  - daily rate = base / working days, hourly rate = daily rate / daily hours
  - overtime = overtime hours × hourly rate × overtime multiplier
  - gross = base + overtime + bonuses + allowances
  - deductions = tax + social security + other + specific deductions
  - net = gross − deductions

Every term stays unrounded ``Decimal`` until ``finalize``; there gross and
total deductions are quantised once and net is their exact difference.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_backend.attendance.service import AttendanceAggregate, AttendanceAggregateSource
from payroll_backend.common.constants import PaymentStatus
from payroll_backend.common.money import ZERO, percent_of, round_money, safe_divide
from payroll_backend.config import settings
from payroll_backend.payroll.models import PayPeriod, SalaryPayment
from payroll_backend.salary_config.schemas import (
    Adjustment,
    FixedAdjustment,
    PercentageAdjustment,
    SalaryPolicy,
)
from payroll_backend.salary_config.service import SalaryConfigStore

logger = logging.getLogger(__name__)


# ── Breakdown ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class PayBreakdown:
    """Final, rounded compensation figures for one employee."""

    base_salary: Decimal
    daily_rate: Decimal
    hourly_rate: Decimal
    overtime_hours: Decimal
    overtime_amount: Decimal
    bonus_fixed: Decimal
    bonus_variable: Decimal
    bonus_amount: Decimal
    allowances_amount: Decimal
    gross_salary: Decimal
    tax_amount: Decimal
    social_security_amount: Decimal
    other_deductions: Decimal
    specific_deduction_amount: Decimal
    total_deductions: Decimal
    net_salary: Decimal


def sum_adjustments(adjustments: Iterable[Adjustment], base_salary: Decimal) -> Decimal:
    """Fixed entries add their amount, percentage entries a share of the base salary."""
    total = ZERO
    for adjustment in adjustments:
        if isinstance(adjustment, PercentageAdjustment):
            total += percent_of(base_salary, adjustment.rate)
        elif isinstance(adjustment, FixedAdjustment):
            total += adjustment.amount
    return total


def compute_breakdown(
    policy: SalaryPolicy,
    aggregate: AttendanceAggregate,
    precision: int = 2,
) -> PayBreakdown:
    base = policy.base_salary
    daily_rate = safe_divide(base, Decimal(policy.working_days))
    hourly_rate = safe_divide(daily_rate, policy.daily_hours)

    overtime_amount = aggregate.overtime_hours * hourly_rate * policy.overtime_multiplier
    bonus_amount = policy.bonus_fixed + policy.bonus_variable
    allowances = sum_adjustments(policy.allowances, base)

    gross = base + overtime_amount + bonus_amount + allowances

    tax = percent_of(gross, policy.tax_rate)
    social_security = percent_of(gross, policy.social_security_rate)
    specific = sum_adjustments(policy.deductions, base)
    total_deductions = tax + social_security + policy.other_deductions + specific

    return finalize(
        precision,
        base_salary=base,
        daily_rate=daily_rate,
        hourly_rate=hourly_rate,
        overtime_hours=aggregate.overtime_hours,
        overtime_amount=overtime_amount,
        bonus_fixed=policy.bonus_fixed,
        bonus_variable=policy.bonus_variable,
        bonus_amount=bonus_amount,
        allowances_amount=allowances,
        gross_salary=gross,
        tax_amount=tax,
        social_security_amount=social_security,
        other_deductions=policy.other_deductions,
        specific_deduction_amount=specific,
        total_deductions=total_deductions,
    )


def finalize(precision: int, **raw: Decimal) -> PayBreakdown:
    """The single rounding step: net is derived from the rounded totals."""
    rounded = {
        name: value if name in ("daily_rate", "hourly_rate") else round_money(value, precision)
        for name, value in raw.items()
    }
    rounded["net_salary"] = rounded["gross_salary"] - rounded["total_deductions"]
    return PayBreakdown(**rounded)


# ── Batch over a period ─────────────────────────────────────────────


@dataclass
class EmployeeSuccess:
    employee_id: str
    name: Optional[str]
    department: Optional[str]
    payment_id: uuid.UUID
    gross_salary: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    bonus_amount: Decimal
    overtime_amount: Decimal
    warnings: list[str] = field(default_factory=list)


@dataclass
class EmployeeFailure:
    employee_id: str
    name: Optional[str]
    department: Optional[str]
    error: str


@dataclass
class CalculationResult:
    period: str
    successes: list[EmployeeSuccess] = field(default_factory=list)
    errors: list[EmployeeFailure] = field(default_factory=list)

    @property
    def employee_count(self) -> int:
        return len(self.successes)

    @property
    def total_net(self) -> Decimal:
        return sum((s.net_salary for s in self.successes), ZERO)

    @property
    def total_gross(self) -> Decimal:
        return sum((s.gross_salary for s in self.successes), ZERO)

    @property
    def total_deductions(self) -> Decimal:
        return sum((s.total_deductions for s in self.successes), ZERO)

    @property
    def total_bonus(self) -> Decimal:
        return sum((s.bonus_amount for s in self.successes), ZERO)

    @property
    def total_overtime(self) -> Decimal:
        return sum((s.overtime_amount for s in self.successes), ZERO)

    @property
    def average_net(self) -> Decimal:
        if not self.successes:
            return ZERO
        return round_money(self.total_net / len(self.successes), settings.CURRENCY_PRECISION)


def _build_notes(policy: SalaryPolicy, aggregate: AttendanceAggregate, breakdown: PayBreakdown) -> str:
    currency = settings.CURRENCY_CODE
    parts = [
        f"Calculated {datetime.now(timezone.utc):%Y-%m-%d}",
        f"Days worked: {aggregate.days_worked}/{policy.working_days}",
        f"Present: {aggregate.days_present}, absent: {aggregate.days_absent}",
        f"Late: {aggregate.late_days}, early leave: {aggregate.early_leave_days}",
        f"Overtime: {breakdown.overtime_hours}h ({breakdown.overtime_amount} {currency})",
        f"Bonus: {breakdown.bonus_amount} {currency}",
        f"Allowances: {breakdown.allowances_amount} {currency}",
    ]
    parts.extend(f"Warning: {w}" for w in policy.warnings)
    return " | ".join(parts)


def _apply_breakdown(
    payment: SalaryPayment,
    aggregate: AttendanceAggregate,
    breakdown: PayBreakdown,
    notes: str,
) -> None:
    payment.days_worked = aggregate.days_worked
    payment.days_present = aggregate.days_present
    payment.days_absent = aggregate.days_absent
    payment.late_days = aggregate.late_days
    payment.early_leave_days = aggregate.early_leave_days
    payment.overtime_hours = breakdown.overtime_hours
    payment.base_salary = breakdown.base_salary
    payment.overtime_amount = breakdown.overtime_amount
    payment.bonus_amount = breakdown.bonus_amount
    payment.allowances_amount = breakdown.allowances_amount
    payment.gross_salary = breakdown.gross_salary
    payment.tax_amount = breakdown.tax_amount
    payment.social_security_amount = breakdown.social_security_amount
    payment.other_deductions = breakdown.other_deductions
    payment.specific_deduction_amount = breakdown.specific_deduction_amount
    payment.total_deductions = breakdown.total_deductions
    payment.net_salary = breakdown.net_salary
    # TODO: decide with HR whether a recalculation may keep 'approved' rows approved;
    # until then every recompute restarts the approval workflow.
    payment.payment_status = PaymentStatus.pending.value
    payment.notes = notes


class CompensationCalculator:
    """Computes and upserts the salary payments of one period."""

    def __init__(
        self,
        config_store: SalaryConfigStore,
        attendance: Optional[AttendanceAggregateSource] = None,
        precision: Optional[int] = None,
    ) -> None:
        self.config_store = config_store
        self.attendance = attendance or AttendanceAggregateSource()
        self.precision = settings.CURRENCY_PRECISION if precision is None else precision

    async def calculate_period(
        self,
        db: AsyncSession,
        pay_period: PayPeriod,
        policies: Optional[list[SalaryPolicy]] = None,
    ) -> CalculationResult:
        """Sequentially compute every employee; one failure never stops the batch."""
        if policies is None:
            policies = await self.config_store.list_active(db)

        existing = await db.execute(
            select(SalaryPayment).where(SalaryPayment.period == pay_period.period)
        )
        payments = {p.employee_id: p for p in existing.scalars().all()}
        result = CalculationResult(period=pay_period.period)

        for policy in policies:
            try:
                aggregate = await self.attendance.get_aggregate(
                    db,
                    policy.employee_id,
                    pay_period.start_date,
                    pay_period.end_date,
                    policy.daily_hours,
                )
                breakdown = compute_breakdown(policy, aggregate, self.precision)

                payment = payments.get(policy.employee_id)
                if payment is None:
                    payment = SalaryPayment(
                        id=uuid.uuid4(),
                        employee_id=policy.employee_id,
                        period=pay_period.period,
                    )
                    db.add(payment)
                    payments[policy.employee_id] = payment
                _apply_breakdown(payment, aggregate, breakdown, _build_notes(policy, aggregate, breakdown))
            except Exception as exc:
                logger.exception(
                    "Salary computation failed for %s in %s", policy.employee_id, pay_period.period,
                )
                result.errors.append(
                    EmployeeFailure(
                        employee_id=policy.employee_id,
                        name=policy.employee_name,
                        department=policy.department,
                        error=str(exc) or exc.__class__.__name__,
                    )
                )
                continue

            result.successes.append(
                EmployeeSuccess(
                    employee_id=policy.employee_id,
                    name=policy.employee_name,
                    department=policy.department,
                    payment_id=payment.id,
                    gross_salary=breakdown.gross_salary,
                    total_deductions=breakdown.total_deductions,
                    net_salary=breakdown.net_salary,
                    bonus_amount=breakdown.bonus_amount,
                    overtime_amount=breakdown.overtime_amount,
                    warnings=list(policy.warnings),
                )
            )

        await db.flush()
        logger.info(
            "Calculated %s: %d succeeded, %d failed, net total %s",
            pay_period.period, len(result.successes), len(result.errors), result.total_net,
        )
        return result
