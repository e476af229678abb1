"""Compensation calculator test suite — arithmetic, rounding and the period batch.

Pure ``compute_breakdown`` checks plus service-level runs against SQLite.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select

from payroll_backend.attendance.service import AttendanceAggregate, EMPTY_AGGREGATE
from payroll_backend.payroll.calculator import (
    CompensationCalculator,
    compute_breakdown,
    sum_adjustments,
)
from payroll_backend.payroll.models import SalaryPayment
from payroll_backend.salary_config.schemas import (
    FixedAdjustment,
    PercentageAdjustment,
    SalaryPolicy,
)
from tests.conftest import add_attendance, create_employee


# ── Helpers ─────────────────────────────────────────────────────────


def _policy(**overrides) -> SalaryPolicy:
    values = dict(
        employee_id="EMP-001",
        employee_name="Amira Ben Salah",
        base_salary=Decimal("900"),
        tax_rate=Decimal("15"),
        social_security_rate=Decimal("9"),
        working_days=22,
        daily_hours=Decimal("8"),
        overtime_multiplier=Decimal("1.5"),
        allowances=(FixedAdjustment(name="Transport", amount=Decimal("50")),),
    )
    values.update(overrides)
    return SalaryPolicy(**values)


# ═════════════════════════════════════════════════════════════════════
# compute_breakdown
# ═════════════════════════════════════════════════════════════════════


class TestComputeBreakdown:

    def test_worked_example(self):
        breakdown = compute_breakdown(_policy(), AttendanceAggregate(overtime_hours=Decimal("4")))

        assert breakdown.overtime_amount == Decimal("30.68")
        assert breakdown.allowances_amount == Decimal("50.00")
        assert breakdown.gross_salary == Decimal("980.68")
        assert breakdown.tax_amount == Decimal("147.10")
        assert breakdown.social_security_amount == Decimal("88.26")
        assert breakdown.total_deductions == Decimal("235.36")
        assert breakdown.net_salary == Decimal("745.32")

    def test_rates_are_not_rounded(self):
        breakdown = compute_breakdown(_policy(), EMPTY_AGGREGATE)
        assert breakdown.daily_rate == Decimal("900") / Decimal("22")
        assert breakdown.hourly_rate == breakdown.daily_rate / Decimal("8")

    def test_net_is_rounded_gross_minus_rounded_deductions(self):
        policy = _policy(
            base_salary=Decimal("1234.567"),
            tax_rate=Decimal("12.345"),
            social_security_rate=Decimal("9.18"),
        )
        breakdown = compute_breakdown(policy, AttendanceAggregate(overtime_hours=Decimal("3.3")))
        assert breakdown.net_salary == breakdown.gross_salary - breakdown.total_deductions
        assert breakdown.net_salary.as_tuple().exponent == -2

    def test_percentage_adjustments_use_base_salary(self):
        policy = _policy(
            allowances=(PercentageAdjustment(name="Housing", rate=Decimal("10")),),
            deductions=(
                FixedAdjustment(name="Loan", amount=Decimal("20")),
                PercentageAdjustment(name="Union", rate=Decimal("1")),
            ),
            tax_rate=Decimal("0"),
            social_security_rate=Decimal("0"),
        )
        breakdown = compute_breakdown(policy, EMPTY_AGGREGATE)

        assert breakdown.allowances_amount == Decimal("90.00")
        assert breakdown.gross_salary == Decimal("990.00")
        assert breakdown.specific_deduction_amount == Decimal("29.00")
        assert breakdown.net_salary == Decimal("961.00")

    def test_zero_working_days_yields_zero_rates(self):
        policy = _policy(working_days=0)
        breakdown = compute_breakdown(policy, AttendanceAggregate(overtime_hours=Decimal("10")))

        assert breakdown.daily_rate == Decimal("0")
        assert breakdown.hourly_rate == Decimal("0")
        assert breakdown.overtime_amount == Decimal("0.00")
        assert breakdown.gross_salary == Decimal("950.00")

    def test_bonuses_and_other_deductions(self):
        policy = _policy(
            bonus_fixed=Decimal("100"),
            bonus_variable=Decimal("25.5"),
            other_deductions=Decimal("10"),
            tax_rate=Decimal("0"),
            social_security_rate=Decimal("0"),
            allowances=(),
        )
        breakdown = compute_breakdown(policy, EMPTY_AGGREGATE)
        assert breakdown.bonus_amount == Decimal("125.50")
        assert breakdown.gross_salary == Decimal("1025.50")
        assert breakdown.net_salary == Decimal("1015.50")

    def test_precision_is_configurable(self):
        breakdown = compute_breakdown(
            _policy(), AttendanceAggregate(overtime_hours=Decimal("4")), precision=3,
        )
        assert breakdown.gross_salary == Decimal("980.682")


def test_sum_adjustments_empty():
    assert sum_adjustments((), Decimal("1000")) == Decimal("0")


# ═════════════════════════════════════════════════════════════════════
# CompensationCalculator.calculate_period
# ═════════════════════════════════════════════════════════════════════


class TestCalculatePeriod:

    async def test_upserts_one_payment_per_employee(self, db, config_store, manager):
        emp = await create_employee(db, employee_id="EMP-001")
        await add_attendance(db, emp["employee_id"], date(2026, 1, 5), hours=10)
        await add_attendance(db, emp["employee_id"], date(2026, 1, 6), hours=10)
        await add_attendance(db, emp["employee_id"], date(2026, 1, 7), status="day_off", hours=12)
        pay_period = await manager.create_period(db, "2026-01")

        calculator = CompensationCalculator(config_store)
        first = await calculator.calculate_period(db, pay_period)
        second = await calculator.calculate_period(db, pay_period)

        rows = (await db.execute(select(SalaryPayment))).scalars().all()
        assert len(rows) == 1
        assert first.successes[0].payment_id == second.successes[0].payment_id

        payment = rows[0]
        assert payment.days_worked == 2
        assert payment.overtime_hours == Decimal("4.00")
        assert payment.net_salary == Decimal("745.32")
        assert payment.payment_status == "pending"
        assert "Days worked: 2/22" in payment.notes

    async def test_bad_adjustments_become_warnings(self, db, config_store, manager):
        await create_employee(
            db, employee_id="EMP-002",
            config={"allowances": "{not json", "tax_rate": Decimal("0"), "social_security_rate": Decimal("0")},
        )
        pay_period = await manager.create_period(db, "2026-02")

        result = await CompensationCalculator(config_store).calculate_period(db, pay_period)

        assert result.errors == []
        assert result.successes[0].net_salary == Decimal("900.00")
        assert any("allowances payload ignored" in w for w in result.successes[0].warnings)

    async def test_one_failure_does_not_stop_the_batch(self, db, config_store, manager, monkeypatch):
        await create_employee(db, employee_id="EMP-001")
        await create_employee(db, employee_id="EMP-002", email="other@example.com")
        pay_period = await manager.create_period(db, "2026-01")

        calculator = CompensationCalculator(config_store)
        original = calculator.attendance.get_aggregate

        async def flaky(session, employee_id, *args):
            if employee_id == "EMP-001":
                raise RuntimeError("attendance source exploded")
            return await original(session, employee_id, *args)

        monkeypatch.setattr(calculator.attendance, "get_aggregate", flaky)
        result = await calculator.calculate_period(db, pay_period)

        assert [s.employee_id for s in result.successes] == ["EMP-002"]
        assert result.errors[0].employee_id == "EMP-001"
        assert "exploded" in result.errors[0].error

    async def test_summary_totals(self, db, config_store, manager):
        await create_employee(db, employee_id="EMP-001")
        await create_employee(db, employee_id="EMP-002", email="b@example.com")
        pay_period = await manager.create_period(db, "2026-01")

        result = await CompensationCalculator(config_store).calculate_period(db, pay_period)

        assert result.employee_count == 2
        assert result.total_gross == Decimal("1900.00")
        assert result.total_net == result.total_gross - result.total_deductions
        assert result.average_net == result.total_net / 2
