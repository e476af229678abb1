"""Tests for common utilities — decimal helpers, period keys, attendance summaries."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from payroll_backend.attendance.models import AttendanceRecord
from payroll_backend.attendance.service import AttendanceAggregateSource
from payroll_backend.common.exceptions import ValidationException
from payroll_backend.common.money import (
    format_money,
    round_money,
    safe_divide,
    to_decimal,
    truncate_error,
)
from payroll_backend.common.periods import parse_period_key, period_bounds, period_label
from tests.conftest import add_attendance, create_employee


# ── money ───────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "value,expected",
    [
        (0.1, Decimal("0.1")),
        ("12.50", Decimal("12.50")),
        (7, Decimal("7")),
        (None, Decimal("0")),
        ("", Decimal("0")),
        ("abc", Decimal("0")),
        (True, Decimal("0")),
        (Decimal("NaN"), Decimal("0")),
    ],
)
def test_to_decimal(value, expected):
    assert to_decimal(value) == expected


def test_round_money_is_half_up():
    assert round_money(Decimal("2.345")) == Decimal("2.35")
    assert round_money(Decimal("-2.345")) == Decimal("-2.35")
    assert round_money(Decimal("2.3449")) == Decimal("2.34")


def test_safe_divide_by_zero():
    assert safe_divide(Decimal("100"), Decimal("0")) == Decimal("0")


def test_format_money():
    assert format_money(Decimal("1234.5"), "TND") == "1,234.50 TND"


def test_truncate_error():
    assert truncate_error("  boom  ") == "boom"
    assert len(truncate_error("x" * 800, 500)) == 500


# ── periods ─────────────────────────────────────────────────────────


def test_period_helpers():
    assert parse_period_key("2026-03") == (2026, 3)
    assert period_bounds("2026-02") == (date(2026, 2, 1), date(2026, 2, 28))
    assert period_label("2026-12") == "December 2026"


@pytest.mark.parametrize("key", ["2026-00", "2026-13", "202601", "2026/01", None])
def test_parse_period_key_rejects(key):
    with pytest.raises(ValidationException):
        parse_period_key(key)


# ── attendance ──────────────────────────────────────────────────────


def _record(status: str, hours: float) -> AttendanceRecord:
    start = datetime(2026, 1, 5, 8, tzinfo=timezone.utc)
    return AttendanceRecord(
        employee_id="EMP-001",
        record_date=start.date(),
        status=status,
        check_in_time=start,
        check_out_time=start + timedelta(hours=hours),
    )


def test_summarize_counts_and_overtime():
    records = [
        _record("present", 9.5),
        _record("late", 8),
        _record("early_leave", 6),
        _record("absent", 0),
        _record("day_off", 11),
    ]
    aggregate = AttendanceAggregateSource.summarize(records, Decimal("8"))

    assert aggregate.days_worked == 4
    assert aggregate.days_present == 1
    assert aggregate.late_days == 1
    assert aggregate.early_leave_days == 1
    assert aggregate.days_absent == 1
    assert aggregate.overtime_hours == Decimal("1.5")
    assert aggregate.total_hours_worked == Decimal("23.5")


async def test_get_aggregate_respects_period_bounds(db):
    emp = await create_employee(db, employee_id="EMP-001")
    await add_attendance(db, emp["employee_id"], date(2025, 12, 31), hours=12)
    await add_attendance(db, emp["employee_id"], date(2026, 1, 15), hours=9)

    aggregate = await AttendanceAggregateSource.get_aggregate(
        db, "EMP-001", date(2026, 1, 1), date(2026, 1, 31), Decimal("8"),
    )
    assert aggregate.days_worked == 1
    assert aggregate.overtime_hours == Decimal("1.0")
