"""Attendance aggregate source — per employee summaries over a date range.

Business logic:
  - Records with status ``day_off`` are ignored entirely
  - ``days_worked`` counts every remaining record
  - Overtime is the time beyond ``daily_hours`` on days with both check-in
    and check-out recorded
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_backend.attendance.models import AttendanceRecord
from payroll_backend.common.constants import AttendanceStatus
from payroll_backend.common.money import ZERO, to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttendanceAggregate:
    days_worked: int = 0
    days_present: int = 0
    days_absent: int = 0
    late_days: int = 0
    early_leave_days: int = 0
    total_hours_worked: Decimal = ZERO
    overtime_hours: Decimal = ZERO


EMPTY_AGGREGATE = AttendanceAggregate()


class AttendanceAggregateSource:
    """Computes ``AttendanceAggregate`` values on demand; nothing is persisted."""

    @staticmethod
    def summarize(
        records: list[AttendanceRecord],
        daily_hours: Decimal,
    ) -> AttendanceAggregate:
        counts = {status: 0 for status in AttendanceStatus}
        total_hours = ZERO
        overtime = ZERO
        worked = 0

        for record in records:
            try:
                status = AttendanceStatus(record.status)
            except ValueError:
                status = None
            if status is AttendanceStatus.day_off:
                continue
            worked += 1
            if status is not None:
                counts[status] += 1

            hours = to_decimal(round(record.hours_worked, 6))
            total_hours += hours
            if hours > daily_hours:
                overtime += hours - daily_hours

        return AttendanceAggregate(
            days_worked=worked,
            days_present=counts[AttendanceStatus.present],
            days_absent=counts[AttendanceStatus.absent],
            late_days=counts[AttendanceStatus.late],
            early_leave_days=counts[AttendanceStatus.early_leave],
            total_hours_worked=total_hours,
            overtime_hours=overtime,
        )

    @staticmethod
    async def get_aggregate(
        db: AsyncSession,
        employee_id: str,
        start_date: date,
        end_date: date,
        daily_hours: Decimal,
    ) -> AttendanceAggregate:
        """Aggregate attendance for one employee; lookup failures yield zeros."""
        try:
            result = await db.execute(
                select(AttendanceRecord).where(
                    AttendanceRecord.employee_id == employee_id,
                    AttendanceRecord.record_date >= start_date,
                    AttendanceRecord.record_date <= end_date,
                )
            )
        except SQLAlchemyError as exc:
            logger.warning(
                "Attendance lookup failed for %s (%s → %s): %s",
                employee_id, start_date, end_date, exc,
            )
            return EMPTY_AGGREGATE

        return AttendanceAggregateSource.summarize(list(result.scalars().all()), daily_hours)
