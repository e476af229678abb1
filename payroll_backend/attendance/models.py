"""Attendance ORM model — raw daily records the payroll aggregate is derived from."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from payroll_backend.common.constants import AttendanceStatus
from payroll_backend.database import Base


class AttendanceRecord(Base):
    """One day of attendance for one employee."""

    __tablename__ = "attendance_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_id: Mapped[str] = mapped_column(
        sa.String(50),
        sa.ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    record_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    status: Mapped[str] = mapped_column(
        sa.String(20), default=AttendanceStatus.present.value, nullable=False,
    )
    check_in_time: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    check_out_time: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        sa.UniqueConstraint("employee_id", "record_date", name="uq_attendance_employee_date"),
        sa.Index("ix_attendance_employee_date", "employee_id", "record_date"),
    )

    @property
    def hours_worked(self) -> float:
        if self.check_in_time is None or self.check_out_time is None:
            return 0.0
        return max((self.check_out_time - self.check_in_time).total_seconds() / 3600, 0.0)

    def __repr__(self) -> str:
        return f"<AttendanceRecord {self.employee_id} {self.record_date} {self.status}>"
