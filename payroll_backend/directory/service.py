"""Directory lookups used by the payroll pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_backend.common.exceptions import NotFoundException
from payroll_backend.directory.models import Employee


@dataclass(frozen=True)
class DirectoryEntry:
    """What payroll needs to know about an employee."""

    employee_id: str
    name: str
    email: Optional[str]
    department: Optional[str]
    active: bool

    @classmethod
    def from_employee(cls, employee: Employee) -> "DirectoryEntry":
        email = (employee.email or "").strip() or None
        return cls(
            employee_id=employee.employee_id,
            name=employee.full_name,
            email=email,
            department=employee.department,
            active=bool(employee.is_active),
        )


class EmployeeDirectory:
    """Read-only view over the ``employees`` table."""

    @staticmethod
    async def get_entry(db: AsyncSession, employee_id: str) -> DirectoryEntry:
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        return DirectoryEntry.from_employee(employee)

    @staticmethod
    async def get_entries(
        db: AsyncSession,
        employee_ids: Iterable[str],
    ) -> dict[str, DirectoryEntry]:
        """Bulk lookup; unknown ids are simply absent from the result."""
        ids = list(set(employee_ids))
        if not ids:
            return {}
        result = await db.execute(select(Employee).where(Employee.employee_id.in_(ids)))
        return {e.employee_id: DirectoryEntry.from_employee(e) for e in result.scalars().all()}
