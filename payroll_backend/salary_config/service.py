"""Salary config store — typed policies with lazy load and explicit invalidation."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_backend.common.exceptions import ComputationError, NotFoundException
from payroll_backend.common.money import to_decimal
from payroll_backend.config import settings
from payroll_backend.directory.models import Employee
from payroll_backend.salary_config.models import SalaryConfig
from payroll_backend.salary_config.schemas import Adjustment, SalaryConfigIn, SalaryPolicy

logger = logging.getLogger(__name__)

_adjustment_list = TypeAdapter(list[Adjustment])

# Legacy payloads name the value after the list it lives in.
_AMOUNT_KEYS = ("amount", "allowance_amount", "deduction_amount", "value")


# ── Payload parsing ─────────────────────────────────────────────────

def _normalize_adjustment(item: Any) -> dict[str, Any]:
    if not isinstance(item, dict):
        raise ComputationError(f"expected an object, got {type(item).__name__}")
    kind = str(item.get("kind") or item.get("type") or "fixed").lower()
    name = item.get("name") or item.get("title") or "Unnamed"

    if kind == "percentage":
        value = item.get("rate")
        if value is None:
            value = next((item[k] for k in _AMOUNT_KEYS if item.get(k) is not None), 0)
        return {"kind": kind, "name": name, "rate": value}

    value = next((item[k] for k in _AMOUNT_KEYS if item.get(k) is not None), 0)
    return {"kind": kind, "name": name, "amount": value}


def parse_adjustments(raw: Any) -> list[Adjustment]:
    """Parse a stored allowance/deduction payload into typed adjustments.

    Accepts a list or its JSON text; ``None`` and empty strings are an empty
    list. Anything else that does not fit raises ``ComputationError``.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ComputationError(f"invalid JSON: {exc.msg}") from exc
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ComputationError(f"expected a list, got {type(raw).__name__}")

    normalized = [_normalize_adjustment(item) for item in raw]
    try:
        return _adjustment_list.validate_python(normalized)
    except ValidationError as exc:
        raise ComputationError(f"invalid entry: {exc.errors()[0]['msg']}") from exc


def _lenient_adjustments(employee_id: str, field: str, raw: Any, warnings: list[str]) -> list[Adjustment]:
    # A bad payload zeroes that component for this employee only; the warning
    # travels with the policy.
    try:
        return parse_adjustments(raw)
    except ComputationError as exc:
        message = f"{field} payload ignored: {exc}"
        logger.warning("Salary config %s: %s", employee_id, message)
        warnings.append(message)
        return []


def build_policy(config: SalaryConfig, employee: Optional[Employee] = None) -> SalaryPolicy:
    """Turn a config row into the calculator's typed snapshot."""
    warnings: list[str] = []
    allowances = _lenient_adjustments(config.employee_id, "allowances", config.allowances, warnings)
    deductions = _lenient_adjustments(config.employee_id, "deductions", config.deductions, warnings)

    working_days = int(config.working_days or 0) or settings.DEFAULT_WORKING_DAYS
    daily_hours = to_decimal(config.daily_hours) or to_decimal(settings.DEFAULT_DAILY_HOURS)
    multiplier = to_decimal(config.overtime_multiplier) or to_decimal(settings.DEFAULT_OVERTIME_MULTIPLIER)

    return SalaryPolicy(
        employee_id=config.employee_id,
        employee_name=employee.full_name if employee is not None else None,
        department=employee.department if employee is not None else None,
        base_salary=to_decimal(config.base_salary),
        tax_rate=to_decimal(config.tax_rate),
        social_security_rate=to_decimal(config.social_security_rate),
        working_days=working_days,
        daily_hours=daily_hours,
        overtime_multiplier=multiplier,
        bonus_fixed=to_decimal(config.bonus_fixed),
        bonus_variable=to_decimal(config.bonus_variable),
        other_deductions=to_decimal(config.other_deductions),
        allowances=tuple(allowances),
        deductions=tuple(deductions),
        warnings=tuple(warnings),
    )


# ── Store ───────────────────────────────────────────────────────────


class SalaryConfigStore:
    """Repository of active salary policies.

    Policies are loaded on first use and kept until ``invalidate`` is called;
    ``configure`` invalidates the entry it writes.
    """

    def __init__(self) -> None:
        self._policies: dict[str, Optional[SalaryPolicy]] = {}
        self._active_ids: Optional[list[str]] = None

    def invalidate(self, employee_id: Optional[str] = None) -> None:
        if employee_id is None:
            self._policies.clear()
        else:
            self._policies.pop(employee_id, None)
        self._active_ids = None

    @staticmethod
    def _active_query():
        return (
            select(SalaryConfig, Employee)
            .join(Employee, Employee.employee_id == SalaryConfig.employee_id)
            .where(SalaryConfig.is_active == True, Employee.is_active == True)  # noqa: E712
        )

    async def get_active_config(self, db: AsyncSession, employee_id: str) -> Optional[SalaryPolicy]:
        if employee_id in self._policies:
            return self._policies[employee_id]

        result = await db.execute(
            self._active_query().where(SalaryConfig.employee_id == employee_id)
        )
        row = result.first()
        policy = build_policy(row[0], row[1]) if row else None
        self._policies[employee_id] = policy
        return policy

    async def list_active(self, db: AsyncSession) -> list[SalaryPolicy]:
        """All employees with an active config, ordered by employee id."""
        if self._active_ids is None:
            result = await db.execute(self._active_query().order_by(SalaryConfig.employee_id))
            ids = []
            for config, employee in result.all():
                self._policies[config.employee_id] = build_policy(config, employee)
                ids.append(config.employee_id)
            self._active_ids = ids

        return [
            policy for policy in (self._policies.get(i) for i in self._active_ids)
            if policy is not None
        ]

    # ── Administration ──────────────────────────────────────────────

    @staticmethod
    async def get_config(db: AsyncSession, employee_id: str) -> SalaryConfig:
        result = await db.execute(
            select(SalaryConfig).where(SalaryConfig.employee_id == employee_id)
        )
        config = result.scalar_one_or_none()
        if config is None:
            raise NotFoundException("Salary config", employee_id)
        return config

    async def configure(
        self,
        db: AsyncSession,
        employee_id: str,
        payload: SalaryConfigIn,
    ) -> SalaryConfig:
        """Create or replace the salary config of an existing employee."""
        if await db.get(Employee, employee_id) is None:
            raise NotFoundException("Employee", employee_id)

        result = await db.execute(
            select(SalaryConfig).where(SalaryConfig.employee_id == employee_id)
        )
        config = result.scalar_one_or_none()
        if config is None:
            config = SalaryConfig(employee_id=employee_id)
            db.add(config)

        for field, value in payload.model_dump(exclude={"allowances", "deductions"}).items():
            setattr(config, field, value)
        config.allowances = [a.model_dump(mode="json") for a in payload.allowances]
        config.deductions = [d.model_dump(mode="json") for d in payload.deductions]
        await db.flush()

        self.invalidate(employee_id)
        logger.info("Salary config saved for %s (active=%s)", employee_id, payload.is_active)
        return config
