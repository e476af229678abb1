"""Salary config Pydantic v2 schemas — typed adjustments, policy snapshot, API payloads."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ═════════════════════════════════════════════════════════════════════
# Allowances / deductions
# ═════════════════════════════════════════════════════════════════════


class FixedAdjustment(BaseModel):
    """A flat amount per period."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fixed"] = "fixed"
    name: str = "Unnamed"
    amount: Decimal = Field(ge=0)


class PercentageAdjustment(BaseModel):
    """A percentage of the base salary."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["percentage"] = "percentage"
    name: str = "Unnamed"
    rate: Decimal = Field(ge=0, le=100)


Adjustment = Annotated[
    Union[FixedAdjustment, PercentageAdjustment],
    Field(discriminator="kind"),
]


# ═════════════════════════════════════════════════════════════════════
# Policy snapshot consumed by the calculator
# ═════════════════════════════════════════════════════════════════════


class SalaryPolicy(BaseModel):
    """Immutable, fully-typed view of a salary config row.

    Defaults for empty working model fields have already been applied and
    adjustment payloads have been parsed; ``warnings`` lists anything the
    store had to replace to get here.
    """

    model_config = ConfigDict(frozen=True)

    employee_id: str
    employee_name: Optional[str] = None
    department: Optional[str] = None
    base_salary: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    social_security_rate: Decimal = Decimal("0")
    working_days: int = 22
    daily_hours: Decimal = Decimal("8")
    overtime_multiplier: Decimal = Decimal("1.5")
    bonus_fixed: Decimal = Decimal("0")
    bonus_variable: Decimal = Decimal("0")
    other_deductions: Decimal = Decimal("0")
    allowances: tuple[Adjustment, ...] = ()
    deductions: tuple[Adjustment, ...] = ()
    warnings: tuple[str, ...] = ()


# ═════════════════════════════════════════════════════════════════════
# API payloads
# ═════════════════════════════════════════════════════════════════════


class SalaryConfigIn(BaseModel):
    """Create / replace an employee's salary config (HR administration)."""

    base_salary: Decimal = Field(ge=0)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    social_security_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    contract_type: Optional[str] = None
    working_days: int = Field(default=22, ge=1, le=31)
    daily_hours: Decimal = Field(default=Decimal("8"), gt=0, le=24)
    overtime_multiplier: Decimal = Field(default=Decimal("1.5"), ge=0)
    bonus_fixed: Decimal = Field(default=Decimal("0"), ge=0)
    bonus_variable: Decimal = Field(default=Decimal("0"), ge=0)
    other_deductions: Decimal = Field(default=Decimal("0"), ge=0)
    allowances: List[Adjustment] = []
    deductions: List[Adjustment] = []
    is_active: bool = True


class SalaryConfigOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    base_salary: Decimal
    tax_rate: Decimal
    social_security_rate: Decimal
    contract_type: Optional[str] = None
    working_days: Optional[int] = None
    daily_hours: Optional[Decimal] = None
    overtime_multiplier: Optional[Decimal] = None
    bonus_fixed: Decimal = Decimal("0")
    bonus_variable: Decimal = Decimal("0")
    other_deductions: Decimal = Decimal("0")
    allowances: Optional[list] = None
    deductions: Optional[list] = None
    is_active: bool = True
    updated_at: Optional[datetime] = None
