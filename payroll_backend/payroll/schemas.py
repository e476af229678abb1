"""Payroll Pydantic v2 schemas — request/response validation."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ═════════════════════════════════════════════════════════════════════
# Pay Period
# ═════════════════════════════════════════════════════════════════════


class PayPeriodCreate(BaseModel):
    """Open a new pay period; dates default to the calendar month."""

    period: str = Field(..., pattern=r"^\d{4}-\d{2}$", examples=["2026-01"])
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    label: Optional[str] = Field(None, max_length=50)


class PayPeriodOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    period: str
    label: Optional[str] = None
    start_date: date
    end_date: date
    status: str
    total_employees: int = 0
    total_amount: Decimal = Decimal("0")
    paid_at: Optional[datetime] = None
    paid_by: Optional[str] = None
    emails_sent: int = 0
    emails_failed: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PayPeriodDetail(PayPeriodOut):
    """Period plus live payment statistics and the stored email summary."""

    payment_count: int = 0
    total_net: Decimal = Decimal("0")
    email_details: Optional[dict[str, Any]] = None


class PayPeriodListResponse(BaseModel):
    data: List[PayPeriodOut]
    total: int


# ═════════════════════════════════════════════════════════════════════
# Salary Payment
# ═════════════════════════════════════════════════════════════════════


class SalaryPaymentOut(BaseModel):
    """Full salary payment representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: str
    period: str
    days_worked: int = 0
    days_present: int = 0
    days_absent: int = 0
    late_days: int = 0
    early_leave_days: int = 0
    overtime_hours: Decimal = Decimal("0")
    base_salary: Decimal = Decimal("0")
    overtime_amount: Decimal = Decimal("0")
    bonus_amount: Decimal = Decimal("0")
    allowances_amount: Decimal = Decimal("0")
    gross_salary: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    social_security_amount: Decimal = Decimal("0")
    other_deductions: Decimal = Decimal("0")
    specific_deduction_amount: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    net_salary: Decimal = Decimal("0")
    payment_status: str
    payment_date: Optional[datetime] = None
    email_status: str
    email_attempts: int = 0
    email_sent_at: Optional[datetime] = None
    message_id: Optional[str] = None
    last_error: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SalaryPaymentListResponse(BaseModel):
    data: List[SalaryPaymentOut]
    total: int


# ═════════════════════════════════════════════════════════════════════
# Calculation
# ═════════════════════════════════════════════════════════════════════


class EmployeeResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    name: Optional[str] = None
    department: Optional[str] = None
    payment_id: uuid.UUID
    gross_salary: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    warnings: List[str] = []


class EmployeeErrorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    name: Optional[str] = None
    department: Optional[str] = None
    error: str


class CalculationSummary(BaseModel):
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    total_bonus: Decimal
    total_overtime: Decimal
    average_net: Decimal


class CalculationResponse(BaseModel):
    period: str
    status: str
    employee_count: int
    summary: CalculationSummary
    results: List[EmployeeResultOut]
    errors: List[EmployeeErrorOut]


# ═════════════════════════════════════════════════════════════════════
# Closing / Notifications
# ═════════════════════════════════════════════════════════════════════


class DeliveryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    net_salary: Decimal
    message_id: Optional[str] = None
    reason: Optional[str] = None


class EmailStats(BaseModel):
    sent: int
    failed: int
    success_rate: float


class ClosingResponse(BaseModel):
    period: str
    status: str
    paid_at: datetime
    paid_by: Optional[str] = None
    employees_total: int
    employees_with_email: int
    total_paid: Decimal
    emails: EmailStats
    failed: List[DeliveryOut]


class ResendResponse(BaseModel):
    period: str
    resent: int
    failed: int
    failures: List[DeliveryOut]


class ReconcileResponse(BaseModel):
    period: str
    released: bool


# ═════════════════════════════════════════════════════════════════════
# Statistics
# ═════════════════════════════════════════════════════════════════════


class PayrollStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_periods: int
    periods_by_status: Dict[str, int]
    total_amount: Decimal
    total_paid_amount: Decimal
    payments_by_status: Dict[str, int]
    paid_net_total: Decimal
    average_paid_net: Decimal
    active_employees: int
    configured_employees: int
    config_rate: int
    latest_period: Optional[PayPeriodOut] = None
