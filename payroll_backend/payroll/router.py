"""Payroll router — pay periods, calculation, closing and payslips.

Authentication is handled upstream; the acting user arrives in ``X-Actor-Id``.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_backend.common.constants import DEFAULT_HISTORY_LIMIT
from payroll_backend.common.rate_limit import close_limit, limiter
from payroll_backend.database import get_db
from payroll_backend.dependencies import (
    get_actor_id,
    get_email_gateway,
    get_pay_period_manager,
)
from payroll_backend.notifications.gateway import EmailGateway
from payroll_backend.payroll.schemas import (
    CalculationResponse,
    CalculationSummary,
    ClosingResponse,
    DeliveryOut,
    EmailStats,
    EmployeeErrorOut,
    EmployeeResultOut,
    PayPeriodCreate,
    PayPeriodDetail,
    PayPeriodListResponse,
    PayPeriodOut,
    PayrollStatsResponse,
    ReconcileResponse,
    ResendResponse,
    SalaryPaymentListResponse,
    SalaryPaymentOut,
)
from payroll_backend.payroll.service import PayPeriodManager

router = APIRouter(prefix="", tags=["payroll"])


# ═════════════════════════════════════════════════════════════════════
# Pay periods
# ═════════════════════════════════════════════════════════════════════


# ── POST /periods ───────────────────────────────────────────────────

@router.post("/periods", response_model=PayPeriodOut, status_code=201)
async def create_period(
    data: PayPeriodCreate,
    db: AsyncSession = Depends(get_db),
):
    """Open a pay period in ``draft``."""
    pay_period = await PayPeriodManager.create_period(
        db, data.period, data.start_date, data.end_date, data.label,
    )
    return PayPeriodOut.model_validate(pay_period)


# ── GET /periods ────────────────────────────────────────────────────

@router.get("/periods", response_model=PayPeriodListResponse)
async def list_periods(db: AsyncSession = Depends(get_db)):
    periods = await PayPeriodManager.list_periods(db)
    return PayPeriodListResponse(
        data=[PayPeriodOut.model_validate(p) for p in periods],
        total=len(periods),
    )


# ── GET /periods/{period} ───────────────────────────────────────────

@router.get("/periods/{period}", response_model=PayPeriodDetail)
async def get_period(
    period: str,
    manager: PayPeriodManager = Depends(get_pay_period_manager),
    db: AsyncSession = Depends(get_db),
):
    stats = await manager.get_period(db, period)
    base = PayPeriodOut.model_validate(stats.pay_period).model_dump()
    return PayPeriodDetail(
        **base,
        payment_count=stats.payment_count,
        total_net=stats.total_net,
        email_details=stats.pay_period.email_details,
    )


# ── GET /stats ──────────────────────────────────────────────────────

@router.get("/stats", response_model=PayrollStatsResponse)
async def payroll_stats(db: AsyncSession = Depends(get_db)):
    """Period counts per status, paid totals and salary config coverage."""
    stats = await PayPeriodManager.stats(db)
    return PayrollStatsResponse.model_validate(stats)


# ── POST /periods/{period}/calculate ────────────────────────────────

@router.post("/periods/{period}/calculate", response_model=CalculationResponse)
async def calculate_period(
    period: str,
    manager: PayPeriodManager = Depends(get_pay_period_manager),
    db: AsyncSession = Depends(get_db),
):
    """(Re)compute salaries for every active, configured employee."""
    result = await manager.calculate(db, period)
    return CalculationResponse(
        period=period,
        status="calculated",
        employee_count=result.employee_count,
        summary=CalculationSummary(
            total_gross=result.total_gross,
            total_deductions=result.total_deductions,
            total_net=result.total_net,
            total_bonus=result.total_bonus,
            total_overtime=result.total_overtime,
            average_net=result.average_net,
        ),
        results=[EmployeeResultOut.model_validate(s) for s in result.successes],
        errors=[EmployeeErrorOut.model_validate(e) for e in result.errors],
    )


# ── POST /periods/{period}/mark-paid ────────────────────────────────

@router.post("/periods/{period}/mark-paid", response_model=ClosingResponse)
@limiter.limit(close_limit)
async def mark_period_paid(
    request: Request,
    period: str,
    actor_id: Optional[str] = Depends(get_actor_id),
    gateway: EmailGateway = Depends(get_email_gateway),
    manager: PayPeriodManager = Depends(get_pay_period_manager),
    db: AsyncSession = Depends(get_db),
):
    """Close the period: send every payslip notice, then mark it paid."""
    closing = await manager.mark_paid(db, period, gateway, actor_id)
    return ClosingResponse(
        period=closing.period,
        status=closing.status,
        paid_at=closing.paid_at,
        paid_by=closing.paid_by,
        employees_total=closing.employees_total,
        employees_with_email=closing.employees_with_email,
        total_paid=closing.total_paid,
        emails=EmailStats(
            sent=len(closing.report.sent),
            failed=len(closing.report.failed),
            success_rate=closing.success_rate,
        ),
        failed=[DeliveryOut.model_validate(o) for o in closing.report.failed],
    )


# ── POST /periods/{period}/resend-failed ────────────────────────────

@router.post("/periods/{period}/resend-failed", response_model=ResendResponse)
@limiter.limit(close_limit)
async def resend_failed(
    request: Request,
    period: str,
    gateway: EmailGateway = Depends(get_email_gateway),
    manager: PayPeriodManager = Depends(get_pay_period_manager),
    db: AsyncSession = Depends(get_db),
):
    """Retry payslip notices that were never delivered for a paid period."""
    result = await manager.resend_failed(db, period, gateway)
    return ResendResponse(
        period=result.period,
        resent=len(result.resent),
        failed=len(result.failed),
        failures=[DeliveryOut.model_validate(o) for o in result.failed],
    )


# ── POST /periods/{period}/reconcile ────────────────────────────────

@router.post("/periods/{period}/reconcile", response_model=ReconcileResponse)
async def reconcile_period(
    period: str,
    manager: PayPeriodManager = Depends(get_pay_period_manager),
    db: AsyncSession = Depends(get_db),
):
    """Release a period stuck in ``processing`` after a crash."""
    released = await manager.reconcile_stuck(db, period)
    return ReconcileResponse(period=period, released=released)


# ── GET /periods/{period}/payments ──────────────────────────────────

@router.get("/periods/{period}/payments", response_model=SalaryPaymentListResponse)
async def list_period_payments(
    period: str,
    manager: PayPeriodManager = Depends(get_pay_period_manager),
    db: AsyncSession = Depends(get_db),
):
    payments = await manager.list_period_payments(db, period)
    return SalaryPaymentListResponse(
        data=[SalaryPaymentOut.model_validate(p) for p in payments],
        total=len(payments),
    )


# ═════════════════════════════════════════════════════════════════════
# Salary payments
# ═════════════════════════════════════════════════════════════════════


# ── GET /employees/{employee_id}/payments ───────────────────────────

@router.get("/employees/{employee_id}/payments", response_model=SalaryPaymentListResponse)
async def employee_history(
    employee_id: str,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=120),
    db: AsyncSession = Depends(get_db),
):
    """Most recent payments of one employee, newest period first."""
    payments = await PayPeriodManager.employee_history(db, employee_id, limit)
    return SalaryPaymentListResponse(
        data=[SalaryPaymentOut.model_validate(p) for p in payments],
        total=len(payments),
    )


# ── GET /payments/{employee_id}/{period} ────────────────────────────

@router.get("/payments/{employee_id}/{period}", response_model=SalaryPaymentOut)
async def get_payment(
    employee_id: str,
    period: str,
    db: AsyncSession = Depends(get_db),
):
    payment = await PayPeriodManager.get_payment(db, employee_id, period)
    return SalaryPaymentOut.model_validate(payment)


# ── POST /payments/{payment_id}/approve ─────────────────────────────

@router.post("/payments/{payment_id}/approve", response_model=SalaryPaymentOut)
async def approve_payment(
    payment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    payment = await PayPeriodManager.approve_payment(db, payment_id)
    return SalaryPaymentOut.model_validate(payment)


# ── POST /payments/{employee_id}/{period}/send-payslip ──────────────

@router.post("/payments/{employee_id}/{period}/send-payslip", response_model=DeliveryOut)
async def send_payslip(
    employee_id: str,
    period: str,
    gateway: EmailGateway = Depends(get_email_gateway),
    manager: PayPeriodManager = Depends(get_pay_period_manager),
    db: AsyncSession = Depends(get_db),
):
    """Send one employee's payslip notice again."""
    outcome = await manager.send_payslip(db, employee_id, period, gateway)
    return DeliveryOut.model_validate(outcome)
