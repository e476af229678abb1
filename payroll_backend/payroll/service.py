"""Pay period service layer — lifecycle state machine and closing pipeline.

Lifecycle:
  draft → calculated → processing → paid, with processing → calculated as
  the rollback edge. Every guarded transition is a conditional UPDATE on the
  status column (compare-and-swap); the ``processing`` flag is committed
  before any email leaves, so a concurrent close sees it and backs off.

Known limitation: a crash between the ``processing`` commit and the final
write leaves the period in ``processing``; ``reconcile_stuck`` releases it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_backend.common.constants import (
    DEFAULT_HISTORY_LIMIT,
    DELIVERED_EMAIL_STATUSES,
    EMAIL_DETAILS_SAMPLE_SIZE,
    RECALCULABLE_STATUSES,
    RESENDABLE_EMAIL_STATUSES,
    EmailStatus,
    PaymentStatus,
    PayPeriodStatus,
)
from payroll_backend.common.exceptions import (
    AlreadyPaidError,
    CloseInProgressError,
    ConflictError,
    DuplicateException,
    InvalidStatusError,
    NotFoundException,
    ValidationException,
)
from payroll_backend.common.money import ZERO, round_money, to_decimal
from payroll_backend.common.periods import (
    parse_period_key,
    period_bounds,
    period_label,
    validate_period_dates,
)
from payroll_backend.directory.models import Employee
from payroll_backend.directory.service import EmployeeDirectory
from payroll_backend.notifications.dispatcher import (
    DeliveryOutcome,
    DispatchReport,
    NotificationDispatcher,
)
from payroll_backend.notifications.gateway import EmailGateway
from payroll_backend.payroll.calculator import CalculationResult, CompensationCalculator
from payroll_backend.payroll.models import PayPeriod, SalaryPayment
from payroll_backend.salary_config.models import SalaryConfig
from payroll_backend.salary_config.service import SalaryConfigStore

logger = logging.getLogger(__name__)


# ── Results ─────────────────────────────────────────────────────────


@dataclass
class ClosingResult:
    period: str
    status: str
    paid_at: datetime
    paid_by: Optional[str]
    employees_total: int
    employees_with_email: int
    total_paid: Decimal
    report: DispatchReport

    @property
    def success_rate(self) -> float:
        if not self.employees_with_email:
            return 0.0
        return round(len(self.report.sent) / self.employees_with_email * 100, 1)


@dataclass
class ResendResult:
    period: str
    resent: list[DeliveryOutcome] = field(default_factory=list)
    failed: list[DeliveryOutcome] = field(default_factory=list)


@dataclass
class PeriodStats:
    pay_period: PayPeriod
    payment_count: int
    total_net: Decimal


@dataclass
class PayrollStats:
    """Headline figures across every pay period and payment."""

    periods_by_status: dict[str, int]
    total_amount: Decimal
    total_paid_amount: Decimal
    payments_by_status: dict[str, int]
    paid_net_total: Decimal
    average_paid_net: Decimal
    active_employees: int
    configured_employees: int
    latest_period: Optional[PayPeriod] = None

    @property
    def total_periods(self) -> int:
        return sum(self.periods_by_status.values())

    @property
    def config_rate(self) -> int:
        """Share of active employees with an active salary config, in percent."""
        if not self.active_employees:
            return 0
        return round(self.configured_employees / self.active_employees * 100)


# ═════════════════════════════════════════════════════════════════════
# PayPeriodManager
# ═════════════════════════════════════════════════════════════════════


class PayPeriodManager:
    """Owns the pay period state machine; delegates to the calculator and dispatcher."""

    def __init__(
        self,
        config_store: SalaryConfigStore,
        calculator: Optional[CompensationCalculator] = None,
        dispatcher_factory: Callable[[EmailGateway], NotificationDispatcher] = NotificationDispatcher,
    ) -> None:
        self.config_store = config_store
        self.calculator = calculator or CompensationCalculator(config_store)
        self.dispatcher_factory = dispatcher_factory

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _get_period(db: AsyncSession, period: str) -> PayPeriod:
        parse_period_key(period)
        result = await db.execute(select(PayPeriod).where(PayPeriod.period == period))
        pay_period = result.scalar_one_or_none()
        if pay_period is None:
            raise NotFoundException("Pay period", period)
        return pay_period

    @staticmethod
    async def _transition(
        db: AsyncSession,
        period: str,
        allowed_from: Iterable[PayPeriodStatus],
        to: PayPeriodStatus,
        **values,
    ) -> bool:
        """Compare-and-swap on the status column; True when this call won."""
        result = await db.execute(
            update(PayPeriod)
            .where(
                PayPeriod.period == period,
                PayPeriod.status.in_([s.value for s in allowed_from]),
            )
            .values(status=to.value, updated_at=datetime.now(timezone.utc), **values)
        )
        won = result.rowcount == 1
        if won:
            logger.info("Pay period %s → %s", period, to.value)
        return won

    @staticmethod
    def _require_closable(pay_period: PayPeriod) -> None:
        status = pay_period.status
        if status == PayPeriodStatus.paid.value:
            raise AlreadyPaidError(pay_period.period)
        if status == PayPeriodStatus.processing.value:
            raise CloseInProgressError(pay_period.period)
        if status != PayPeriodStatus.calculated.value:
            raise InvalidStatusError(pay_period.period, status, PayPeriodStatus.calculated.value)

    @staticmethod
    def _require_recalculable(pay_period: PayPeriod) -> None:
        if pay_period.status == PayPeriodStatus.paid.value:
            raise AlreadyPaidError(pay_period.period)
        if pay_period.status == PayPeriodStatus.processing.value:
            raise CloseInProgressError(pay_period.period)

    @staticmethod
    async def _period_payments(
        db: AsyncSession,
        period: str,
        email_statuses: Optional[Iterable[EmailStatus]] = None,
    ) -> list[SalaryPayment]:
        stmt = select(SalaryPayment).where(SalaryPayment.period == period)
        if email_statuses is not None:
            stmt = stmt.where(SalaryPayment.email_status.in_([s.value for s in email_statuses]))
        result = await db.execute(stmt.order_by(SalaryPayment.employee_id))
        return list(result.scalars().all())

    @staticmethod
    async def _refresh_email_counters(db: AsyncSession, pay_period: PayPeriod) -> None:
        """Recount ``emails_sent``/``emails_failed`` from the period's payment rows."""
        result = await db.execute(
            select(SalaryPayment.email_status, func.count())
            .where(SalaryPayment.period == pay_period.period)
            .group_by(SalaryPayment.email_status)
        )
        counts = dict(result.all())
        pay_period.emails_sent = sum(counts.get(s.value, 0) for s in DELIVERED_EMAIL_STATUSES)
        pay_period.emails_failed = counts.get(EmailStatus.failed.value, 0)

    async def _rollback_close(self, db: AsyncSession, period: str) -> None:
        await db.rollback()
        released = await self._transition(
            db, period, (PayPeriodStatus.processing,), PayPeriodStatus.calculated,
        )
        await db.commit()
        logger.error(
            "Closing %s aborted; status %s",
            period, "rolled back to calculated" if released else "was no longer processing",
        )

    async def _dispatch(
        self,
        db: AsyncSession,
        gateway: EmailGateway,
        payments: list[SalaryPayment],
        pay_period: PayPeriod,
        paid_on: Optional[datetime] = None,
    ) -> DispatchReport:
        entries = await EmployeeDirectory.get_entries(db, (p.employee_id for p in payments))
        dispatcher = self.dispatcher_factory(gateway)
        return await dispatcher.dispatch(
            [(p, entries.get(p.employee_id)) for p in payments],
            pay_period.label or period_label(pay_period.period),
            paid_on=paid_on,
        )

    # ── Periods ─────────────────────────────────────────────────────

    @staticmethod
    async def create_period(
        db: AsyncSession,
        period: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        label: Optional[str] = None,
    ) -> PayPeriod:
        """Insert a new period in ``draft``."""
        default_start, default_end = period_bounds(period)
        start_date = start_date or default_start
        end_date = end_date or default_end
        validate_period_dates(start_date, end_date)

        existing = await db.execute(select(PayPeriod.id).where(PayPeriod.period == period))
        if existing.first() is not None:
            raise DuplicateException("period", period)

        pay_period = PayPeriod(
            id=uuid.uuid4(),
            period=period,
            label=label or period_label(period),
            start_date=start_date,
            end_date=end_date,
            status=PayPeriodStatus.draft.value,
            total_employees=0,
            total_amount=ZERO,
            emails_sent=0,
            emails_failed=0,
        )
        db.add(pay_period)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise DuplicateException("period", period) from exc

        logger.info("Pay period %s created (%s → %s)", period, start_date, end_date)
        return pay_period

    @staticmethod
    async def list_periods(db: AsyncSession) -> list[PayPeriod]:
        result = await db.execute(select(PayPeriod).order_by(PayPeriod.start_date.desc()))
        return list(result.scalars().all())

    async def get_period(self, db: AsyncSession, period: str) -> PeriodStats:
        pay_period = await self._get_period(db, period)
        result = await db.execute(
            select(func.count(SalaryPayment.id), func.sum(SalaryPayment.net_salary))
            .where(SalaryPayment.period == period)
        )
        count, total = result.one()
        return PeriodStats(pay_period=pay_period, payment_count=count or 0, total_net=to_decimal(total))

    async def reconcile_stuck(self, db: AsyncSession, period: str) -> bool:
        """Operator action: release a period left in ``processing`` by a crash."""
        await self._get_period(db, period)
        released = await self._transition(
            db, period, (PayPeriodStatus.processing,), PayPeriodStatus.calculated,
        )
        if released:
            logger.warning("Pay period %s released from processing by reconciliation", period)
        return released

    @staticmethod
    async def stats(db: AsyncSession) -> PayrollStats:
        """Period, payment and config coverage figures for the payroll overview."""
        period_rows = (await db.execute(
            select(PayPeriod.status, func.count(PayPeriod.id), func.sum(PayPeriod.total_amount))
            .group_by(PayPeriod.status)
        )).all()
        periods_by_status = {s.value: 0 for s in PayPeriodStatus}
        total_amount = total_paid_amount = ZERO
        for status, count, amount in period_rows:
            periods_by_status[status] = count
            total_amount += to_decimal(amount)
            if status == PayPeriodStatus.paid.value:
                total_paid_amount = to_decimal(amount)

        payment_rows = (await db.execute(
            select(
                SalaryPayment.payment_status,
                func.count(SalaryPayment.id),
                func.sum(SalaryPayment.net_salary),
            ).group_by(SalaryPayment.payment_status)
        )).all()
        payments_by_status = {s.value: 0 for s in PaymentStatus}
        paid_net_total = ZERO
        for status, count, amount in payment_rows:
            payments_by_status[status] = count
            if status == PaymentStatus.paid.value:
                paid_net_total = to_decimal(amount)
        paid_count = payments_by_status[PaymentStatus.paid.value]

        active_employees = (await db.execute(
            select(func.count(Employee.employee_id)).where(Employee.is_active.is_(True))
        )).scalar_one()
        configured_employees = (await db.execute(
            select(func.count(func.distinct(SalaryConfig.employee_id)))
            .join(Employee, Employee.employee_id == SalaryConfig.employee_id)
            .where(SalaryConfig.is_active.is_(True), Employee.is_active.is_(True))
        )).scalar_one()

        latest = (await db.execute(
            select(PayPeriod).order_by(PayPeriod.start_date.desc()).limit(1)
        )).scalar_one_or_none()

        return PayrollStats(
            periods_by_status=periods_by_status,
            total_amount=total_amount,
            total_paid_amount=total_paid_amount,
            payments_by_status=payments_by_status,
            paid_net_total=paid_net_total,
            average_paid_net=round_money(paid_net_total / paid_count) if paid_count else ZERO,
            active_employees=active_employees,
            configured_employees=configured_employees,
            latest_period=latest,
        )

    # ── Calculation ─────────────────────────────────────────────────

    async def calculate(self, db: AsyncSession, period: str) -> CalculationResult:
        """(Re)compute every active employee; allowed from draft or calculated."""
        pay_period = await self._get_period(db, period)
        self._require_recalculable(pay_period)

        policies = await self.config_store.list_active(db)
        if not policies:
            raise ValidationException(
                {"employees": ["No active employee has an active salary configuration."]},
                detail=f"Nothing to calculate for {period}.",
            )

        result = await self.calculator.calculate_period(db, pay_period, policies)

        won = await self._transition(
            db, period, RECALCULABLE_STATUSES, PayPeriodStatus.calculated,
            total_employees=result.employee_count,
            total_amount=result.total_net,
        )
        if not won:
            await db.refresh(pay_period)
            self._require_recalculable(pay_period)
            raise ConflictError(f"Pay period {period} changed during calculation.")
        return result

    # ── Closing ─────────────────────────────────────────────────────

    async def mark_paid(
        self,
        db: AsyncSession,
        period: str,
        gateway: EmailGateway,
        actor_id: Optional[str] = None,
    ) -> ClosingResult:
        """Close a calculated period: notify every employee, then record it as paid.

        Per-recipient failures are part of a successful close. A transport
        failure (or any unexpected error) puts the period back to
        ``calculated`` and is re-raised.
        """
        pay_period = await self._get_period(db, period)
        self._require_closable(pay_period)

        payments = await self._period_payments(db, period)
        if not payments:
            raise ValidationException(
                {"payments": ["No salary payment has been calculated for this period."]},
                detail=f"Pay period {period} has no salary payments.",
            )

        if not await self._transition(
            db, period, (PayPeriodStatus.calculated,), PayPeriodStatus.processing,
        ):
            await db.refresh(pay_period)
            self._require_closable(pay_period)
            raise CloseInProgressError(period)
        await db.commit()

        paid_at = datetime.now(timezone.utc)
        try:
            await gateway.verify()
            report = await self._dispatch(db, gateway, payments, pay_period, paid_on=paid_at)

            for payment in payments:
                payment.payment_status = PaymentStatus.paid.value
                payment.payment_date = paid_at
            await db.flush()

            if not await self._transition(
                db, period, (PayPeriodStatus.processing,), PayPeriodStatus.paid,
                paid_at=paid_at,
                paid_by=actor_id,
                emails_sent=len(report.sent),
                emails_failed=len(report.failed),
                email_details=report.details(EMAIL_DETAILS_SAMPLE_SIZE),
            ):
                # Released by reconcile_stuck while notices were going out.
                raise ConflictError(f"Pay period {period} left processing during the close.")
            await db.commit()
        except Exception:
            try:
                await self._rollback_close(db, period)
            except Exception:
                logger.exception(
                    "Could not release pay period %s; it stays processing until reconcile_stuck",
                    period,
                )
            raise

        with_email = len(payments) - sum(
            1 for o in report.failed if o.email is None
        )
        logger.info(
            "Pay period %s paid by %s: %d sent, %d failed",
            period, actor_id or "system", len(report.sent), len(report.failed),
        )
        return ClosingResult(
            period=period,
            status=PayPeriodStatus.paid.value,
            paid_at=paid_at,
            paid_by=actor_id,
            employees_total=len(payments),
            employees_with_email=with_email,
            total_paid=sum((to_decimal(p.net_salary) for p in payments), ZERO),
            report=report,
        )

    async def resend_failed(
        self,
        db: AsyncSession,
        period: str,
        gateway: EmailGateway,
    ) -> ResendResult:
        """Re-notify only unsent/failed payments of a paid period."""
        pay_period = await self._get_period(db, period)
        if pay_period.status != PayPeriodStatus.paid.value:
            raise InvalidStatusError(period, pay_period.status, PayPeriodStatus.paid.value)

        payments = await self._period_payments(db, period, RESENDABLE_EMAIL_STATUSES)
        if not payments:
            return ResendResult(period=period)

        await gateway.verify()
        report = await self._dispatch(db, gateway, payments, pay_period)
        await db.flush()

        await self._refresh_email_counters(db, pay_period)
        await db.flush()

        logger.info(
            "Resend for %s: %d resent, %d still failing",
            period, len(report.sent), len(report.failed),
        )
        return ResendResult(period=period, resent=report.sent, failed=report.failed)

    # ── Payments ────────────────────────────────────────────────────

    @staticmethod
    async def get_payment(db: AsyncSession, employee_id: str, period: str) -> SalaryPayment:
        parse_period_key(period)
        result = await db.execute(
            select(SalaryPayment).where(
                SalaryPayment.employee_id == employee_id,
                SalaryPayment.period == period,
            )
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundException("Salary payment", f"{employee_id}/{period}")
        return payment

    async def list_period_payments(self, db: AsyncSession, period: str) -> list[SalaryPayment]:
        await self._get_period(db, period)
        return await self._period_payments(db, period)

    @staticmethod
    async def employee_history(
        db: AsyncSession,
        employee_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[SalaryPayment]:
        result = await db.execute(
            select(SalaryPayment)
            .where(SalaryPayment.employee_id == employee_id)
            .order_by(SalaryPayment.period.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def approve_payment(db: AsyncSession, payment_id: uuid.UUID) -> SalaryPayment:
        payment = await db.get(SalaryPayment, payment_id)
        if payment is None:
            raise NotFoundException("Salary payment", payment_id)
        if payment.payment_status == PaymentStatus.paid.value:
            raise ConflictError(f"Salary payment {payment_id} is already paid.", error_type="already-paid")
        payment.payment_status = PaymentStatus.approved.value
        await db.flush()
        return payment

    async def send_payslip(
        self,
        db: AsyncSession,
        employee_id: str,
        period: str,
        gateway: EmailGateway,
    ) -> DeliveryOutcome:
        """Manually (re)send one employee's payslip for a paid payment."""
        payment = await self.get_payment(db, employee_id, period)
        if payment.payment_status != PaymentStatus.paid.value:
            raise ValidationException(
                {"payment_status": ["The payment must be paid before its payslip is sent."]},
            )
        entry = await EmployeeDirectory.get_entry(db, employee_id)
        if not entry.email:
            raise ValidationException({"email": ["The employee has no email address."]})

        pay_period = await self._get_period(db, period)
        report = await self._dispatch(db, gateway, [payment], pay_period)
        await db.flush()

        await self._refresh_email_counters(db, pay_period)
        await db.flush()

        return (report.sent or report.failed)[0]
