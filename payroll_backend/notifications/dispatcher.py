"""Notification dispatcher — payslip notices for a period, bounded and failure-isolated.

  - Recipients without an address fail immediately, no network call
  - Sends run concurrently, at most ``batch_size`` in flight at once
  - Each send has its own timeout; a timeout or error fails that recipient only,
    but a timed-out send keeps its slot until the transport gives it back
  - Payment rows are updated from the event loop once all sends are done
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Optional, Sequence

from payroll_backend.common.constants import NO_ADDRESS_REASON, EmailStatus
from payroll_backend.common.money import to_decimal, truncate_error
from payroll_backend.config import settings
from payroll_backend.directory.service import DirectoryEntry
from payroll_backend.notifications.gateway import EmailGateway, OutgoingEmail
from payroll_backend.notifications.templates import render_payslip_email
from payroll_backend.payroll.models import SalaryPayment

logger = logging.getLogger(__name__)

Recipient = tuple[SalaryPayment, Optional[DirectoryEntry]]


@dataclass
class DeliveryOutcome:
    employee_id: str
    email: Optional[str]
    name: Optional[str]
    net_salary: Decimal
    message_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.reason is None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "employee_id": self.employee_id,
            "email": self.email,
            "name": self.name,
            "net_salary": str(self.net_salary),
        }
        if self.delivered:
            data["message_id"] = self.message_id
        else:
            data["reason"] = self.reason
        return data


@dataclass
class DispatchReport:
    sent: list[DeliveryOutcome] = field(default_factory=list)
    failed: list[DeliveryOutcome] = field(default_factory=list)

    @property
    def total_attempted(self) -> int:
        return len(self.sent) + len(self.failed)

    def details(self, sample_size: int) -> dict[str, Any]:
        """Bounded summary stored on the pay period."""
        return {
            "sent": [o.as_dict() for o in self.sent[:sample_size]],
            "failed": [o.as_dict() for o in self.failed[:sample_size]],
            "sent_at": datetime.now(timezone.utc).isoformat(),
            "total_attempted": self.total_attempted,
        }


class NotificationDispatcher:
    """Fans payslip notices out through an ``EmailGateway``."""

    def __init__(
        self,
        gateway: EmailGateway,
        *,
        batch_size: Optional[int] = None,
        send_timeout: Optional[float] = None,
        error_limit: Optional[int] = None,
    ) -> None:
        self.gateway = gateway
        self.batch_size = max(1, batch_size or settings.EMAIL_BATCH_SIZE)
        self.send_timeout = send_timeout or settings.SMTP_SEND_TIMEOUT
        self.error_limit = error_limit or settings.EMAIL_ERROR_MAX_LENGTH

    async def _deliver(
        self,
        semaphore: asyncio.Semaphore,
        outcome: DeliveryOutcome,
        message: OutgoingEmail,
        in_flight: set[asyncio.Task],
    ) -> DeliveryOutcome:
        # Never raises: every failure becomes this recipient's outcome.
        # The permit is released when the send task is done, timed out or not.
        await semaphore.acquire()
        send = asyncio.ensure_future(self.gateway.send(message))
        in_flight.add(send)
        send.add_done_callback(lambda _: semaphore.release())

        done, _ = await asyncio.wait({send}, timeout=self.send_timeout)
        if send not in done:
            outcome.reason = f"send timed out after {self.send_timeout:g}s"
            send.cancel()
        else:
            try:
                outcome.message_id = send.result()
            except Exception as exc:
                outcome.reason = truncate_error(str(exc) or exc.__class__.__name__, self.error_limit)

        if outcome.delivered:
            logger.info("Payslip sent to %s (%s)", outcome.email, outcome.message_id)
        else:
            logger.warning("Payslip to %s failed: %s", outcome.email, outcome.reason)
        return outcome

    def _record(self, payment: SalaryPayment, outcome: DeliveryOutcome, now: datetime) -> None:
        payment.email_attempts = (payment.email_attempts or 0) + 1
        if outcome.delivered:
            payment.email_status = (
                EmailStatus.simulated.value if self.gateway.simulated else EmailStatus.sent.value
            )
            payment.message_id = outcome.message_id
            payment.email_sent_at = now
            payment.last_error = None
        else:
            payment.email_status = EmailStatus.failed.value
            payment.last_error = outcome.reason

    async def dispatch(
        self,
        recipients: Sequence[Recipient],
        label: str,
        *,
        paid_on: Optional[datetime] = None,
    ) -> DispatchReport:
        """Send one notice per recipient and record each outcome on its payment row."""
        report = DispatchReport()
        semaphore = asyncio.Semaphore(self.batch_size)
        in_flight: set[asyncio.Task] = set()
        pending: list[tuple[SalaryPayment, Awaitable[DeliveryOutcome]]] = []
        immediate: list[tuple[SalaryPayment, DeliveryOutcome]] = []

        for payment, entry in recipients:
            outcome = DeliveryOutcome(
                employee_id=payment.employee_id,
                email=entry.email if entry else None,
                name=entry.name if entry else None,
                net_salary=to_decimal(payment.net_salary),
            )
            if entry is None or not entry.email:
                outcome.reason = NO_ADDRESS_REASON
                immediate.append((payment, outcome))
                continue

            message = render_payslip_email(
                payment, entry, label, settings.CURRENCY_CODE,
                settings.CURRENCY_PRECISION, paid_on=paid_on,
            )
            pending.append((payment, self._deliver(semaphore, outcome, message, in_flight)))

        logger.info(
            "Dispatching %d payslip(s) for %s, %d without address, %d in flight max",
            len(pending), label, len(immediate), self.batch_size,
        )
        delivered = await asyncio.gather(*(job for _, job in pending))
        # Timed-out sends may still hold a connection; wait for them to return.
        await asyncio.gather(*in_flight, return_exceptions=True)

        now = datetime.now(timezone.utc)
        results = immediate + [(payment, outcome) for (payment, _), outcome in zip(pending, delivered)]
        for payment, outcome in results:
            self._record(payment, outcome, now)
            (report.sent if outcome.delivered else report.failed).append(outcome)

        logger.info(
            "Dispatch for %s finished: %d sent, %d failed",
            label, len(report.sent), len(report.failed),
        )
        return report
