"""Enums and constants for the payroll service — matching the PostgreSQL column values."""

from __future__ import annotations

import enum


# ── Pay period lifecycle ────────────────────────────────────────────

class PayPeriodStatus(str, enum.Enum):
    draft = "draft"
    calculated = "calculated"
    processing = "processing"
    paid = "paid"


# Statuses from which a period may be (re)calculated.
RECALCULABLE_STATUSES = (PayPeriodStatus.draft, PayPeriodStatus.calculated)


# ── Salary payments ─────────────────────────────────────────────────

class PaymentStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    paid = "paid"


class EmailStatus(str, enum.Enum):
    unsent = "unsent"
    sent = "sent"
    failed = "failed"
    simulated = "simulated"


# Payments picked up again by resend_failed.
RESENDABLE_EMAIL_STATUSES = (EmailStatus.unsent, EmailStatus.failed)
# Payments counted in a pay period's emails_sent.
DELIVERED_EMAIL_STATUSES = (EmailStatus.sent, EmailStatus.simulated)


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceStatus(str, enum.Enum):
    present = "present"
    late = "late"
    absent = "absent"
    early_leave = "early_leave"
    day_off = "day_off"


# ── Misc constants ──────────────────────────────────────────────────

NO_ADDRESS_REASON = "no address"
EMAIL_DETAILS_SAMPLE_SIZE = 100
DEFAULT_HISTORY_LIMIT = 12
