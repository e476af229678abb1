"""Common module — shared enums, exceptions and helpers for the payroll service."""

from payroll_backend.common.constants import (
    DEFAULT_HISTORY_LIMIT,
    NO_ADDRESS_REASON,
    RECALCULABLE_STATUSES,
    RESENDABLE_EMAIL_STATUSES,
    AttendanceStatus,
    EmailStatus,
    PaymentStatus,
    PayPeriodStatus,
)
from payroll_backend.common.exceptions import (
    AlreadyPaidError,
    AppException,
    CloseInProgressError,
    ComputationError,
    ConflictError,
    DeliveryError,
    DuplicateException,
    InvalidStatusError,
    NotFoundException,
    TransportError,
    ValidationException,
    register_exception_handlers,
)
from payroll_backend.common.money import round_money, to_decimal, truncate_error
from payroll_backend.common.periods import parse_period_key, period_bounds, period_label

__all__ = [
    # Constants / Enums
    "AttendanceStatus",
    "EmailStatus",
    "PaymentStatus",
    "PayPeriodStatus",
    "DEFAULT_HISTORY_LIMIT",
    "NO_ADDRESS_REASON",
    "RECALCULABLE_STATUSES",
    "RESENDABLE_EMAIL_STATUSES",
    # Exceptions
    "AlreadyPaidError",
    "AppException",
    "CloseInProgressError",
    "ComputationError",
    "ConflictError",
    "DeliveryError",
    "DuplicateException",
    "InvalidStatusError",
    "NotFoundException",
    "TransportError",
    "ValidationException",
    "register_exception_handlers",
    # Money / periods
    "round_money",
    "to_decimal",
    "truncate_error",
    "parse_period_key",
    "period_bounds",
    "period_label",
]
