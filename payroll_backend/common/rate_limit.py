"""Rate limiting configuration using slowapi.

The module-level Limiter is wired into the app in main.py; the closing
endpoints (mark-paid, resend) carry a tighter per-route limit from settings.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from payroll_backend.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)

close_limit = settings.RATE_LIMIT_CLOSE
