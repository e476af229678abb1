"""Payslip notice rendering (subject, HTML and plain-text bodies)."""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape
from typing import Optional

from payroll_backend.common.money import format_money, to_decimal
from payroll_backend.directory.service import DirectoryEntry
from payroll_backend.notifications.gateway import OutgoingEmail
from payroll_backend.payroll.models import SalaryPayment

_HTML = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #ddd; border-radius: 5px;">
  <h2 style="color: #4CAF50; text-align: center;">Your payslip</h2>
  <p>Hello <strong>{name}</strong>,</p>
  <p>Your salary for <strong>{label}</strong> has been paid.</p>
  <div style="background-color: #f9f9f9; padding: 15px; border-radius: 5px; margin: 20px 0;">
    <h3 style="color: #333;">Payment summary</h3>
    <p><strong>Gross salary:</strong> {gross}</p>
    <p><strong>Total deductions:</strong> {deductions}</p>
    <p><strong>Net salary:</strong> <span style="font-size: 18px; font-weight: bold; color: #4CAF50;">{net}</span></p>
    <p><strong>Department:</strong> {department}</p>
    <p><strong>Payment date:</strong> {paid_on}</p>
  </div>
  <p>The full breakdown is available in your personal space.</p>
  <hr style="margin: 30px 0;">
  <p style="color: #666; font-size: 12px; text-align: center;">
    This message was sent automatically by the payroll system. Please do not reply.
  </p>
</div>
"""

_TEXT = """\
Hello {name},

Your salary for {label} has been paid.

Gross salary: {gross}
Total deductions: {deductions}
Net salary: {net}
Department: {department}
Payment date: {paid_on}

The full breakdown is available in your personal space.

The payroll team
"""


def render_payslip_email(
    payment: SalaryPayment,
    entry: DirectoryEntry,
    label: str,
    currency: str,
    places: int = 2,
    paid_on: Optional[datetime] = None,
) -> OutgoingEmail:
    values = {
        "name": entry.name,
        "label": label,
        "gross": format_money(to_decimal(payment.gross_salary), currency, places),
        "deductions": format_money(to_decimal(payment.total_deductions), currency, places),
        "net": format_money(to_decimal(payment.net_salary), currency, places),
        "department": entry.department or "Not specified",
        "paid_on": f"{(paid_on or datetime.now(timezone.utc)):%Y-%m-%d}",
    }
    return OutgoingEmail(
        to=entry.email or "",
        subject=f"Your payslip - {label}",
        html=_HTML.format(**{k: escape(v) for k, v in values.items()}),
        text=_TEXT.format(**values),
    )
