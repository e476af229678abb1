"""Shared FastAPI dependencies."""

from typing import Optional

from fastapi import Header, Request

from payroll_backend.notifications.gateway import EmailGateway
from payroll_backend.payroll.service import PayPeriodManager
from payroll_backend.salary_config.service import SalaryConfigStore


async def get_actor_id(x_actor_id: Optional[str] = Header(None, max_length=100)) -> Optional[str]:
    """Acting user recorded as ``paid_by``; authentication lives upstream."""
    return x_actor_id or None


def get_config_store(request: Request) -> SalaryConfigStore:
    return request.app.state.config_store


def get_pay_period_manager(request: Request) -> PayPeriodManager:
    return request.app.state.pay_period_manager


def get_email_gateway(request: Request) -> EmailGateway:
    return request.app.state.email_gateway
