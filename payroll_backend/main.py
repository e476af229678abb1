"""Payroll — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from payroll_backend.common.exceptions import register_exception_handlers
from payroll_backend.common.rate_limit import limiter
from payroll_backend.config import settings
from payroll_backend.database import engine
from payroll_backend.notifications.gateway import build_email_gateway
from payroll_backend.payroll.router import router as payroll_router
from payroll_backend.payroll.service import PayPeriodManager
from payroll_backend.salary_config.router import router as salary_config_router
from payroll_backend.salary_config.service import SalaryConfigStore

logger = logging.getLogger("payroll_backend")


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info(
        "Payroll service starting (environment=%s, email=%s)",
        settings.ENVIRONMENT,
        "simulated" if app.state.email_gateway.simulated else "smtp",
    )
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Payroll",
        description="Salary computation and pay period closing",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Long-lived collaborators shared by every request
    config_store = SalaryConfigStore()
    app.state.config_store = config_store
    app.state.pay_period_manager = PayPeriodManager(config_store)
    app.state.email_gateway = build_email_gateway(settings)

    # Health check
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
            "email_mode": "simulated" if app.state.email_gateway.simulated else "smtp",
        }

    # Register routers
    app.include_router(payroll_router, prefix="/api/v1/payroll", tags=["payroll"])
    app.include_router(salary_config_router, prefix="/api/v1/payroll", tags=["salary-config"])

    return app


app = create_app()
