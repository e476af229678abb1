"""Payroll exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://payroll.local/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — period, payment, employee or config not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ValidationException(AppException):
    """422 — business-logic validation failures (bad period key, bad dates...)."""

    def __init__(self, errors: dict[str, list[str]], detail: Optional[str] = None) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail=detail or "One or more fields failed validation.",
            errors=errors,
        )


class ConflictError(AppException):
    """409 — the request conflicts with the current state of a resource."""

    def __init__(
        self,
        detail: str,
        *,
        error_type: str = "conflict",
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            status_code=409,
            error_type=error_type,
            title="Conflict",
            detail=detail,
            errors=errors,
        )


class DuplicateException(ConflictError):
    """409 — unique-constraint / duplicate key."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            f"An entry with {field}='{value}' already exists.",
            error_type="duplicate",
            errors={field: [f"'{value}' is already in use."]},
        )


class AlreadyPaidError(ConflictError):
    """409 — the pay period was already closed."""

    def __init__(self, period: str) -> None:
        super().__init__(
            f"Pay period {period} has already been paid.",
            error_type="already-paid",
        )
        self.period = period


class CloseInProgressError(ConflictError):
    """409 — another close of the same period holds the processing flag."""

    def __init__(self, period: str) -> None:
        super().__init__(
            f"Pay period {period} is being processed by another operation.",
            error_type="close-in-progress",
        )
        self.period = period


class InvalidStatusError(AppException):
    """422 — the period is not in a status that allows the operation."""

    def __init__(self, period: str, current: str, required: str) -> None:
        super().__init__(
            status_code=422,
            error_type="invalid-status",
            title="Invalid Status",
            detail=(
                f"Pay period {period} must be '{required}' for this operation "
                f"(current status: '{current}')."
            ),
            errors={"status": [current]},
        )
        self.current = current
        self.required = required


class TransportError(AppException):
    """503 — the mail transport cannot be established; fatal to a close."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=503,
            error_type="mail-transport-unavailable",
            title="Mail Transport Unavailable",
            detail=detail,
        )


class ComputationError(Exception):
    """A single employee's pay inputs could not be interpreted.

    Never reaches the HTTP layer: the calculator recovers per employee.
    """


class DeliveryError(Exception):
    """One recipient's message could not be delivered.

    Recorded on the payment row by the dispatcher, never propagated.
    """


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
