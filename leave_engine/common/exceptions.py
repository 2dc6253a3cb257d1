"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://leave-engine.local/errors"


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
        extensions: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        self.extensions = extensions
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — unique-constraint / duplicate."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
            detail=f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' is already in use."]},
        )


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


class InvalidAmount(AppException):
    """422 — non-positive, non-finite or out-of-policy amount."""

    def __init__(self, detail: str, *, field: str = "amount") -> None:
        super().__init__(
            status_code=422,
            error_type="invalid-amount",
            title="Invalid Amount",
            detail=detail,
            errors={field: [detail]},
        )


class InsufficientBalance(AppException):
    """422 — the ledger cannot cover the requested amount."""

    def __init__(
        self,
        category: str,
        requested: float,
        available: float,
        unit: str,
    ) -> None:
        self.category = category
        self.requested = requested
        self.available = available
        self.unit = unit
        detail = (
            f"You asked for {requested:g} {unit} of {category} leave "
            f"but only have {available:g} available."
        )
        super().__init__(
            status_code=422,
            error_type="insufficient-balance",
            title="Insufficient Balance",
            detail=detail,
            errors={"amount": [detail]},
            extensions={
                "category": category,
                "requested": requested,
                "available": available,
                "unit": unit,
            },
        )


class InvalidState(AppException):
    """409 — illegal lifecycle transition."""

    def __init__(self, entity_type: str, entity_id: Any, status: str) -> None:
        super().__init__(
            status_code=409,
            error_type="invalid-state",
            title="Invalid State",
            detail=(
                f"{entity_type} '{entity_id}' is already {status} "
                "and can no longer change state."
            ),
            extensions={"status": status},
        )


class LedgerConflict(AppException):
    """409 — concurrent ledger writes kept winning the race."""

    def __init__(self, employee_id: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="ledger-conflict",
            title="Ledger Conflict",
            detail=(
                f"The leave ledger for employee '{employee_id}' is being "
                "updated concurrently. Please retry."
            ),
        )


class UpstreamUnavailable(AppException):
    """503 — an external collaborator failed or timed out."""

    def __init__(self, service: str, reason: str = "no response") -> None:
        super().__init__(
            status_code=503,
            error_type="upstream-unavailable",
            title="Upstream Unavailable",
            detail=f"{service} is unavailable: {reason}.",
        )


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
    if exc.extensions:
        body.update(exc.extensions)
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
