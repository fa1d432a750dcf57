"""Structured error handling for the egressguard API.

Provides a standard error envelope, custom exceptions, and a FastAPI
exception handler that maps exceptions to HTTP status codes.

Policy violations are expected and map to 4xx with a generic message;
environmental failures map to 5xx and keep their detail in server-side logs.
"""

from __future__ import annotations

import traceback
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

if TYPE_CHECKING:
    from egressguard.security.url_guard import DenialReason

logger = structlog.get_logger(__name__)

GENERIC_INVALID_URL_MESSAGE = "Invalid or disallowed URL"
GENERIC_INVALID_DOMAIN_MESSAGE = "Invalid domain name"


# ---------------------------------------------------------------------------
# Error envelope schema
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    code: str
    message: str
    request_id: str = ""
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------

class EgressGuardError(Exception):
    """Base exception for all egressguard errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(EgressGuardError):
    status_code = 400
    error_code = "VALIDATION_ERROR"


class InvalidURLError(EgressGuardError):
    """A user-supplied URL is malformed or disallowed by the outbound policy.

    ``reason`` is for the caller's own logging and control flow. It is never
    rendered into the response, so the requester cannot tell which layer
    rejected the URL.
    """

    status_code = 400
    error_code = "INVALID_URL"

    def __init__(self, reason: DenialReason, message: str = GENERIC_INVALID_URL_MESSAGE) -> None:
        super().__init__(message)
        self.reason = reason


class InvalidDomainError(EgressGuardError):
    status_code = 400
    error_code = "INVALID_DOMAIN"

    def __init__(self, message: str = GENERIC_INVALID_DOMAIN_MESSAGE) -> None:
        super().__init__(message)


class UnableToTestDomainError(EgressGuardError):
    status_code = 500
    error_code = "UNABLE_TO_TEST_DOMAIN"


class UnableToTestWebsiteError(EgressGuardError):
    status_code = 502
    error_code = "UNABLE_TO_TEST_WEBSITE"


class PolicyConfigurationError(EgressGuardError):
    """Raised at startup when the outbound policy cannot be built."""

    error_code = "POLICY_CONFIGURATION_ERROR"


# ---------------------------------------------------------------------------
# Exception handler registration
# ---------------------------------------------------------------------------

def _build_error_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    details: dict[str, Any] | None = None,
    include_trace: bool = False,
    exc: Exception | None = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "")
    error_details = details
    if include_trace and exc is not None:
        error_details = error_details or {}
        error_details["traceback"] = traceback.format_exception(exc)

    body = ErrorResponse(
        error=ErrorDetail(
            code=error_code,
            message=message,
            request_id=request_id,
            details=error_details,
        )
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(),
        headers={"X-Request-ID": request_id},
    )


def register_exception_handlers(app: FastAPI, *, debug: bool = False) -> None:
    """Register structured exception handlers on a FastAPI app."""

    @app.exception_handler(EgressGuardError)
    async def _egressguard_error(request: Request, exc: EgressGuardError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_failed", error_code=exc.error_code, message=exc.message)
        else:
            logger.info("request_rejected", error_code=exc.error_code)
        return _build_error_response(
            request,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            details=exc.details,
            include_trace=debug,
            exc=exc,
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception")
        message = str(exc) if debug else "An internal error occurred"
        return _build_error_response(
            request,
            status_code=500,
            error_code="INTERNAL_ERROR",
            message=message,
            include_trace=debug,
            exc=exc,
        )
