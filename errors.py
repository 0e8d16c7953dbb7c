"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses.

Collaborator errors (token store, identity provider, record store, role
grant) carry an ErrorKind so the verification service can decide whether
the failure is terminal for the attempt or recovered locally.

Non-AppError exceptions bubble up as 500s (with Sentry reporting in production).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ErrorKind(str, Enum):
    # Terminal for the attempt, surfaced to the caller
    INVALID_REQUEST = "invalid_request"
    TOKEN_EXPIRED = "token_expired"
    ORIGIN_BLOCKED = "origin_blocked"
    ORIGIN_ALREADY_VERIFIED = "origin_already_verified"
    PROVIDER_AUTH_FAILED = "provider_auth_failed"
    CONFIGURATION_ERROR = "configuration_error"
    DEDUP_UNAVAILABLE = "dedup_unavailable"

    # Raised by the identity provider client, reported as provider_auth_failed
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    IDENTITY_FETCH_FAILED = "identity_fetch_failed"

    # Recovered locally, logged for manual reconciliation
    PERSISTENCE_FAILED = "persistence_failed"
    ROLE_GRANT_FAILED = "role_grant_failed"
    NOTIFICATION_FAILED = "notification_failed"


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class ConfigurationError(AppError):
    status_code = 503
    error_code = "configuration_error"


class ExternalServiceError(AppError):
    """A collaborator call failed. ``kind`` classifies the failure."""

    status_code = 502
    error_code = "external_service_error"
    kind: ErrorKind = ErrorKind.PROVIDER_AUTH_FAILED


class TokenExpiredError(AppError):
    status_code = 400
    error_code = "token_expired"
    kind = ErrorKind.TOKEN_EXPIRED


class TokenExchangeError(ExternalServiceError):
    kind = ErrorKind.TOKEN_EXCHANGE_FAILED


class IdentityFetchError(ExternalServiceError):
    kind = ErrorKind.IDENTITY_FETCH_FAILED


class PersistenceError(ExternalServiceError):
    status_code = 503
    error_code = "persistence_error"
    kind = ErrorKind.PERSISTENCE_FAILED


class RoleGrantError(ExternalServiceError):
    kind = ErrorKind.ROLE_GRANT_FAILED


class OriginBusyError(AppError):
    """Another attempt from the same origin holds the origin guard."""

    status_code = 409
    error_code = "origin_busy"


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        return JSONResponse(
            status_code=500,
            content={"error": "An internal server error occurred.", "code": "internal_error"},
        )
