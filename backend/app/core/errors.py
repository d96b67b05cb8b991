"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes for the SOS pipeline
    • Consistent JSON error response format
    • Automatic logging of unhandled errors
    • Request context in error responses (non-production)

Error taxonomy for an SOS trigger:

    Kind                   Raised before side effects?   HTTP
    ─────────────────────  ───────────────────────────   ────
    MissingLocationError   yes                           422
    ValidationError        yes                           422
    UserNotFoundError      yes                           404
    NotFullyVerifiedError  yes                           403
    PersistenceError       no (sends already issued)     500

Per-recipient delivery failures are NOT exceptions: they are recorded on
the alert and never fail the request.

Usage:
    from backend.app.core.errors import NotFoundError, register_error_handlers

    raise NotFoundError("SOS alert", alert_id="SOS-3A7B...")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.core.config import Settings, settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class SafetyAPIError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(SafetyAPIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, *, error_code: str = "NOT_FOUND", **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code=error_code,
            details=details,
        )


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("User", error_code="USER_NOT_FOUND", user_id=user_id)


class AlertNotFoundError(NotFoundError):
    def __init__(self, alert_id: str):
        super().__init__("SOS alert", error_code="ALERT_NOT_FOUND", alert_id=alert_id)


class ValidationError(SafetyAPIError):
    """Input validation failed (422)."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        error_code: str = "VALIDATION_ERROR",
        **details: Any,
    ):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code=error_code,
            details=d,
        )


class MissingLocationError(ValidationError):
    """latitude and/or longitude absent from an SOS trigger."""

    def __init__(self, missing: list):
        super().__init__(
            "Location coordinates are required",
            error_code="MISSING_LOCATION",
            missing=missing,
        )


class InvalidStatusError(ValidationError):
    def __init__(self, status: Any, allowed: list):
        super().__init__(
            f"Invalid status '{status}'",
            field="status",
            error_code="INVALID_STATUS",
            allowed=allowed,
        )


class ContactLimitError(ValidationError):
    def __init__(self, limit: int):
        super().__init__(
            f"Maximum {limit} emergency contacts allowed",
            error_code="CONTACT_LIMIT_REACHED",
            limit=limit,
        )


class AuthenticationError(SafetyAPIError):
    """Missing or invalid bearer token (401)."""

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTHENTICATION_FAILED",
        )


class AuthorizationError(SafetyAPIError):
    """Authenticated but not allowed (403)."""

    def __init__(self, message: str, *, error_code: str = "FORBIDDEN", **details: Any):
        super().__init__(
            message=message,
            status_code=403,
            error_code=error_code,
            details=details,
        )


class NotFullyVerifiedError(AuthorizationError):
    """SOS gate: phone AND document must both be verified."""

    def __init__(self, user_id: str, *, phone_verified: bool, document_verified: bool):
        super().__init__(
            "Only verified users can send SOS alerts",
            error_code="NOT_FULLY_VERIFIED",
            user_id=user_id,
            phone_verified=phone_verified,
            document_verified=document_verified,
        )


class AlertTransitionError(SafetyAPIError):
    """Alert is terminal and cannot move to the requested status (409)."""

    def __init__(self, alert_id: str, current: str, requested: str):
        super().__init__(
            message=f"SOS alert {alert_id} is already {current}; cannot change to {requested}",
            status_code=409,
            error_code="INVALID_TRANSITION",
            details={"alert_id": alert_id, "current": current, "requested": requested},
        )


class PersistenceError(SafetyAPIError):
    """The alert record could not be written (500)."""

    def __init__(self, alert_id: str, message: str = ""):
        super().__init__(
            message=f"SOS alert {alert_id} could not be persisted: {message}",
            status_code=500,
            error_code="PERSISTENCE_FAILURE",
            details={"alert_id": alert_id},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _config(request: Request) -> Settings:
    return getattr(request.app.state, "settings", settings)


def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "success": False,
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        },
    }

    if details:
        body["error"]["details"] = details

    # Include request path in non-production
    if request and not _config(request).is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(SafetyAPIError)
    async def handle_safety_error(request: Request, exc: SafetyAPIError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", ""),
                "type": err.get("type", ""),
            }
            for err in exc.errors()
        ]
        logger.warning("Request validation failed: %s", errors)
        return _build_error_response(
            422, "VALIDATION_ERROR", "Request validation failed",
            {"errors": errors}, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        debug = _config(request).DEBUG
        message = str(exc) if debug else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if debug else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )
