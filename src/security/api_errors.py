"""
Unified error taxonomy and API error responses.

Every failure the engine surfaces to a caller is one of five classified
errors. They are business/caller errors, never transient faults, so
nothing here is retried.

    UnauthenticatedError     no verified principal at all          401
    UnauthorizedError        principal lacks role or tenant scope  403
    NotFoundError            referenced entity is absent           404
    ConflictError            duplicate unique field                409
    InvariantViolationError  business rule would be broken         422

Usage:
    from security.api_errors import NotFoundError

    raise NotFoundError("Account not found", resource="account", resource_id=account_id)
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


# =============================================================================
# ERROR CODES
# =============================================================================


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INSUFFICIENT_PERMISSIONS = "AUTH_INSUFFICIENT_PERMISSIONS"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_ALREADY_EXISTS = "RESOURCE_ALREADY_EXISTS"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"


ERROR_CODE_STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.AUTH_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS: status.HTTP_403_FORBIDDEN,
    ErrorCode.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RESOURCE_ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.BUSINESS_RULE_VIOLATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


class ErrorResponse(BaseModel):
    """Standardized error body."""
    error: bool = True
    code: str
    message: str
    status_code: int
    timestamp: str
    request_id: str
    path: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


# =============================================================================
# EXCEPTIONS
# =============================================================================


class APIError(Exception):
    """
    Base class for every classified engine error.

    Subclasses pin the error code; callers only supply the message and
    optional structured details.
    """

    code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, **extra: Any):
        self.message = message
        self.details = dict(details or {})
        self.details.update({k: v for k, v in extra.items() if v is not None})
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return ERROR_CODE_STATUS_MAP[self.code]

    def to_response(self, request_id: str, path: Optional[str] = None) -> ErrorResponse:
        """Convert to ErrorResponse model."""
        return ErrorResponse(
            code=self.code.value,
            message=self.message,
            status_code=self.status_code,
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
            path=path,
            details=self.details or None,
        )


class UnauthenticatedError(APIError):
    """No verified principal is attached to the request."""
    code = ErrorCode.AUTH_REQUIRED


class UnauthorizedError(APIError):
    """Verified principal with insufficient role or tenant scope."""
    code = ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS


class NotFoundError(APIError):
    """Referenced account, user, plan or session is absent."""
    code = ErrorCode.RESOURCE_NOT_FOUND


class ConflictError(APIError):
    """A unique field (slug, email) is already taken."""
    code = ErrorCode.RESOURCE_ALREADY_EXISTS


class InvariantViolationError(APIError):
    """The requested change would break a business rule."""
    code = ErrorCode.BUSINESS_RULE_VIOLATION


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================


def get_request_id(request: Request) -> str:
    """Get or generate request ID for tracking."""
    request_id = request.headers.get("X-Request-ID")
    if not request_id:
        request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = str(uuid.uuid4())
    return request_id


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the APIError handler with the FastAPI app.

    Call this in your app initialization:
        from security.api_errors import register_exception_handlers
        register_exception_handlers(app)
    """

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        request_id = get_request_id(request)
        logger.warning(
            f"[{exc.code.value}] {exc.message} | path={request.url.path} | request_id={request_id}"
        )
        body = exc.to_response(request_id=request_id, path=request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(),
            headers={"X-Request-ID": request_id},
        )
