"""
Security module for the tenant administration engine.

Provides the classified error taxonomy shared by every service and the
HTTP exception handlers that render it.
"""

from .api_errors import (
    APIError,
    ErrorCode,
    UnauthenticatedError,
    UnauthorizedError,
    NotFoundError,
    ConflictError,
    InvariantViolationError,
    register_exception_handlers,
)

__all__ = [
    "APIError",
    "ErrorCode",
    "UnauthenticatedError",
    "UnauthorizedError",
    "NotFoundError",
    "ConflictError",
    "InvariantViolationError",
    "register_exception_handlers",
]
