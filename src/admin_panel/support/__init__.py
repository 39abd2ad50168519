"""
Support Module for Admin Panel

Operator impersonation ("view as user"):
- Secure, time-boxed, token-based sessions
- Lazy expiry, idempotent revocation
- Dual identity preserved for audit
"""

from .impersonation_models import (
    ImpersonationGrant,
    ImpersonationSession,
    ImpersonationStatus,
)
from .impersonation_service import ImpersonationService

__all__ = [
    "ImpersonationGrant",
    "ImpersonationSession",
    "ImpersonationStatus",
    "ImpersonationService",
]
