"""
Admin Panel Database Models

Exports all tenancy ORM models.
"""

from .plan import Plan, PlanType, PlanStatus, BillingPeriod
from .account import (
    Account,
    AccountOverride,
    AccountType,
    AccountStatus,
    BillingStatus,
    LIVE_BILLING_STATES,
)
from .user import User, UserOverride, UserStatus
from .audit_log import AuditLog

__all__ = [
    # Plan
    "Plan",
    "PlanType",
    "PlanStatus",
    "BillingPeriod",
    # Account
    "Account",
    "AccountOverride",
    "AccountType",
    "AccountStatus",
    "BillingStatus",
    "LIVE_BILLING_STATES",
    # User
    "User",
    "UserOverride",
    "UserStatus",
    # Audit
    "AuditLog",
]
