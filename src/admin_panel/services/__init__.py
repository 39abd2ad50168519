"""
Admin Panel Services Layer.

Business logic for:
- Tenant hierarchy (franchise / sub-account tree)
- Accounts, users and plans
- Audit trail
"""

from .batch import BatchFailure, BatchResult
from .hierarchy_service import HierarchyService, MAX_HIERARCHY_DEPTH
from .plan_service import PlanService
from .user_service import UserService
from .account_service import AccountService, CreatedAccount, TrialAction
from .audit_service import AuditService, AuditAction

__all__ = [
    "BatchFailure",
    "BatchResult",
    "HierarchyService",
    "MAX_HIERARCHY_DEPTH",
    "PlanService",
    "UserService",
    "AccountService",
    "CreatedAccount",
    "TrialAction",
    "AuditService",
    "AuditAction",
]
