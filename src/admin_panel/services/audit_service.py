"""
Audit Service - Append-only trail of administrative mutations.

Every record keeps two identities apart:
- actor_id: the real principal (the operator, when impersonating)
- effective_user_id: the impersonated user, or None
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from rbac.context import AuthContext

from ..models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Types of auditable actions."""
    # Hierarchy
    ACCOUNT_ATTACHED = "account_attached"
    ACCOUNT_DETACHED = "account_detached"
    ACCOUNT_TRANSFERRED = "account_transferred"
    SUB_ACCOUNT_CREATED = "sub_account_created"

    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_STATUS_CHANGED = "account_status_changed"
    ACCOUNT_DELETED = "account_deleted"
    PLAN_ASSIGNED = "plan_assigned"
    TRIAL_UPDATED = "trial_updated"
    BILLING_STATUS_CHANGED = "billing_status_changed"
    ACCOUNT_OVERRIDE_SET = "account_override_set"
    ACCOUNT_OVERRIDE_CLEARED = "account_override_cleared"

    # Users
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_STATUS_CHANGED = "user_status_changed"
    USER_DELETED = "user_deleted"
    USER_OVERRIDE_SET = "user_override_set"
    USER_OVERRIDE_CLEARED = "user_override_cleared"

    # Plans
    PLAN_CREATED = "plan_created"
    PLAN_UPDATED = "plan_updated"
    PLAN_DELETED = "plan_deleted"

    # Impersonation
    IMPERSONATION_STARTED = "impersonation_started"
    IMPERSONATION_REVOKED = "impersonation_revoked"


class AuditService:
    """Service for recording and reading the audit trail."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        ctx: AuthContext,
        action: AuditAction,
        resource: str,
        resource_id: Optional[str] = None,
        account_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """Write one audit record for ``ctx`` in the current transaction."""
        entry = AuditLog(
            actor_id=ctx.actor_id,
            effective_user_id=ctx.effective_user_id,
            impersonation_session_id=ctx.impersonation_session_id,
            account_id=account_id,
            action=AuditAction(action).value,
            resource=resource,
            resource_id=resource_id,
            details=details or None,
        )
        self.db.add(entry)
        self.db.flush()

        logger.info(
            f"[AUDIT] {entry.action} | actor={entry.actor_id} | "
            f"effective={entry.effective_user_id} | {resource}={resource_id}"
        )
        return entry

    def list_for_account(self, account_id: str, limit: int = 100, offset: int = 0) -> List[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.account_id == account_id)
            .order_by(AuditLog.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
