"""
User Service - Tenant user management.

Handles:
- Profile bootstrap for newly verified identities
- User CRUD within an account (email uniqueness, account user limit)
- Status changes (soft deactivation) and bulk status updates
- User-level permission overrides
- Per-account and platform-wide user statistics
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from config.settings import Settings, get_settings
from database.models import utcnow
from rbac.capabilities import CapabilitySet, UsageLimits
from rbac.roles import Role
from security.api_errors import (
    ConflictError,
    InvariantViolationError,
    NotFoundError,
)

from ..models import Account, User, UserOverride, UserStatus
from ..support.impersonation_models import ImpersonationSession
from .batch import BatchResult, run_batch

logger = logging.getLogger(__name__)

TENANT_ROLES = (Role.TENANT_ADMIN.value, Role.TENANT_MEMBER.value)
_PROFILE_FIELDS = ("first_name", "last_name", "phone")


class UserService:
    """Service for user management operations."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get_user(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found", resource="user", resource_id=user_id)
        return user

    def _get_account(self, account_id: str) -> Account:
        account = self.db.get(Account, account_id)
        if account is None:
            raise NotFoundError("Account not found", resource="account", resource_id=account_id)
        return account

    def _ensure_email_free(self, email: str) -> None:
        if self.db.query(User.user_id).filter(func.lower(User.email) == email.lower()).first():
            raise ConflictError("User with this email already exists", field="email", value=email)

    def count_users(self, account_id: str) -> int:
        return (
            self.db.query(func.count(User.user_id))
            .filter(User.account_id == account_id)
            .scalar()
        )

    def count_admins(self, account_id: str) -> int:
        return (
            self.db.query(func.count(User.user_id))
            .filter(User.account_id == account_id, User.role == Role.TENANT_ADMIN.value)
            .scalar()
        )

    def list_account_users(self, account_id: str) -> List[User]:
        self._get_account(account_id)
        return (
            self.db.query(User)
            .filter(User.account_id == account_id)
            .order_by(User.created_at, User.email)
            .all()
        )

    # =========================================================================
    # PROFILE BOOTSTRAP
    # =========================================================================

    def ensure_profile(
        self,
        external_id: str,
        email: str,
        first_name: str = "",
        last_name: str = "",
        phone: Optional[str] = None,
    ) -> User:
        """
        Return the user for a verified identity, creating it if needed.

        - An existing profile with this external id is returned as is.
        - An invited user with the same email claims the identity.
        - Otherwise a new unbound tenant member is created, except that the
          very first profile on an empty platform becomes the operator when
          ``bootstrap_first_operator`` is enabled.
        """
        user = self.db.query(User).filter(User.external_id == external_id).first()
        if user is not None:
            return user

        invited = (
            self.db.query(User)
            .filter(func.lower(User.email) == email.lower(), User.external_id.is_(None))
            .first()
        )
        if invited is not None:
            invited.external_id = external_id
            invited.status = UserStatus.ACTIVE.value
            invited.email_verified = True
            invited.last_login_at = utcnow()
            self.db.flush()
            logger.info(f"Identity linked to invited user {invited.user_id}")
            return invited

        self._ensure_email_free(email)
        is_first = self.db.query(func.count(User.user_id)).scalar() == 0
        make_operator = is_first and self.settings.bootstrap_first_operator

        user = User(
            external_id=external_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            role=Role.OPERATOR.value if make_operator else Role.TENANT_MEMBER.value,
            status=UserStatus.ACTIVE.value,
            email_verified=True,
            last_login_at=utcnow(),
        )
        self.db.add(user)
        self.db.flush()

        if make_operator:
            logger.warning(f"[BOOTSTRAP] First profile became platform operator | user={user.user_id}")
        else:
            logger.info(f"Created profile {user.user_id} for new identity")
        return user

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_user(
        self,
        account_id: str,
        email: str,
        first_name: str,
        last_name: str,
        role: str = Role.TENANT_MEMBER.value,
        phone: Optional[str] = None,
        invited_by: Optional[str] = None,
        capabilities: Optional[CapabilitySet] = None,
        custom_limits: Optional[UsageLimits] = None,
    ) -> User:
        """
        Create an invited user in an account.

        Raises:
            ConflictError: Email already in use.
            InvariantViolationError: Operator role requested, or the account
                reached its max_users.
        """
        if role not in TENANT_ROLES:
            raise InvariantViolationError("Users created in an account must have a tenant role", role=role)

        account = self._get_account(account_id)
        self._ensure_email_free(email)

        current = self.count_users(account_id)
        if current >= account.max_users:
            raise InvariantViolationError(
                f"Account has reached the maximum number of users ({account.max_users})",
                account_id=account_id,
                limit=account.max_users,
            )

        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            role=role,
            account_id=account_id,
            status=UserStatus.INVITED.value,
            email_verified=False,
            invited_by=invited_by,
        )
        self.db.add(user)
        self.db.flush()

        if capabilities is not None:
            self.set_override(user.user_id, capabilities, custom_limits, updated_by=invited_by)

        logger.info(f"Created user {user.user_id} in account {account_id} as {role}")
        return user

    def update_user(self, user_id: str, role: Optional[str] = None, **updates) -> User:
        """
        Update profile fields and/or tenant role.

        Demoting the last tenant admin of an account is rejected.
        """
        user = self.get_user(user_id)

        for field in _PROFILE_FIELDS:
            if updates.get(field) is not None:
                setattr(user, field, updates[field])

        if role is not None and role != user.role:
            if user.is_operator or role not in TENANT_ROLES:
                raise InvariantViolationError("Operator role cannot be granted or revoked here", user_id=user_id)
            if user.is_tenant_admin and self.count_admins(user.account_id) <= 1:
                raise InvariantViolationError(
                    "Cannot demote the last tenant administrator", user_id=user_id, account_id=user.account_id
                )
            user.role = role

        if updates.get("status") is not None:
            self.set_status(user_id, updates["status"])

        self.db.flush()
        return user

    def set_status(self, user_id: str, status: str) -> User:
        """Soft (de)activation. Operators cannot be suspended."""
        user = self.get_user(user_id)
        status = UserStatus(status).value

        if user.is_operator and status == UserStatus.SUSPENDED.value:
            raise InvariantViolationError("Cannot suspend a platform operator", user_id=user_id)

        user.status = status
        self.db.flush()
        logger.info(f"User {user_id} status -> {status}")
        return user

    def bulk_set_status(self, user_ids: Iterable[str], status: str) -> BatchResult:
        """Best-effort status change; each user succeeds or fails on its own."""
        result = run_batch(user_ids, lambda user_id: self.set_status(user_id, status))
        logger.info(
            f"Bulk status {status} | succeeded={len(result.succeeded)} | failed={len(result.failed)}"
        )
        return result

    def delete_user(self, user_id: str) -> None:
        """
        Delete a user and its override.

        Raises:
            InvariantViolationError: Target is a platform operator, or the last
                tenant admin of its account.
        """
        user = self.get_user(user_id)

        if user.is_operator:
            raise InvariantViolationError("Cannot delete a platform operator", user_id=user_id)

        if user.is_tenant_admin and user.account_id and self.count_admins(user.account_id) <= 1:
            raise InvariantViolationError(
                "Cannot delete the last tenant administrator",
                user_id=user_id,
                account_id=user.account_id,
            )

        self.db.query(ImpersonationSession).filter(
            ImpersonationSession.target_user_id == user_id
        ).delete(synchronize_session=False)

        self.db.delete(user)
        self.db.flush()
        logger.info(f"Deleted user {user_id}")

    # =========================================================================
    # OVERRIDES
    # =========================================================================

    def set_override(
        self,
        user_id: str,
        capabilities: CapabilitySet,
        custom_limits: Optional[UsageLimits] = None,
        updated_by: Optional[str] = None,
    ) -> UserOverride:
        """Create or replace the user's override for their current account."""
        user = self.get_user(user_id)
        if user.account_id is None:
            raise InvariantViolationError("User is not bound to an account", user_id=user_id)

        override = user.override
        if override is None:
            override = UserOverride(user_id=user.user_id)
            user.override = override

        override.account_id = user.account_id
        override.capabilities = capabilities.to_document()
        override.custom_limits = custom_limits.model_dump() if custom_limits is not None else None
        override.updated_by = updated_by
        self.db.flush()

        logger.info(f"User override set | user={user_id} | account={user.account_id}")
        return override

    def clear_override(self, user_id: str) -> bool:
        user = self.get_user(user_id)
        if user.override is None:
            return False
        user.override = None
        self.db.flush()
        logger.info(f"User override cleared | user={user_id}")
        return True

    # =========================================================================
    # STATS & SEARCH
    # =========================================================================

    def account_user_stats(self, account_id: str, now: Optional[datetime] = None) -> Dict[str, int]:
        users = self.list_account_users(account_id)
        recent = (now or utcnow()) - timedelta(days=7)
        return {
            "total": len(users),
            "active": sum(1 for u in users if u.status == UserStatus.ACTIVE.value),
            "invited": sum(1 for u in users if u.status == UserStatus.INVITED.value),
            "suspended": sum(1 for u in users if u.status == UserStatus.SUSPENDED.value),
            "tenant_admins": sum(1 for u in users if u.role == Role.TENANT_ADMIN.value),
            "tenant_members": sum(1 for u in users if u.role == Role.TENANT_MEMBER.value),
            "email_verified": sum(1 for u in users if u.email_verified),
            "recent_logins": sum(1 for u in users if u.last_login_at and u.last_login_at > recent),
        }

    def platform_user_stats(self) -> Dict[str, int]:
        rows = self.db.query(User.role, func.count(User.user_id)).group_by(User.role).all()
        by_role = {role: count for role, count in rows}
        return {
            "total": sum(by_role.values()),
            "operators": by_role.get(Role.OPERATOR.value, 0),
            "tenant_admins": by_role.get(Role.TENANT_ADMIN.value, 0),
            "tenant_members": by_role.get(Role.TENANT_MEMBER.value, 0),
            "suspended": (
                self.db.query(func.count(User.user_id))
                .filter(User.status == UserStatus.SUSPENDED.value)
                .scalar()
            ),
        }

    def search_users(
        self,
        term: Optional[str] = None,
        role: Optional[str] = None,
        status: Optional[str] = None,
        account_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[User]:
        query = self.db.query(User)
        if term:
            pattern = f"%{term.lower()}%"
            query = query.filter(or_(
                func.lower(User.email).like(pattern),
                func.lower(User.first_name).like(pattern),
                func.lower(User.last_name).like(pattern),
            ))
        if role:
            query = query.filter(User.role == Role(role).value)
        if status:
            query = query.filter(User.status == UserStatus(status).value)
        if account_id:
            query = query.filter(User.account_id == account_id)
        return query.order_by(User.email).limit(limit).all()
