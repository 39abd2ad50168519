"""
Account Service - Tenant account lifecycle.

Handles:
- Account creation (unique slug, trial, invited tenant admin)
- Plan assignment and account updates
- Status, trial and billing state changes
- Account overrides (capabilities, limits, UI restrictions)
- Deletion guards and platform statistics
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from config.settings import Settings, get_settings
from database.models import utcnow
from rbac.capabilities import CapabilitySet, UIRestrictions, UsageLimits
from rbac.roles import Role
from security.api_errors import ConflictError, InvariantViolationError, NotFoundError

from ..models import (
    Account,
    AccountOverride,
    AccountStatus,
    AccountType,
    BillingStatus,
    Plan,
    User,
)
from ..support.impersonation_models import ImpersonationSession
from .hierarchy_service import HierarchyService
from .plan_service import PlanService
from .user_service import UserService

logger = logging.getLogger(__name__)

_SLUG_INVALID = re.compile(r"[^a-z0-9]")


class TrialAction(str, Enum):
    EXTEND = "extend"
    END = "end"
    RESTART = "restart"
    SET_CUSTOM_END = "set_custom_end"


@dataclass
class CreatedAccount:
    account: Account
    admin_user: User

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account.to_dict(),
            "admin_user": self.admin_user.to_dict(),
        }


def slugify(name: str) -> str:
    """Lowercase, every non-alphanumeric character replaced by '-'."""
    return _SLUG_INVALID.sub("-", name.lower())


class AccountService:
    """Service for account management operations."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def get_account(self, account_id: str) -> Account:
        account = self.db.get(Account, account_id)
        if account is None:
            raise NotFoundError("Account not found", resource="account", resource_id=account_id)
        return account

    def _slug_taken(self, slug: str) -> bool:
        return self.db.query(Account.account_id).filter(Account.slug == slug).first() is not None

    def unique_slug(self, name: str) -> str:
        """Derive a free slug: base, then base-1, base-2, ..."""
        base = slugify(name)
        slug = base
        counter = 1
        while self._slug_taken(slug):
            slug = f"{base}-{counter}"
            counter += 1
        return slug

    @staticmethod
    def _check_plan_fits(plan: Plan, account_type: str) -> None:
        if plan.type != account_type:
            raise InvariantViolationError(
                f"Cannot assign {plan.type} plan to {account_type} account",
                plan_id=plan.plan_id,
            )

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_account(
        self,
        name: str,
        account_type: str,
        plan_id: str,
        admin_email: str,
        admin_first_name: str,
        admin_last_name: str,
        admin_phone: Optional[str] = None,
        parent_id: Optional[str] = None,
        slug: Optional[str] = None,
        trial_days: Optional[int] = None,
        seed_override: bool = False,
        created_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CreatedAccount:
        """
        Create an account on trial together with its invited tenant admin.

        Args:
            parent_id: Franchise to attach the new account to (individual only).
            slug: Explicit slug; must be free. Derived from ``name`` otherwise.
            trial_days: Trial length, defaults to ``default_trial_days``.
            seed_override: Seed an AccountOverride from the plan defaults.

        Raises:
            NotFoundError: Plan or parent absent.
            ConflictError: Slug or admin email already taken.
            InvariantViolationError: Plan type mismatch or invalid parent.
        """
        account_type = AccountType(account_type).value
        plan = PlanService(self.db).get_plan(plan_id)
        self._check_plan_fits(plan, account_type)

        if slug is not None:
            if self._slug_taken(slug):
                raise ConflictError("Account slug already exists", field="slug", value=slug)
        else:
            slug = self.unique_slug(name)

        now = now or utcnow()
        days = self.settings.default_trial_days if trial_days is None else trial_days
        features = plan.plan_features
        is_franchise = account_type == AccountType.FRANCHISE.value

        account = Account(
            type=account_type,
            name=name,
            slug=slug,
            plan_id=plan.plan_id,
            plan_status=BillingStatus.TRIAL.value,
            trial_ends_at=now + timedelta(days=days),
            status=AccountStatus.ACTIVE.value,
            max_users=features.max_users or self.settings.fallback_max_users,
            max_sub_accounts=self.settings.franchise_sub_account_limit if is_franchise else 0,
            contact_name=f"{admin_first_name} {admin_last_name}".strip(),
            contact_email=admin_email,
            contact_phone=admin_phone,
            created_by=created_by,
        )
        self.db.add(account)
        self.db.flush()

        if parent_id is not None:
            HierarchyService(self.db, self.settings).attach(account.account_id, parent_id)

        if seed_override:
            self.set_override(
                account.account_id,
                capabilities=plan.capabilities,
                custom_limits=UsageLimits(
                    max_customers=self.settings.fallback_max_customers,
                    max_monthly_emails=self.settings.fallback_max_monthly_emails,
                    max_users=features.max_users or self.settings.fallback_max_users,
                    data_retention_days=features.data_retention or self.settings.fallback_data_retention_days,
                ),
                updated_by=created_by,
            )

        admin = UserService(self.db, self.settings).create_user(
            account_id=account.account_id,
            email=admin_email,
            first_name=admin_first_name,
            last_name=admin_last_name,
            phone=admin_phone,
            role=Role.TENANT_ADMIN.value,
            invited_by=created_by,
        )

        logger.info(
            f"Created {account_type} account {account.account_id} ({slug}) | plan={plan.name} | "
            f"trial_days={days} | parent={parent_id}"
        )
        return CreatedAccount(account=account, admin_user=admin)

    # =========================================================================
    # UPDATE
    # =========================================================================

    def update_account(
        self,
        account_id: str,
        name: Optional[str] = None,
        plan_id: Optional[str] = None,
        contact_name: Optional[str] = None,
        contact_email: Optional[str] = None,
        contact_phone: Optional[str] = None,
    ) -> Account:
        account = self.get_account(account_id)
        if name is not None:
            account.name = name
        if plan_id is not None:
            self.assign_plan(account_id, plan_id)
        if contact_name is not None:
            account.contact_name = contact_name
        if contact_email is not None:
            account.contact_email = contact_email
        if contact_phone is not None:
            account.contact_phone = contact_phone
        self.db.flush()
        return account

    def assign_plan(self, account_id: str, plan_id: str) -> Account:
        """Move an account to another plan of the same type."""
        account = self.get_account(account_id)
        plan = PlanService(self.db).get_plan(plan_id)
        self._check_plan_fits(plan, account.type)

        account.plan_id = plan.plan_id
        account.plan = plan
        self.db.flush()
        logger.info(f"Assigned plan {plan.name} to account {account_id}")
        return account

    def set_status(self, account_id: str, status: str) -> Account:
        """Soft (de)activation of an account."""
        account = self.get_account(account_id)
        account.status = AccountStatus(status).value
        self.db.flush()
        logger.info(f"Account {account_id} status -> {account.status}")
        return account

    def update_trial(
        self,
        account_id: str,
        action: str,
        extension_days: Optional[int] = None,
        trial_ends_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Account:
        """
        Adjust the trial window.

            extend          current end (or now) + extension_days, back on trial
            end             ends now, billing becomes active
            restart         now + default trial length, back on trial
            set_custom_end  explicit end; trial if in the future, else active
        """
        account = self.get_account(account_id)
        action = TrialAction(action)
        now = now or utcnow()

        if action == TrialAction.EXTEND:
            if not extension_days:
                raise InvariantViolationError("Extension days required for extend action")
            account.trial_ends_at = (account.trial_ends_at or now) + timedelta(days=extension_days)
            account.plan_status = BillingStatus.TRIAL.value
        elif action == TrialAction.END:
            account.trial_ends_at = now
            account.plan_status = BillingStatus.ACTIVE.value
        elif action == TrialAction.RESTART:
            account.trial_ends_at = now + timedelta(days=self.settings.default_trial_days)
            account.plan_status = BillingStatus.TRIAL.value
        else:
            if trial_ends_at is None:
                raise InvariantViolationError("Trial end date required for set_custom_end action")
            account.trial_ends_at = trial_ends_at
            account.plan_status = (
                BillingStatus.TRIAL.value if trial_ends_at > now else BillingStatus.ACTIVE.value
            )

        self.db.flush()
        logger.info(
            f"Trial {action.value} | account={account_id} | ends={account.trial_ends_at} | "
            f"plan_status={account.plan_status}"
        )
        return account

    def set_billing_status(self, account_id: str, plan_status: str) -> Account:
        account = self.get_account(account_id)
        account.plan_status = BillingStatus(plan_status).value
        self.db.flush()
        logger.info(f"Account {account_id} billing -> {account.plan_status}")
        return account

    # =========================================================================
    # OVERRIDES
    # =========================================================================

    def set_override(
        self,
        account_id: str,
        capabilities: CapabilitySet,
        custom_limits: UsageLimits,
        ui_restrictions: Optional[UIRestrictions] = None,
        updated_by: Optional[str] = None,
    ) -> AccountOverride:
        """Create or replace the account override (always a complete object)."""
        account = self.get_account(account_id)

        override = account.override
        if override is None:
            override = AccountOverride(account_id=account.account_id)
            account.override = override

        override.capabilities = capabilities.to_document()
        override.custom_limits = custom_limits.model_dump()
        override.ui_restrictions = (ui_restrictions or UIRestrictions()).model_dump()
        override.updated_by = updated_by
        self.db.flush()

        logger.info(f"Account override set | account={account_id}")
        return override

    def clear_override(self, account_id: str) -> bool:
        account = self.get_account(account_id)
        if account.override is None:
            return False
        account.override = None
        self.db.flush()
        logger.info(f"Account override cleared | account={account_id}")
        return True

    # =========================================================================
    # DELETE
    # =========================================================================

    def delete_account(self, account_id: str) -> None:
        """
        Delete an account with its override, users and user overrides.

        Raises:
            InvariantViolationError: The account still has active sub-accounts
                or an active/past-due billing state.
        """
        account = self.get_account(account_id)

        active_children = (
            self.db.query(func.count(Account.account_id))
            .filter(
                Account.parent_id == account_id,
                Account.status == AccountStatus.ACTIVE.value,
            )
            .scalar()
        )
        if active_children:
            raise InvariantViolationError(
                "Cannot delete an account with active sub-accounts",
                account_id=account_id,
                active_sub_accounts=active_children,
            )
        if account.has_live_billing:
            raise InvariantViolationError(
                f"Cannot delete an account with {account.plan_status} billing",
                account_id=account_id,
            )

        # Inactive children become standalone accounts
        for child in self.db.query(Account).filter(Account.parent_id == account_id).all():
            child.parent_id = None

        self.db.query(ImpersonationSession).filter(
            ImpersonationSession.target_account_id == account_id
        ).delete(synchronize_session=False)

        for user in self.db.query(User).filter(User.account_id == account_id).all():
            self.db.delete(user)
        # Users reference the account, so they go first
        self.db.flush()

        self.db.delete(account)
        self.db.flush()
        logger.info(f"Deleted account {account_id}")

    # =========================================================================
    # QUERIES
    # =========================================================================

    def list_accounts(
        self,
        account_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Accounts enriched with trial status and user counts."""
        query = self.db.query(Account)
        if account_type:
            query = query.filter(Account.type == AccountType(account_type).value)
        if status:
            query = query.filter(Account.status == AccountStatus(status).value)
        query = query.order_by(Account.created_at, Account.name)
        if limit:
            query = query.limit(limit)
        accounts = query.all()

        user_counts = dict(
            self.db.query(User.account_id, func.count(User.user_id))
            .filter(User.account_id.in_([a.account_id for a in accounts]))
            .group_by(User.account_id)
            .all()
        ) if accounts else {}

        now = now or utcnow()
        result = []
        for account in accounts:
            data = account.to_dict()
            data["user_count"] = user_counts.get(account.account_id, 0)
            data["trial_status"] = None
            if account.plan_status == BillingStatus.TRIAL.value and account.trial_ends_at:
                data["trial_status"] = {
                    "days_remaining": account.trial_days_remaining(now),
                    "is_expired": now > account.trial_ends_at,
                    "expires_at": account.trial_ends_at.isoformat(),
                }
            result.append(data)
        return result

    def platform_stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or utcnow()
        accounts = self.db.query(Account).all()
        trials = [a for a in accounts if a.plan_status == BillingStatus.TRIAL.value]

        return {
            "total_accounts": len(accounts),
            "franchise_accounts": sum(1 for a in accounts if a.is_franchise),
            "individual_accounts": sum(1 for a in accounts if not a.is_franchise),
            "independent_accounts": sum(1 for a in accounts if not a.is_franchise and not a.is_sub_account),
            "sub_accounts": sum(1 for a in accounts if a.is_sub_account),
            "active_accounts": sum(1 for a in accounts if a.status == AccountStatus.ACTIVE.value),
            "trial_accounts": len(trials),
            "expired_trials": sum(1 for a in trials if a.trial_ends_at and a.trial_ends_at < now),
            "active_trials": sum(1 for a in trials if a.trial_ends_at and a.trial_ends_at >= now),
            "paid_accounts": sum(1 for a in accounts if a.plan_status == BillingStatus.ACTIVE.value),
            "total_users": self.db.query(func.count(User.user_id)).scalar(),
            "total_plans": self.db.query(func.count(Plan.plan_id)).scalar(),
        }
