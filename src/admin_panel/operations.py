"""
Admin Operations - the named queries and mutations of the engine.

Every operation follows the same sequence inside one transaction:

    1. resolve the principal id to an AuthContext
    2. apply the impersonation token, if one was supplied
    3. check an AccessGuard predicate
    4. delegate to a service
    5. (mutations) write an audit record with both identities

Queries run in a read-only scope that always rolls back; mutations run in
a transaction scope that commits on success and rolls back on any error.
Results are plain dicts built inside the scope.

Usage:
    ops = AdminOperations()
    tree = ops.get_hierarchy(principal_id, franchise_id)
    ops.attach(principal_id, child_id, franchise_id, session_token=token)
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session, sessionmaker

from config.settings import Settings, get_settings
from database.transaction import read_only_scope, transaction_scope
from rbac.access_guard import AccessGuard
from rbac.capabilities import CapabilitySet, PlanFeatures, UIRestrictions, UsageLimits
from rbac.context import AuthContext
from rbac.permission_resolver import PermissionResolver
from rbac.principal_resolver import PrincipalResolver
from security.api_errors import InvariantViolationError, NotFoundError, UnauthenticatedError
from services.logging_config import get_logger, impersonator_id_var

from .services import (
    AccountService,
    AuditAction,
    AuditService,
    HierarchyService,
    PlanService,
    UserService,
)
from .support.impersonation_service import ImpersonationService

logger = get_logger(__name__, component="admin_operations")


class AdminOperations:
    """Entry point for every exposed operation."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        settings: Optional[Settings] = None,
        impersonation: Optional[ImpersonationService] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.principals = PrincipalResolver()
        self.permissions = PermissionResolver(self.settings)
        self.guard = AccessGuard(self.permissions)
        self.impersonation = impersonation or ImpersonationService(self.settings)

    # =========================================================================
    # PLUMBING
    # =========================================================================

    @contextmanager
    def _scope(
        self,
        principal_id: Optional[str],
        session_token: Optional[str] = None,
        read_only: bool = False,
    ) -> Iterator[Tuple[Session, AuthContext]]:
        scope = read_only_scope if read_only else transaction_scope
        with scope(self.session_factory) as db:
            ctx = self.principals.resolve(db, principal_id)
            ctx = self.impersonation.apply(db, ctx, session_token)
            # scoped to this operation, later log lines must not carry the operator
            binding = impersonator_id_var.set(ctx.impersonator_id if ctx.impersonating else None)
            try:
                logger.debug(
                    f"Operation scope | actor={ctx.actor_id} | effective={ctx.effective_user_id} | "
                    f"read_only={read_only}"
                )
                yield db, ctx
            finally:
                impersonator_id_var.reset(binding)

    @staticmethod
    def _audit(db: Session, ctx: AuthContext, action: AuditAction, resource: str,
               resource_id: Optional[str] = None, account_id: Optional[str] = None, **details) -> None:
        AuditService(db).record(
            ctx, action, resource,
            resource_id=resource_id,
            account_id=account_id,
            details={k: v for k, v in details.items() if v is not None},
        )

    # =========================================================================
    # HIERARCHY
    # =========================================================================

    def get_hierarchy(self, principal_id: str, franchise_id: str,
                      session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_tenant_admin(db, ctx, franchise_id, hierarchy=True)
            return HierarchyService(db, self.settings).get_hierarchy(franchise_id)

    def get_path(self, principal_id: str, account_id: str,
                 session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_tenant_member(db, ctx, account_id)
            return [a.to_dict() for a in HierarchyService(db, self.settings).path(account_id)]

    def list_sub_accounts(self, principal_id: str, franchise_id: str,
                          session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_tenant_admin(db, ctx, franchise_id, hierarchy=True)
            return [a.to_dict() for a in HierarchyService(db, self.settings).list_sub_accounts(franchise_id)]

    def list_franchises(self, principal_id: str,
                        session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_operator(ctx)
            return HierarchyService(db, self.settings).list_franchises()

    def list_available_accounts(self, principal_id: str,
                                session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_operator(ctx)
            return [a.to_dict() for a in HierarchyService(db, self.settings).list_available_accounts()]

    def attach(self, principal_id: str, child_id: str, franchise_id: str,
               session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            child = HierarchyService(db, self.settings).attach(child_id, franchise_id)
            self._audit(db, ctx, AuditAction.ACCOUNT_ATTACHED, "account", child_id,
                        account_id=franchise_id, franchise_id=franchise_id)
            return child.to_dict()

    def detach(self, principal_id: str, child_id: str,
               session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            parent_id = AccountService(db, self.settings).get_account(child_id).parent_id
            if parent_id is None:
                self.guard.require_operator(ctx)
            else:
                self.guard.require_tenant_admin(db, ctx, parent_id, hierarchy=True)
            child = HierarchyService(db, self.settings).detach(child_id)
            self._audit(db, ctx, AuditAction.ACCOUNT_DETACHED, "account", child_id,
                        account_id=parent_id, franchise_id=parent_id)
            return child.to_dict()

    def transfer(self, principal_id: str, child_id: str, new_franchise_id: str,
                 session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            previous = AccountService(db, self.settings).get_account(child_id).parent_id
            child = HierarchyService(db, self.settings).transfer(child_id, new_franchise_id)
            self._audit(db, ctx, AuditAction.ACCOUNT_TRANSFERRED, "account", child_id,
                        account_id=new_franchise_id, previous_parent=previous,
                        franchise_id=new_franchise_id)
            return child.to_dict()

    def bulk_attach(self, principal_id: str, child_ids: List[str], franchise_id: str,
                    session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            result = HierarchyService(db, self.settings).bulk_attach(child_ids, franchise_id)
            for child_id in result.succeeded:
                self._audit(db, ctx, AuditAction.ACCOUNT_ATTACHED, "account", child_id,
                            account_id=franchise_id, franchise_id=franchise_id, batch=True)
            return result.to_dict()

    def create_sub_account(self, principal_id: str, franchise_id: str,
                           session_token: Optional[str] = None, **fields) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_tenant_admin(db, ctx, franchise_id, hierarchy=True)
            created = HierarchyService(db, self.settings).create_sub_account(
                franchise_id, created_by=ctx.actor_id, **fields
            )
            self._audit(db, ctx, AuditAction.SUB_ACCOUNT_CREATED, "account",
                        created.account.account_id, account_id=franchise_id,
                        admin_user_id=created.admin_user.user_id)
            return created.to_dict()

    # =========================================================================
    # IMPERSONATION
    # =========================================================================

    def start_impersonation(self, principal_id: str, target_account_id: str, target_user_id: str,
                            ttl_seconds: Optional[int] = None) -> Dict[str, Any]:
        with self._scope(principal_id) as (db, ctx):
            session = self.impersonation.create(db, ctx, target_account_id, target_user_id, ttl_seconds)
            self._audit(db, ctx, AuditAction.IMPERSONATION_STARTED, "impersonation_session",
                        session.session_id, account_id=target_account_id,
                        target_user_id=target_user_id, expires_at=session.expires_at.isoformat())
            return session.to_dict(now=self.impersonation.clock(), include_token=True)

    def end_impersonation(self, principal_id: str, session_token: str) -> Optional[Dict[str, Any]]:
        with self._scope(principal_id) as (db, ctx):
            session = self.impersonation.revoke(db, ctx, session_token)
            if session is None:
                return None
            self._audit(db, ctx, AuditAction.IMPERSONATION_REVOKED, "impersonation_session",
                        session.session_id, account_id=session.target_account_id)
            return session.to_dict(now=self.impersonation.clock())

    def get_impersonation(self, principal_id: str, session_token: str) -> Optional[Dict[str, Any]]:
        """Session info for a token, or None when there is no valid session."""
        with self._scope(principal_id, read_only=True) as (db, ctx):
            self.guard.require_operator(ctx)
            grant = self.impersonation.validate(db, session_token)
            if grant is None:
                return None
            data = grant.session.to_dict(now=self.impersonation.clock())
            data["target_user"] = grant.target_user.to_dict()
            data["target_account"] = grant.target_account.to_dict()
            return data

    def list_active_impersonations(self, principal_id: str, mine_only: bool = False) -> List[Dict[str, Any]]:
        with self._scope(principal_id, read_only=True) as (db, ctx):
            self.guard.require_operator(ctx)
            now = self.impersonation.clock()
            operator_id = ctx.user_id if mine_only else None
            return [s.to_dict(now=now) for s in self.impersonation.list_active(db, operator_id)]

    def list_account_impersonations(self, principal_id: str, account_id: str,
                                    include_ended: bool = False) -> List[Dict[str, Any]]:
        with self._scope(principal_id, read_only=True) as (db, ctx):
            self.guard.require_operator(ctx)
            now = self.impersonation.clock()
            return [s.to_dict(now=now) for s in self.impersonation.list_for_account(db, account_id, include_ended)]

    # =========================================================================
    # PERMISSIONS
    # =========================================================================

    def resolve_permissions(self, principal_id: str, account_id: str, user_id: Optional[str] = None,
                            session_token: Optional[str] = None) -> Dict[str, Any]:
        """
        Effective capabilities and limits in an account.

        Without ``user_id`` this resolves the (effective) caller; resolving
        another user requires tenant-admin rights over the account, and
        that user must be a member of it.
        """
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            if user_id is None or user_id == ctx.user_id:
                grant = self.guard.require_tenant_member(db, ctx, account_id)
                return self.permissions.resolve(db, ctx, grant.account).to_dict()

            grant = self.guard.require_tenant_admin(db, ctx, account_id)
            user = UserService(db, self.settings).get_user(user_id)
            if user.account_id != account_id:
                raise NotFoundError("User not found", resource="user", resource_id=user_id)
            return self.permissions.resolve(db, user, grant.account).to_dict()

    def check_capability(self, principal_id: str, account_id: str, capability: str,
                         session_token: Optional[str] = None) -> bool:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            grant = self.guard.require_tenant_member(db, ctx, account_id)
            try:
                return self.permissions.check(db, ctx, grant.account, capability)
            except KeyError:
                raise InvariantViolationError("Unknown capability", capability=capability)

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def create_account(self, principal_id: str, session_token: Optional[str] = None, **fields) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            created = AccountService(db, self.settings).create_account(created_by=ctx.actor_id, **fields)
            account_id = created.account.account_id
            self._audit(db, ctx, AuditAction.ACCOUNT_CREATED, "account", account_id,
                        account_id=account_id, admin_user_id=created.admin_user.user_id)
            return created.to_dict()

    def get_account(self, principal_id: str, account_id: str,
                    session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            grant = self.guard.require_tenant_member(db, ctx, account_id)
            data = grant.account.to_dict()
            data["override"] = grant.account.override.to_dict() if grant.account.override else None
            return data

    def list_accounts(self, principal_id: str, account_type: Optional[str] = None,
                      status: Optional[str] = None, limit: Optional[int] = None,
                      session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_operator(ctx)
            return AccountService(db, self.settings).list_accounts(account_type, status, limit)

    def platform_stats(self, principal_id: str, session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_operator(ctx)
            stats = AccountService(db, self.settings).platform_stats()
            stats["users"] = UserService(db, self.settings).platform_user_stats()
            stats["active_impersonations"] = len(self.impersonation.list_active(db))
            return stats

    def update_account(self, principal_id: str, account_id: str,
                       session_token: Optional[str] = None, **fields) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            account = AccountService(db, self.settings).update_account(account_id, **fields)
            self._audit(db, ctx, AuditAction.ACCOUNT_UPDATED, "account", account_id,
                        account_id=account_id, fields=sorted(k for k, v in fields.items() if v is not None))
            return account.to_dict()

    def assign_plan(self, principal_id: str, account_id: str, plan_id: str,
                    session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            account = AccountService(db, self.settings).assign_plan(account_id, plan_id)
            self._audit(db, ctx, AuditAction.PLAN_ASSIGNED, "account", account_id,
                        account_id=account_id, plan_id=plan_id)
            return account.to_dict()

    def set_account_status(self, principal_id: str, account_id: str, status: str,
                           session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            account = AccountService(db, self.settings).set_status(account_id, status)
            self._audit(db, ctx, AuditAction.ACCOUNT_STATUS_CHANGED, "account", account_id,
                        account_id=account_id, status=account.status)
            return account.to_dict()

    def update_trial(self, principal_id: str, account_id: str, action: str,
                     extension_days: Optional[int] = None, trial_ends_at=None,
                     session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            account = AccountService(db, self.settings).update_trial(
                account_id, action, extension_days=extension_days, trial_ends_at=trial_ends_at
            )
            self._audit(db, ctx, AuditAction.TRIAL_UPDATED, "account", account_id,
                        account_id=account_id, trial_action=action,
                        trial_ends_at=account.trial_ends_at.isoformat() if account.trial_ends_at else None)
            return account.to_dict()

    def set_billing_status(self, principal_id: str, account_id: str, plan_status: str,
                           session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            account = AccountService(db, self.settings).set_billing_status(account_id, plan_status)
            self._audit(db, ctx, AuditAction.BILLING_STATUS_CHANGED, "account", account_id,
                        account_id=account_id, plan_status=plan_status)
            return account.to_dict()

    def set_account_override(self, principal_id: str, account_id: str, capabilities: CapabilitySet,
                             custom_limits: UsageLimits, ui_restrictions: Optional[UIRestrictions] = None,
                             session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            override = AccountService(db, self.settings).set_override(
                account_id, capabilities, custom_limits, ui_restrictions, updated_by=ctx.actor_id
            )
            self._audit(db, ctx, AuditAction.ACCOUNT_OVERRIDE_SET, "account_override", account_id,
                        account_id=account_id)
            return override.to_dict()

    def clear_account_override(self, principal_id: str, account_id: str,
                               session_token: Optional[str] = None) -> bool:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            cleared = AccountService(db, self.settings).clear_override(account_id)
            if cleared:
                self._audit(db, ctx, AuditAction.ACCOUNT_OVERRIDE_CLEARED, "account_override",
                            account_id, account_id=account_id)
            return cleared

    def delete_account(self, principal_id: str, account_id: str,
                       session_token: Optional[str] = None) -> None:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            AccountService(db, self.settings).delete_account(account_id)
            self._audit(db, ctx, AuditAction.ACCOUNT_DELETED, "account", account_id, account_id=account_id)

    # =========================================================================
    # USERS
    # =========================================================================

    def ensure_profile(self, principal_id: str, email: str, first_name: str = "",
                       last_name: str = "", phone: Optional[str] = None) -> Dict[str, Any]:
        """Bootstrap the profile of a freshly verified identity."""
        if not principal_id:
            raise UnauthenticatedError("Authentication required")
        with transaction_scope(self.session_factory) as db:
            user = UserService(db, self.settings).ensure_profile(
                principal_id, email, first_name, last_name, phone
            )
            return user.to_dict()

    def list_account_users(self, principal_id: str, account_id: str,
                           session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_tenant_admin(db, ctx, account_id)
            return [u.to_dict() for u in UserService(db, self.settings).list_account_users(account_id)]

    def account_user_stats(self, principal_id: str, account_id: str,
                           session_token: Optional[str] = None) -> Dict[str, int]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_tenant_admin(db, ctx, account_id)
            return UserService(db, self.settings).account_user_stats(account_id)

    def search_users(self, principal_id: str, term: Optional[str] = None, role: Optional[str] = None,
                     status: Optional[str] = None, limit: int = 50,
                     session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_operator(ctx)
            users = UserService(db, self.settings).search_users(term, role, status, limit=limit)
            return [u.to_dict() for u in users]

    def create_user(self, principal_id: str, account_id: str,
                    session_token: Optional[str] = None, **fields) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_tenant_admin(db, ctx, account_id)
            user = UserService(db, self.settings).create_user(account_id, invited_by=ctx.actor_id, **fields)
            self._audit(db, ctx, AuditAction.USER_CREATED, "user", user.user_id,
                        account_id=account_id, role=user.role)
            return user.to_dict()

    def _guard_user(self, db: Session, ctx: AuthContext, user_id: str):
        user = UserService(db, self.settings).get_user(user_id)
        if user.account_id is None:
            self.guard.require_operator(ctx)
        else:
            self.guard.require_tenant_admin(db, ctx, user.account_id)
        return user

    def update_user(self, principal_id: str, user_id: str,
                    session_token: Optional[str] = None, **fields) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            target = self._guard_user(db, ctx, user_id)
            user = UserService(db, self.settings).update_user(user_id, **fields)
            self._audit(db, ctx, AuditAction.USER_UPDATED, "user", user_id, account_id=target.account_id,
                        fields=sorted(k for k, v in fields.items() if v is not None))
            return user.to_dict()

    def set_user_status(self, principal_id: str, user_id: str, status: str,
                        session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            target = self._guard_user(db, ctx, user_id)
            user = UserService(db, self.settings).set_status(user_id, status)
            self._audit(db, ctx, AuditAction.USER_STATUS_CHANGED, "user", user_id,
                        account_id=target.account_id, status=user.status)
            return user.to_dict()

    def bulk_set_user_status(self, principal_id: str, user_ids: List[str], status: str,
                             session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            result = UserService(db, self.settings).bulk_set_status(user_ids, status)
            for user_id in result.succeeded:
                self._audit(db, ctx, AuditAction.USER_STATUS_CHANGED, "user", user_id,
                            status=status, batch=True)
            return result.to_dict()

    def delete_user(self, principal_id: str, user_id: str,
                    session_token: Optional[str] = None) -> None:
        with self._scope(principal_id, session_token) as (db, ctx):
            target = self._guard_user(db, ctx, user_id)
            account_id = target.account_id
            UserService(db, self.settings).delete_user(user_id)
            self._audit(db, ctx, AuditAction.USER_DELETED, "user", user_id, account_id=account_id)

    def set_user_override(self, principal_id: str, user_id: str, capabilities: CapabilitySet,
                          custom_limits: Optional[UsageLimits] = None,
                          session_token: Optional[str] = None) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            target = self._guard_user(db, ctx, user_id)
            override = UserService(db, self.settings).set_override(
                user_id, capabilities, custom_limits, updated_by=ctx.actor_id
            )
            self._audit(db, ctx, AuditAction.USER_OVERRIDE_SET, "user_override", user_id,
                        account_id=target.account_id)
            return override.to_dict()

    def clear_user_override(self, principal_id: str, user_id: str,
                            session_token: Optional[str] = None) -> bool:
        with self._scope(principal_id, session_token) as (db, ctx):
            target = self._guard_user(db, ctx, user_id)
            cleared = UserService(db, self.settings).clear_override(user_id)
            if cleared:
                self._audit(db, ctx, AuditAction.USER_OVERRIDE_CLEARED, "user_override", user_id,
                            account_id=target.account_id)
            return cleared

    # =========================================================================
    # PLANS
    # =========================================================================

    def list_plans(self, principal_id: str, active_only: bool = False,
                   session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            return [p.to_dict() for p in PlanService(db).list_plans(active_only)]

    def create_plan(self, principal_id: str, name: str, plan_type: str, price,
                    features: Optional[PlanFeatures] = None, session_token: Optional[str] = None,
                    **fields) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            plan = PlanService(db).create_plan(name, plan_type, price, features, **fields)
            self._audit(db, ctx, AuditAction.PLAN_CREATED, "plan", plan.plan_id, name=name)
            return plan.to_dict()

    def update_plan(self, principal_id: str, plan_id: str, reconcile: bool = False,
                    session_token: Optional[str] = None, **updates) -> Dict[str, Any]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            plan = PlanService(db).update_plan(plan_id, reconcile=reconcile, **updates)
            self._audit(db, ctx, AuditAction.PLAN_UPDATED, "plan", plan_id, reconcile=reconcile,
                        fields=sorted(k for k, v in updates.items() if v is not None))
            return plan.to_dict()

    def delete_plan(self, principal_id: str, plan_id: str,
                    session_token: Optional[str] = None) -> None:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            PlanService(db).delete_plan(plan_id)
            self._audit(db, ctx, AuditAction.PLAN_DELETED, "plan", plan_id)

    def create_default_plans(self, principal_id: str,
                             session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._scope(principal_id, session_token) as (db, ctx):
            self.guard.require_operator(ctx)
            plans = PlanService(db).create_default_plans()
            for plan in plans:
                self._audit(db, ctx, AuditAction.PLAN_CREATED, "plan", plan.plan_id, name=plan.name)
            return [p.to_dict() for p in plans]

    # =========================================================================
    # AUDIT
    # =========================================================================

    def list_audit_logs(self, principal_id: str, account_id: str, limit: int = 100,
                        session_token: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._scope(principal_id, session_token, read_only=True) as (db, ctx):
            self.guard.require_tenant_admin(db, ctx, account_id)
            return [e.to_dict() for e in AuditService(db).list_for_account(account_id, limit=limit)]
