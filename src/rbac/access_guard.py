"""
Access Guard

Composable authorization predicates. Each one either returns an
AccessGrant describing what was checked or raises a classified error:

    UnauthenticatedError   no principal at all
    UnauthorizedError      principal lacks role or tenant scope
    NotFoundError          target account absent (only once scope allows it)

Operators pass every tenant-scoped predicate. Non-operators never pass a
predicate for an account other than their own.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from admin_panel.models import Account
from security.api_errors import NotFoundError, UnauthenticatedError, UnauthorizedError

from .context import AuthContext
from .permission_resolver import PermissionResolver, ResolvedPermissions
from .roles import Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessGrant:
    """Authorization context handed to the service layer."""
    ctx: AuthContext
    account: Optional[Account] = None
    permissions: Optional[ResolvedPermissions] = None

    @property
    def is_operator(self) -> bool:
        return self.ctx.is_operator

    @property
    def is_admin(self) -> bool:
        return self.ctx.role in (Role.OPERATOR, Role.TENANT_ADMIN)


class AccessGuard:
    """Authorization predicates over AuthContext."""

    def __init__(self, resolver: Optional[PermissionResolver] = None):
        self.resolver = resolver or PermissionResolver()

    @staticmethod
    def _authenticated(ctx: Optional[AuthContext]) -> AuthContext:
        if ctx is None:
            raise UnauthenticatedError("Authentication required")
        return ctx

    @staticmethod
    def _load_account(session: Session, account_id: str) -> Account:
        account = session.get(Account, account_id)
        if account is None:
            raise NotFoundError("Account not found", resource="account", resource_id=account_id)
        return account

    def _deny(self, ctx: AuthContext, message: str, account_id: Optional[str] = None):
        logger.warning(
            f"[ACCESS] Denied | user={ctx.user_id} | role={ctx.role.value} | "
            f"account={account_id} | reason={message}"
        )
        raise UnauthorizedError(message, account_id=account_id)

    def require_operator(self, ctx: Optional[AuthContext]) -> AccessGrant:
        """Succeeds only for the operator role."""
        ctx = self._authenticated(ctx)
        if not ctx.is_operator:
            self._deny(ctx, "Operator access required")
        return AccessGrant(ctx=ctx)

    def require_tenant_admin(
        self,
        session: Session,
        ctx: Optional[AuthContext],
        account_id: str,
        hierarchy: bool = False,
    ) -> AccessGrant:
        """
        Operator, or tenant_admin of ``account_id``.

        Args:
            hierarchy: Hierarchy-management call; a tenant admin additionally
                needs the account to be a franchise.
        """
        ctx = self._authenticated(ctx)

        if ctx.is_operator:
            return AccessGrant(ctx=ctx, account=self._load_account(session, account_id))

        if not ctx.is_tenant_admin:
            self._deny(ctx, "Tenant admin access required", account_id)
        if not ctx.belongs_to(account_id):
            self._deny(ctx, "Cannot administer another tenant", account_id)

        account = self._load_account(session, account_id)
        if hierarchy and not account.is_franchise:
            self._deny(ctx, "Hierarchy management requires a franchise account", account_id)

        return AccessGrant(ctx=ctx, account=account)

    def require_tenant_member(
        self,
        session: Session,
        ctx: Optional[AuthContext],
        account_id: str,
    ) -> AccessGrant:
        """Operator, or any user bound to ``account_id``."""
        ctx = self._authenticated(ctx)

        if not ctx.is_operator and not ctx.belongs_to(account_id):
            self._deny(ctx, "Cannot access another tenant", account_id)

        return AccessGrant(ctx=ctx, account=self._load_account(session, account_id))

    def require_capability(
        self,
        session: Session,
        ctx: Optional[AuthContext],
        account_id: str,
        capability: str,
    ) -> AccessGrant:
        """Tenant membership plus a resolved capability ("category.action")."""
        grant = self.require_tenant_member(session, ctx, account_id)
        resolved = self.resolver.require(session, grant.ctx, grant.account, capability)
        return AccessGrant(ctx=grant.ctx, account=grant.account, permissions=resolved)
