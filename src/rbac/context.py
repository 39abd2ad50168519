"""
Authentication Context

AuthContext is the primary object passed from the PrincipalResolver
through the AccessGuard into every service. It describes who the request
acts as (the effective principal) and, under impersonation, who really
issued it.
"""

from dataclasses import dataclass, replace
from typing import Optional

from .roles import Level, Role, get_role_info


@dataclass(frozen=True)
class AuthContext:
    """
    Authentication context for the current operation.

    Usage:
        ctx = PrincipalResolver().resolve(session, principal_id)
        ctx = ImpersonationService(settings).apply(session, ctx, session_token)
        grant = AccessGuard(resolver).require_tenant_member(session, ctx, account_id)
    """

    # =========================================================================
    # Effective identity (what permission resolution sees)
    # =========================================================================

    user_id: str
    """Internal user id of the effective principal."""

    email: str
    """Effective principal's email."""

    role: Role
    """Effective principal's role."""

    account_id: Optional[str] = None
    """Account the effective principal is bound to (None for operators)."""

    status: str = "active"

    # =========================================================================
    # Impersonation
    # =========================================================================

    impersonating: bool = False
    """Whether this context came from a valid impersonation session."""

    impersonator_id: Optional[str] = None
    """Operator's user id while impersonating."""

    impersonation_session_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "role", Role(self.role))

    # =========================================================================
    # Factories
    # =========================================================================

    @classmethod
    def from_user(cls, user) -> "AuthContext":
        """Build a context for a user acting as themselves."""
        return cls(
            user_id=user.user_id,
            email=user.email,
            role=Role(user.role),
            account_id=user.account_id,
            status=user.status,
        )

    def impersonate(self, target_user, session_id: str) -> "AuthContext":
        """Context for ``target_user``, keeping this principal as the impersonator."""
        return replace(
            AuthContext.from_user(target_user),
            impersonating=True,
            impersonator_id=self.actor_id,
            impersonation_session_id=session_id,
        )

    # =========================================================================
    # Identity accessors
    # =========================================================================

    @property
    def actor_id(self) -> str:
        """The true principal: the operator when impersonating, else the user."""
        return self.impersonator_id if self.impersonating else self.user_id

    @property
    def effective_user_id(self) -> Optional[str]:
        """The impersonated user, or None when acting as oneself."""
        return self.user_id if self.impersonating else None

    # =========================================================================
    # Role Checks
    # =========================================================================

    @property
    def level(self) -> Level:
        return get_role_info(self.role).level

    @property
    def is_operator(self) -> bool:
        return self.role == Role.OPERATOR

    @property
    def is_tenant_admin(self) -> bool:
        return self.role == Role.TENANT_ADMIN

    def belongs_to(self, account_id: str) -> bool:
        return self.account_id is not None and self.account_id == account_id

    def __repr__(self) -> str:
        if self.impersonating:
            return (
                f"AuthContext(user={self.email}, role={self.role.value}, "
                f"impersonator={self.impersonator_id})"
            )
        return f"AuthContext(user={self.email}, role={self.role.value})"
