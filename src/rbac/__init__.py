"""
Role-Based Access Control (RBAC)

Three roles, two levels:

    Level 0 - Platform
        - operator: every tenant, may impersonate

    Level 1 - Tenant
        - tenant_admin: administers one account
        - tenant_member: works inside one account

Components, leaf-first:
    principal_resolver   trusted principal id -> AuthContext
    permission_resolver  (principal, account) -> capabilities + limits
    access_guard         operator / tenant-admin / tenant-member predicates

Only the leaf modules are re-exported here; import the resolvers and the
guard from their modules (they depend on the ORM models).
"""

from .roles import Role, RoleInfo, Level, ROLES, get_role_info
from .capabilities import (
    CapabilitySet,
    UsageLimits,
    PlanFeatures,
    UIRestrictions,
    UNLIMITED,
)
from .context import AuthContext

__all__ = [
    # Roles
    "Role",
    "RoleInfo",
    "Level",
    "ROLES",
    "get_role_info",
    # Capabilities
    "CapabilitySet",
    "UsageLimits",
    "PlanFeatures",
    "UIRestrictions",
    "UNLIMITED",
    # Context
    "AuthContext",
]
