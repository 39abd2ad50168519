"""
Role Definitions

Three roles organized in a clear hierarchy:

    PLATFORM (Level 0)
    └── operator        - Platform operator, sees every tenant

    TENANT (Level 1) - bound to exactly one account
    ├── tenant_admin    - Administers their own account
    └── tenant_member   - Works inside their own account
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class Role(str, Enum):
    """
    All roles in the system.

    Naming convention: UPPER_SNAKE_CASE for enum, lower_snake_case for value.
    """

    OPERATOR = "operator"
    """
    Platform operator. Unrestricted capabilities in every tenant,
    the only role that may impersonate.
    """

    TENANT_ADMIN = "tenant_admin"
    """
    Tenant administrator. Manages users, overrides and (for franchises)
    sub-accounts of their own account.
    """

    TENANT_MEMBER = "tenant_member"
    """Tenant member. Resolved capabilities within their own account only."""


class Level(int, Enum):
    PLATFORM = 0
    TENANT = 1


@dataclass(frozen=True)
class RoleInfo:
    role: Role
    name: str
    level: Level
    description: str
    can_impersonate: bool = False
    requires_account: bool = True


ROLES: Dict[Role, RoleInfo] = {
    Role.OPERATOR: RoleInfo(
        role=Role.OPERATOR,
        name="Platform Operator",
        level=Level.PLATFORM,
        description="Full platform access across all tenants",
        can_impersonate=True,
        requires_account=False,
    ),
    Role.TENANT_ADMIN: RoleInfo(
        role=Role.TENANT_ADMIN,
        name="Tenant Admin",
        level=Level.TENANT,
        description="Administers a single account",
    ),
    Role.TENANT_MEMBER: RoleInfo(
        role=Role.TENANT_MEMBER,
        name="Tenant Member",
        level=Level.TENANT,
        description="Member of a single account",
    ),
}


def get_role_info(role: Role) -> RoleInfo:
    """Get information about a role."""
    return ROLES[Role(role)]
