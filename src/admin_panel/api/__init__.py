"""
Admin Panel API Routes

Organized into domain-specific routers:
- hierarchy_routes: Franchise trees, attach / detach / transfer
- account_routes: Account lifecycle, overrides, audit trail
- user_routes: Profile bootstrap and tenant users
- plan_routes: Plan catalogue
- permission_routes: Effective capabilities and limits
- impersonation_routes: Operator "view as user" sessions
"""

from .app import create_app
from .router import admin_router

__all__ = ["admin_router", "create_app"]
