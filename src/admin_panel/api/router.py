"""
Admin Panel API Router

Aggregates the domain routers into a single router, mounted by the app
under /api/v1.

Route Structure:
- /accounts, /accounts/{id}/...   - Account administration, permissions, audit
- /franchises, /hierarchy         - Tenant hierarchy
- /users, /profile                - User management
- /plans                          - Plan catalogue
- /impersonation                  - Operator "view as user" sessions
"""

import logging

from fastapi import APIRouter

from .account_routes import router as account_router
from .hierarchy_routes import router as hierarchy_router
from .impersonation_routes import router as impersonation_router
from .permission_routes import router as permission_router
from .plan_routes import router as plan_router
from .user_routes import router as user_router

logger = logging.getLogger(__name__)

admin_router = APIRouter()

admin_router.include_router(hierarchy_router)
admin_router.include_router(user_router)
admin_router.include_router(permission_router)
admin_router.include_router(account_router)
admin_router.include_router(plan_router)
admin_router.include_router(impersonation_router)

logger.debug(f"Admin router assembled with {len(admin_router.routes)} routes")
