"""
Admin Panel Module

Tenant administration engine:
- models/: Plans, accounts, users, overrides and the audit log
- services/: Hierarchy, account, user, plan and audit business logic
- support/: Operator impersonation ("view as user") sessions
- operations.py: Named queries and mutations (transaction, principal,
  guard, service, audit)
- api/: FastAPI routes over the operations
"""

__all__ = ["AdminOperations", "admin_router", "create_app"]


def __getattr__(name):
    """
    Lazily expose the operation layer and the HTTP surface.

    Importing admin_panel.models (as database.init_schema does) must not
    pull in the service, rbac and router tree.
    """
    if name == "AdminOperations":
        from .operations import AdminOperations

        return AdminOperations
    if name == "admin_router":
        from .api.router import admin_router

        return admin_router
    if name == "create_app":
        from .api.app import create_app

        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
