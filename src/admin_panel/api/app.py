"""
Application factory for the tenant administration API.

Usage:
    from admin_panel.api.app import create_app

    app = create_app()                      # engine from DB_* settings
    app = create_app(AdminOperations(...))  # explicit wiring (tests)
"""

import logging
import uuid
from typing import Any, Callable, Optional

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from config.settings import Settings, get_settings
from database.connection import close_sync_engine
from security.api_errors import register_exception_handlers
from rbac.dependencies import PRINCIPAL_HEADER
from services.logging_config import configure_logging, principal_id_var, request_id_var

from ..operations import AdminOperations
from .router import admin_router

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
API_PREFIX = "/api/v1"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Binds the request identity for logging.

    Takes X-Request-ID from the request (or generates one) and echoes it
    back, and binds the X-Principal-Id header as the logged principal.
    Both are reset once the response is produced.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request_token = request_id_var.set(request_id)
        principal_token = principal_id_var.set(request.headers.get(PRINCIPAL_HEADER) or None)
        try:
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            principal_id_var.reset(principal_token)
            request_id_var.reset(request_token)


def create_app(
    operations: Optional[AdminOperations] = None,
    settings: Optional[Settings] = None,
    init_logging: bool = True,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        operations: Operation layer to serve; built from settings when None.
        settings: Engine settings; loaded from the environment when None.
        init_logging: Configure root logging from settings.
    """
    settings = settings or get_settings()
    if init_logging:
        configure_logging(level=settings.log_level, json_output=settings.log_json)

    app = FastAPI(title="Tenant Administration API", version="1.0.0")
    if operations is None:
        operations = AdminOperations(settings=settings)

        @app.on_event("shutdown")
        def shutdown_database() -> None:
            """Close the process-wide engine this app created."""
            close_sync_engine()
            logger.info("Database connections closed")

    app.state.operations = operations

    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)
    app.include_router(admin_router, prefix=API_PREFIX)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    logger.info(f"Tenant administration API ready | environment={settings.environment}")
    return app
