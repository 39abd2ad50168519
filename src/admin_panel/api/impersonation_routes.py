"""
Impersonation Routes - Operator "view as user" sessions.

The session token is returned exactly once, on creation. Acting as the
target user on any other route, and inspecting the session here, takes
it as the ordinary optional ``session_token`` query argument. Query
strings are written to access logs (uvicorn logs the full path), so those
logs carry live tokens until the session ends; deployments that keep
access logs should strip the query. Ending a session takes the token in
the request body, which access logs do not record.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from rbac.dependencies import RequestIdentity, get_identity, get_operations
from security.api_errors import InvariantViolationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/impersonation", tags=["Impersonation"])


class StartImpersonationRequest(BaseModel):
    target_account_id: str
    target_user_id: str
    ttl_seconds: Optional[int] = Field(None, description="Clamped to the configured maximum")


class EndImpersonationRequest(BaseModel):
    session_token: str = Field(..., min_length=1)


def _require_token(identity: RequestIdentity) -> str:
    if not identity.session_token:
        raise InvariantViolationError("Impersonation session_token is required", field="session_token")
    return identity.session_token


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
def start_impersonation(
    body: StartImpersonationRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.start_impersonation(
        identity.principal_id,
        body.target_account_id,
        body.target_user_id,
        body.ttl_seconds,
    )


@router.get("/sessions")
def list_active_sessions(
    mine_only: bool = Query(False, description="Only sessions started by the caller"),
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    return ops.list_active_impersonations(identity.principal_id, mine_only)


@router.get("/sessions/current")
def get_current_session(
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    """
    Session info for the supplied ``session_token``.

    An expired, revoked or unknown token is not an error: the response
    reports ``active: false``.
    """
    session = ops.get_impersonation(identity.principal_id, _require_token(identity))
    return {"active": session is not None, "session": session}


@router.delete("/sessions/current")
def end_current_session(
    body: EndImpersonationRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    """End the session whose token is in the body. Repeating the call is harmless."""
    session = ops.end_impersonation(identity.principal_id, body.session_token)
    return {"ended": session is not None, "session": session}


@router.get("/accounts/{account_id}/sessions")
def list_account_sessions(
    account_id: str,
    include_ended: bool = Query(False),
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    return ops.list_account_impersonations(identity.principal_id, account_id, include_ended)
