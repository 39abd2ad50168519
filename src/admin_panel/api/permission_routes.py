"""
Permission Routes - Effective capabilities and limits.

Resolution order is user override, then account override, then the
plan. The response names the tier each part came from.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from rbac.dependencies import RequestIdentity, get_identity, get_operations

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts/{account_id}/permissions", tags=["Permissions"])


@router.get("")
def resolve_permissions(
    account_id: str,
    user_id: Optional[str] = Query(None, description="Resolve for another user (tenant admin or operator)"),
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.resolve_permissions(identity.principal_id, account_id, user_id, identity.session_token)


@router.get("/check")
def check_capability(
    account_id: str,
    capability: str = Query(..., description='"category.action", e.g. "customers.delete"'),
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    allowed = ops.check_capability(identity.principal_id, account_id, capability, identity.session_token)
    return {"capability": capability, "allowed": allowed}
