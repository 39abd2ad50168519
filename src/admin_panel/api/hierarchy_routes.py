"""
Hierarchy Routes - Franchise / sub-account tree management.

Provides:
- Franchise listings and the full tree of one franchise
- Attach, detach and transfer of sub-accounts (single and bulk)
- Sub-account creation directly under a franchise

Attach, transfer and bulk attach are operator-only; a franchise's own
tenant admin may read its tree, detach sub-accounts and create new ones.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from rbac.dependencies import RequestIdentity, get_identity, get_operations

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Hierarchy"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class ParentRequest(BaseModel):
    """Target franchise for attach or transfer."""
    franchise_id: str = Field(..., min_length=1)


class BulkAttachRequest(BaseModel):
    account_ids: List[str] = Field(..., min_length=1)


class CreateSubAccountRequest(BaseModel):
    """New individual account created under a franchise."""
    name: str = Field(..., min_length=1, max_length=255)
    plan_id: str
    admin_email: EmailStr
    admin_first_name: str = Field(..., min_length=1, max_length=100)
    admin_last_name: str = Field(..., min_length=1, max_length=100)
    admin_phone: Optional[str] = Field(None, max_length=50)
    slug: Optional[str] = Field(None, max_length=100)


# =============================================================================
# QUERIES
# =============================================================================

@router.get("/franchises")
def list_franchises(
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    """Every franchise with sub-account and user counts. Operators only."""
    return ops.list_franchises(identity.principal_id, identity.session_token)


@router.get("/franchises/{franchise_id}/hierarchy")
def get_hierarchy(
    franchise_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    """The franchise, its sub-accounts and aggregate user counts."""
    return ops.get_hierarchy(identity.principal_id, franchise_id, identity.session_token)


@router.get("/franchises/{franchise_id}/sub-accounts")
def list_sub_accounts(
    franchise_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    return ops.list_sub_accounts(identity.principal_id, franchise_id, identity.session_token)


@router.get("/hierarchy/available-accounts")
def list_available_accounts(
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    """Standalone individual accounts that could be attached to a franchise."""
    return ops.list_available_accounts(identity.principal_id, identity.session_token)


@router.get("/accounts/{account_id}/path")
def get_path(
    account_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    """Root-first chain of accounts ending at ``account_id``."""
    return ops.get_path(identity.principal_id, account_id, identity.session_token)


# =============================================================================
# MUTATIONS
# =============================================================================

@router.post("/accounts/{account_id}/parent")
def attach(
    account_id: str,
    body: ParentRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.attach(identity.principal_id, account_id, body.franchise_id, identity.session_token)


@router.put("/accounts/{account_id}/parent")
def transfer(
    account_id: str,
    body: ParentRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.transfer(identity.principal_id, account_id, body.franchise_id, identity.session_token)


@router.delete("/accounts/{account_id}/parent")
def detach(
    account_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.detach(identity.principal_id, account_id, identity.session_token)


@router.post("/franchises/{franchise_id}/sub-accounts/bulk-attach")
def bulk_attach(
    franchise_id: str,
    body: BulkAttachRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    """
    Attach many accounts at once.

    Best effort: each account succeeds or fails independently and the
    response lists both sides.
    """
    return ops.bulk_attach(identity.principal_id, body.account_ids, franchise_id, identity.session_token)


@router.post("/franchises/{franchise_id}/sub-accounts", status_code=status.HTTP_201_CREATED)
def create_sub_account(
    franchise_id: str,
    body: CreateSubAccountRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.create_sub_account(
        identity.principal_id,
        franchise_id,
        identity.session_token,
        **body.model_dump(),
    )
