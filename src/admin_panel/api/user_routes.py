"""
User Routes - Profiles and tenant user management.

Tenant admins manage users of their own account; operators manage all
of them. Profile bootstrap is the one route that runs before the caller
has a profile.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, EmailStr, Field

from rbac.capabilities import CapabilitySet, UsageLimits
from rbac.dependencies import RequestIdentity, get_identity, get_operations
from rbac.roles import Role

from ..models import UserStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class ProfileRequest(BaseModel):
    email: EmailStr
    first_name: str = Field("", max_length=100)
    last_name: str = Field("", max_length=100)
    phone: Optional[str] = Field(None, max_length=50)


class CreateUserRequest(BaseModel):
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: Role = Role.TENANT_MEMBER
    phone: Optional[str] = Field(None, max_length=50)
    capabilities: Optional[CapabilitySet] = None
    custom_limits: Optional[UsageLimits] = None


class UpdateUserRequest(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    role: Optional[Role] = None


class UserStatusRequest(BaseModel):
    status: UserStatus


class BulkUserStatusRequest(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)
    status: UserStatus


class UserOverrideRequest(BaseModel):
    """Capabilities are always complete; limits may be left to the account."""
    capabilities: CapabilitySet
    custom_limits: Optional[UsageLimits] = None


# =============================================================================
# PROFILE
# =============================================================================

@router.post("/profile")
def ensure_profile(
    body: ProfileRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    """Create or link the caller's profile after identity verification."""
    return ops.ensure_profile(
        identity.principal_id,
        body.email,
        body.first_name,
        body.last_name,
        body.phone,
    )


# =============================================================================
# ACCOUNT USERS
# =============================================================================

@router.get("/accounts/{account_id}/users")
def list_account_users(
    account_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    return ops.list_account_users(identity.principal_id, account_id, identity.session_token)


@router.get("/accounts/{account_id}/users/stats")
def account_user_stats(
    account_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, int]:
    return ops.account_user_stats(identity.principal_id, account_id, identity.session_token)


@router.post("/accounts/{account_id}/users", status_code=status.HTTP_201_CREATED)
def create_user(
    account_id: str,
    body: CreateUserRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    """Invite a user into the account."""
    return ops.create_user(
        identity.principal_id,
        account_id,
        identity.session_token,
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role.value,
        phone=body.phone,
        capabilities=body.capabilities,
        custom_limits=body.custom_limits,
    )


# =============================================================================
# USERS
# =============================================================================

@router.get("/users")
def search_users(
    q: Optional[str] = Query(None, description="Matches email, first or last name"),
    role: Optional[Role] = None,
    status_filter: Optional[UserStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    return ops.search_users(
        identity.principal_id,
        q,
        role.value if role else None,
        status_filter.value if status_filter else None,
        limit,
        identity.session_token,
    )


@router.post("/users/bulk-status")
def bulk_set_user_status(
    body: BulkUserStatusRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.bulk_set_user_status(
        identity.principal_id, body.user_ids, body.status.value, identity.session_token
    )


@router.patch("/users/{user_id}")
def update_user(
    user_id: str,
    body: UpdateUserRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    fields = body.model_dump(exclude_none=True)
    if body.role is not None:
        fields["role"] = body.role.value
    return ops.update_user(identity.principal_id, user_id, identity.session_token, **fields)


@router.put("/users/{user_id}/status")
def set_user_status(
    user_id: str,
    body: UserStatusRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.set_user_status(identity.principal_id, user_id, body.status.value, identity.session_token)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Response:
    ops.delete_user(identity.principal_id, user_id, identity.session_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/users/{user_id}/override")
def set_user_override(
    user_id: str,
    body: UserOverrideRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.set_user_override(
        identity.principal_id,
        user_id,
        body.capabilities,
        body.custom_limits,
        session_token=identity.session_token,
    )


@router.delete("/users/{user_id}/override")
def clear_user_override(
    user_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return {"cleared": ops.clear_user_override(identity.principal_id, user_id, identity.session_token)}
