"""
Account Routes - Tenant account administration.

Provides:
- Account creation (with its invited tenant admin) and listing
- Plan assignment, status, trial and billing-state changes
- Account-level permission overrides
- Deletion guarded by sub-account and billing rules
- Per-account audit trail

Everything except reading a single account and its audit trail is
restricted to platform operators.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, EmailStr, Field

from rbac.capabilities import CapabilitySet, UIRestrictions, UsageLimits
from rbac.dependencies import RequestIdentity, get_identity, get_operations

from ..models import AccountStatus, AccountType, BillingStatus
from ..services import TrialAction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["Accounts"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class CreateAccountRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    account_type: AccountType
    plan_id: str
    admin_email: EmailStr
    admin_first_name: str = Field(..., min_length=1, max_length=100)
    admin_last_name: str = Field(..., min_length=1, max_length=100)
    admin_phone: Optional[str] = Field(None, max_length=50)
    parent_id: Optional[str] = None
    slug: Optional[str] = Field(None, max_length=100)
    trial_days: Optional[int] = Field(None, ge=0)


class UpdateAccountRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_name: Optional[str] = Field(None, max_length=255)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)


class AssignPlanRequest(BaseModel):
    plan_id: str


class AccountStatusRequest(BaseModel):
    status: AccountStatus


class TrialRequest(BaseModel):
    """
    Trial adjustment.

    ``extension_days`` applies to ``extend``; ``trial_ends_at`` to
    ``set_custom_end``.
    """
    action: TrialAction
    extension_days: Optional[int] = Field(None, ge=1)
    trial_ends_at: Optional[datetime] = None


class BillingStatusRequest(BaseModel):
    plan_status: BillingStatus


class AccountOverrideRequest(BaseModel):
    """A complete override: the whole capability set and all limits."""
    capabilities: CapabilitySet
    custom_limits: UsageLimits
    ui_restrictions: Optional[UIRestrictions] = None


# =============================================================================
# QUERIES
# =============================================================================

@router.get("")
def list_accounts(
    account_type: Optional[AccountType] = Query(None, alias="type"),
    status_filter: Optional[AccountStatus] = Query(None, alias="status"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    return ops.list_accounts(
        identity.principal_id,
        account_type.value if account_type else None,
        status_filter.value if status_filter else None,
        limit,
        identity.session_token,
    )


@router.get("/stats")
def platform_stats(
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    """Platform-wide account, trial, user and impersonation counts."""
    return ops.platform_stats(identity.principal_id, identity.session_token)


@router.get("/{account_id}")
def get_account(
    account_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.get_account(identity.principal_id, account_id, identity.session_token)


@router.get("/{account_id}/audit-log")
def list_audit_log(
    account_id: str,
    limit: int = Query(100, ge=1, le=1000),
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    return ops.list_audit_logs(identity.principal_id, account_id, limit, identity.session_token)


# =============================================================================
# MUTATIONS
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    body: CreateAccountRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    fields = body.model_dump()
    fields["account_type"] = body.account_type.value
    return ops.create_account(identity.principal_id, identity.session_token, **fields)


@router.patch("/{account_id}")
def update_account(
    account_id: str,
    body: UpdateAccountRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.update_account(
        identity.principal_id, account_id, identity.session_token,
        **body.model_dump(exclude_none=True),
    )


@router.put("/{account_id}/plan")
def assign_plan(
    account_id: str,
    body: AssignPlanRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.assign_plan(identity.principal_id, account_id, body.plan_id, identity.session_token)


@router.put("/{account_id}/status")
def set_account_status(
    account_id: str,
    body: AccountStatusRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.set_account_status(identity.principal_id, account_id, body.status.value, identity.session_token)


@router.post("/{account_id}/trial")
def update_trial(
    account_id: str,
    body: TrialRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    trial_ends_at = body.trial_ends_at
    if trial_ends_at is not None and trial_ends_at.tzinfo is not None:
        # stored timestamps are naive UTC
        trial_ends_at = trial_ends_at.astimezone(timezone.utc).replace(tzinfo=None)
    return ops.update_trial(
        identity.principal_id,
        account_id,
        body.action.value,
        extension_days=body.extension_days,
        trial_ends_at=trial_ends_at,
        session_token=identity.session_token,
    )


@router.put("/{account_id}/billing-status")
def set_billing_status(
    account_id: str,
    body: BillingStatusRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.set_billing_status(
        identity.principal_id, account_id, body.plan_status.value, identity.session_token
    )


@router.put("/{account_id}/override")
def set_account_override(
    account_id: str,
    body: AccountOverrideRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.set_account_override(
        identity.principal_id,
        account_id,
        body.capabilities,
        body.custom_limits,
        body.ui_restrictions,
        session_token=identity.session_token,
    )


@router.delete("/{account_id}/override")
def clear_account_override(
    account_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    cleared = ops.clear_account_override(identity.principal_id, account_id, identity.session_token)
    return {"cleared": cleared}


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(
    account_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Response:
    ops.delete_account(identity.principal_id, account_id, identity.session_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
