"""
Plan Routes - Subscription plan catalogue.

Any authenticated principal may read the catalogue; changes are
operator-only.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from rbac.capabilities import CapabilitySet, PlanFeatures
from rbac.dependencies import RequestIdentity, get_identity, get_operations

from ..models import BillingPeriod, PlanStatus, PlanType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/plans", tags=["Plans"])


class CreatePlanRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: PlanType
    price: Decimal = Field(..., ge=0)
    billing_period: BillingPeriod = BillingPeriod.MONTHLY
    features: PlanFeatures = Field(default_factory=PlanFeatures)
    default_capabilities: Optional[CapabilitySet] = Field(
        None, description="Derived from features when omitted"
    )
    feature_list: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    status: PlanStatus = PlanStatus.ACTIVE


class UpdatePlanRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    type: Optional[PlanType] = None
    price: Optional[Decimal] = Field(None, ge=0)
    billing_period: Optional[BillingPeriod] = None
    features: Optional[PlanFeatures] = None
    default_capabilities: Optional[CapabilitySet] = None
    feature_list: Optional[List[str]] = None
    status: Optional[PlanStatus] = None
    reconcile: bool = Field(
        False, description="Required to change entitlements of a plan active accounts use"
    )


@router.get("")
def list_plans(
    active_only: bool = Query(False),
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    return ops.list_plans(identity.principal_id, active_only, identity.session_token)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_plan(
    body: CreatePlanRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    return ops.create_plan(
        identity.principal_id,
        body.name,
        body.type.value,
        body.price,
        body.features,
        session_token=identity.session_token,
        billing_period=body.billing_period.value,
        default_capabilities=body.default_capabilities,
        feature_list=body.feature_list,
        description=body.description,
        status=body.status.value,
    )


@router.post("/defaults")
def create_default_plans(
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> List[Dict[str, Any]]:
    """Seed the default catalogue when no plan exists yet."""
    return ops.create_default_plans(identity.principal_id, identity.session_token)


@router.patch("/{plan_id}")
def update_plan(
    plan_id: str,
    body: UpdatePlanRequest,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Dict[str, Any]:
    updates = {
        "name": body.name,
        "description": body.description,
        "type": body.type.value if body.type else None,
        "price": body.price,
        "billing_period": body.billing_period.value if body.billing_period else None,
        "features": body.features,
        "default_capabilities": body.default_capabilities,
        "feature_list": body.feature_list,
        "status": body.status.value if body.status else None,
    }
    return ops.update_plan(
        identity.principal_id, plan_id, reconcile=body.reconcile, session_token=identity.session_token, **updates
    )


@router.delete("/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_plan(
    plan_id: str,
    identity: RequestIdentity = Depends(get_identity),
    ops=Depends(get_operations),
) -> Response:
    ops.delete_plan(identity.principal_id, plan_id, identity.session_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
