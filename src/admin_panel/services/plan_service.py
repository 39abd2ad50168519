"""
Plan Service - Plan catalogue management.

Handles:
- Plan CRUD
- Default capability derivation from plan features
- Reconciliation guard for plans already in use
- Seeding the default catalogue (Basic, Growth, Business)
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from security.api_errors import ConflictError, InvariantViolationError, NotFoundError
from rbac.capabilities import CapabilitySet, PlanFeatures

from ..models import Account, AccountStatus, BillingPeriod, Plan, PlanStatus, PlanType

logger = logging.getLogger(__name__)


# Fields whose change alters what existing accounts are entitled to
_ENTITLEMENT_FIELDS = ("features", "default_capabilities", "type")


def _growth_capabilities() -> Dict[str, Any]:
    doc = CapabilitySet.from_plan_features(GROWTH_FEATURES).to_document()
    doc["reports"]["custom_reports"] = False
    return doc


GROWTH_FEATURES = PlanFeatures(
    max_users=10, max_sub_accounts=0, data_retention=730, api_calls=10000,
    custom_domain=True, custom_branding=True, priority_support=True,
    analytics=True, integrations=True, multi_location=False,
)

DEFAULT_PLANS: List[Dict[str, Any]] = [
    {
        "name": "Basic",
        "type": PlanType.INDIVIDUAL.value,
        "price": Decimal("19"),
        "features": PlanFeatures(
            max_users=3, max_sub_accounts=0, data_retention=365, api_calls=1000,
        ),
        "feature_list": [
            "Up to 3 users",
            "1,000 customers",
            "Basic email support",
            "Standard templates",
            "Basic reporting",
            "1 year data retention",
        ],
    },
    {
        "name": "Growth",
        "type": PlanType.INDIVIDUAL.value,
        "price": Decimal("49"),
        "features": GROWTH_FEATURES,
        "capabilities": _growth_capabilities,
        "feature_list": [
            "Up to 10 users",
            "10,000 customers",
            "Priority email & chat support",
            "Advanced analytics",
            "Custom branding",
            "API access & integrations",
            "Bulk messaging",
            "Data export",
            "2 years data retention",
        ],
    },
    {
        "name": "Business",
        "type": PlanType.FRANCHISE.value,
        "price": Decimal("99"),
        "features": PlanFeatures(
            max_users=50, max_sub_accounts=25, data_retention=1095, api_calls=50000,
            custom_domain=True, custom_branding=True, priority_support=True,
            analytics=True, integrations=True, multi_location=True,
        ),
        "feature_list": [
            "Up to 50 users",
            "Unlimited customers",
            "Phone & dedicated support",
            "Advanced analytics & reporting",
            "Full custom branding",
            "Advanced API & webhooks",
            "Multi-location management",
            "Custom reporting",
            "3 years data retention",
            "Sub-account management",
            "White-label options",
        ],
    },
]


class PlanService:
    """Service for plan catalogue operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_plan(self, plan_id: str) -> Plan:
        plan = self.db.get(Plan, plan_id)
        if plan is None:
            raise NotFoundError("Plan not found", resource="plan", resource_id=plan_id)
        return plan

    def list_plans(self, active_only: bool = False) -> List[Plan]:
        query = self.db.query(Plan)
        if active_only:
            query = query.filter(Plan.status == PlanStatus.ACTIVE.value)
        return query.order_by(Plan.price, Plan.name).all()

    def _ensure_unique_name(self, name: str, exclude_id: Optional[str] = None) -> None:
        query = self.db.query(Plan.plan_id).filter(Plan.name == name)
        if exclude_id:
            query = query.filter(Plan.plan_id != exclude_id)
        if query.first() is not None:
            raise ConflictError("Plan name already exists", field="name", value=name)

    def create_plan(
        self,
        name: str,
        plan_type: str,
        price: Decimal,
        features: Optional[PlanFeatures] = None,
        billing_period: str = BillingPeriod.MONTHLY.value,
        default_capabilities: Optional[CapabilitySet] = None,
        feature_list: Optional[List[str]] = None,
        description: Optional[str] = None,
        status: str = PlanStatus.ACTIVE.value,
    ) -> Plan:
        """
        Create a plan.

        When no capability set is supplied, defaults are derived from the
        feature switches (see CapabilitySet.from_plan_features).
        """
        self._ensure_unique_name(name)
        features = features or PlanFeatures()
        capabilities = default_capabilities or CapabilitySet.from_plan_features(features)

        plan = Plan(
            name=name,
            description=description,
            type=PlanType(plan_type).value,
            price=price,
            billing_period=BillingPeriod(billing_period).value,
            features=features.model_dump(),
            default_capabilities=capabilities.to_document(),
            feature_list=list(feature_list or []),
            status=PlanStatus(status).value,
        )
        self.db.add(plan)
        self.db.flush()

        logger.info(f"Created plan {plan.plan_id} ({name}, {plan.type})")
        return plan

    def active_account_count(self, plan_id: str) -> int:
        return (
            self.db.query(func.count(Account.account_id))
            .filter(Account.plan_id == plan_id, Account.status == AccountStatus.ACTIVE.value)
            .scalar()
        )

    def update_plan(self, plan_id: str, reconcile: bool = False, **updates) -> Plan:
        """
        Update a plan.

        Changing features, default capabilities or type of a plan that active
        accounts reference requires ``reconcile=True``. A feature change
        without explicit capabilities re-derives the default capabilities.

        Raises:
            InvariantViolationError: Entitlement change on an in-use plan
                without reconciliation.
        """
        plan = self.get_plan(plan_id)
        updates = {k: v for k, v in updates.items() if v is not None}

        touches_entitlements = any(field in updates for field in _ENTITLEMENT_FIELDS)
        if touches_entitlements and not reconcile:
            in_use = self.active_account_count(plan_id)
            if in_use:
                raise InvariantViolationError(
                    f"Plan is used by {in_use} active accounts; pass reconcile to change entitlements",
                    plan_id=plan_id,
                    active_accounts=in_use,
                )

        if "name" in updates:
            self._ensure_unique_name(updates["name"], exclude_id=plan_id)
            plan.name = updates["name"]
        if "description" in updates:
            plan.description = updates["description"]
        if "type" in updates:
            plan.type = PlanType(updates["type"]).value
        if "price" in updates:
            plan.price = updates["price"]
        if "billing_period" in updates:
            plan.billing_period = BillingPeriod(updates["billing_period"]).value
        if "feature_list" in updates:
            plan.feature_list = list(updates["feature_list"])
        if "status" in updates:
            plan.status = PlanStatus(updates["status"]).value

        if "features" in updates:
            features: PlanFeatures = updates["features"]
            plan.features = features.model_dump()
            if "default_capabilities" not in updates:
                plan.default_capabilities = CapabilitySet.from_plan_features(features).to_document()
        if "default_capabilities" in updates:
            plan.default_capabilities = updates["default_capabilities"].to_document()

        self.db.flush()
        logger.info(f"Updated plan {plan_id} | fields={sorted(updates)} | reconcile={reconcile}")
        return plan

    def delete_plan(self, plan_id: str) -> None:
        """Delete a plan that no account references."""
        plan = self.get_plan(plan_id)
        in_use = (
            self.db.query(func.count(Account.account_id))
            .filter(Account.plan_id == plan_id)
            .scalar()
        )
        if in_use:
            raise InvariantViolationError(
                f"Cannot delete plan. {in_use} accounts are currently using this plan.",
                plan_id=plan_id,
                accounts=in_use,
            )
        self.db.delete(plan)
        self.db.flush()
        logger.info(f"Deleted plan {plan_id}")

    def create_default_plans(self) -> List[Plan]:
        """Seed Basic, Growth and Business. No-op when any plan exists."""
        existing = self.db.query(func.count(Plan.plan_id)).scalar()
        if existing:
            logger.info(f"Plans already exist ({existing}), skipping default catalogue")
            return []

        created = []
        for entry in DEFAULT_PLANS:
            capabilities = None
            if "capabilities" in entry:
                capabilities = CapabilitySet.model_validate(entry["capabilities"]())
            created.append(self.create_plan(
                name=entry["name"],
                plan_type=entry["type"],
                price=entry["price"],
                features=entry["features"],
                default_capabilities=capabilities,
                feature_list=entry["feature_list"],
            ))
        return created
