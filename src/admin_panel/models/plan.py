"""
Plan Model - Capability template and numeric ceilings for accounts.

A plan is immutable once an active account references it, unless the
caller explicitly asks to reconcile (see PlanService.update_plan).
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Numeric, String, Text

from database.models import Base, JSONB, id_column, utcnow
from rbac.capabilities import CapabilitySet, PlanFeatures


class PlanType(str, Enum):
    """Which kind of account a plan can be assigned to."""
    INDIVIDUAL = "individual"
    FRANCHISE = "franchise"


class BillingPeriod(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


class PlanStatus(str, Enum):
    """Lifecycle of a plan in the catalogue."""
    ACTIVE = "active"
    LEGACY = "legacy"
    DISCONTINUED = "discontinued"


class Plan(Base):
    """
    Plan - Billing plan that seeds an account's capabilities and limits.

    ``features`` holds the PlanFeatures document (ceilings and feature
    switches); ``default_capabilities`` holds a complete CapabilitySet
    document; ``feature_list`` is a list of marketing bullet strings.
    """
    __tablename__ = "plans"

    plan_id = id_column()

    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    billing_period = Column(String(20), nullable=False, default=BillingPeriod.MONTHLY.value)

    features = Column(JSONB, nullable=False, default=dict)
    default_capabilities = Column(JSONB, nullable=False)
    feature_list = Column(JSONB, nullable=False, default=list)

    status = Column(String(20), nullable=False, default=PlanStatus.ACTIVE.value, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_plan_type_status", "type", "status"),
        CheckConstraint("type IN ('individual', 'franchise')", name="ck_plan_type"),
        CheckConstraint("billing_period IN ('monthly', 'annual')", name="ck_plan_billing_period"),
        CheckConstraint("status IN ('active', 'legacy', 'discontinued')", name="ck_plan_status"),
    )

    def __repr__(self):
        return f"<Plan(id={self.plan_id}, name={self.name}, type={self.type})>"

    @property
    def plan_features(self) -> PlanFeatures:
        return PlanFeatures.model_validate(self.features or {})

    @property
    def capabilities(self) -> CapabilitySet:
        return CapabilitySet.model_validate(self.default_capabilities)

    @property
    def is_active(self) -> bool:
        return self.status == PlanStatus.ACTIVE.value

    def to_dict(self) -> dict:
        return {
            "plan_id": self.plan_id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "price": float(self.price or 0),
            "billing_period": self.billing_period,
            "features": dict(self.features or {}),
            "default_capabilities": self.default_capabilities,
            "feature_list": list(self.feature_list or []),
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
