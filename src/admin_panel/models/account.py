"""
Account Model - Tenant node of the two-level hierarchy.

    franchise
    └── individual (sub-account, parent_id -> franchise)

An account with a parent is always an individual whose parent is a
franchise; franchises never have a parent.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
)
from sqlalchemy.orm import relationship

from database.models import Base, JSONB, id_column, utcnow
from rbac.capabilities import CapabilitySet, UsageLimits


class AccountType(str, Enum):
    FRANCHISE = "franchise"
    INDIVIDUAL = "individual"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING = "pending"


class BillingStatus(str, Enum):
    """Plan/billing state of an account (``plan_status`` column)."""
    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


# Billing states that tie an account to a live plan and block deletion
LIVE_BILLING_STATES = frozenset({BillingStatus.ACTIVE.value, BillingStatus.PAST_DUE.value})


class Account(Base):
    """
    Account - Tenant entity.

    Each account has:
    - A type (franchise or individual) and optional franchise parent
    - A plan and its billing/trial state
    - Per-account numeric limits
    - At most one AccountOverride
    """
    __tablename__ = "accounts"

    account_id = id_column()

    type = Column(String(20), nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)
    slug = Column(String(255), nullable=False, unique=True, index=True)

    parent_id = Column(
        String(36),
        ForeignKey("accounts.account_id"),
        nullable=True,
        index=True,
    )

    # Plan & billing
    plan_id = Column(String(36), ForeignKey("plans.plan_id"), nullable=False, index=True)
    plan_status = Column(String(20), nullable=False, default=BillingStatus.TRIAL.value, index=True)
    trial_ends_at = Column(DateTime, nullable=True)

    status = Column(String(20), nullable=False, default=AccountStatus.ACTIVE.value, index=True)

    # Limits (cached from plan at creation)
    max_users = Column(Integer, nullable=False, default=5)
    max_sub_accounts = Column(Integer, nullable=False, default=0)

    # Primary contact
    contact_name = Column(String(200), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(30), nullable=True)

    created_by = Column(String(36), nullable=True, comment="User who created the account")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    plan = relationship("Plan", lazy="joined")
    override = relationship(
        "AccountOverride",
        back_populates="account",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_account_type_status", "type", "status"),
        CheckConstraint("type IN ('franchise', 'individual')", name="ck_account_type"),
        CheckConstraint(
            "plan_status IN ('trial', 'active', 'past_due', 'cancelled')",
            name="ck_account_plan_status",
        ),
        CheckConstraint("status IN ('active', 'suspended', 'pending')", name="ck_account_status"),
        CheckConstraint("parent_id IS NULL OR type = 'individual'", name="ck_account_child_type"),
    )

    def __repr__(self):
        return f"<Account(id={self.account_id}, slug={self.slug}, type={self.type})>"

    @property
    def is_franchise(self) -> bool:
        return self.type == AccountType.FRANCHISE.value

    @property
    def is_sub_account(self) -> bool:
        return self.parent_id is not None

    @property
    def has_live_billing(self) -> bool:
        return self.plan_status in LIVE_BILLING_STATES

    def trial_days_remaining(self, now: Optional[datetime] = None) -> Optional[int]:
        """Whole days left in the trial, None when not on trial."""
        if self.plan_status != BillingStatus.TRIAL.value or self.trial_ends_at is None:
            return None
        now = now or utcnow()
        seconds = (self.trial_ends_at - now).total_seconds()
        return max(0, int(-(-seconds // 86400)))

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "type": self.type,
            "name": self.name,
            "slug": self.slug,
            "parent_id": self.parent_id,
            "plan_id": self.plan_id,
            "plan_name": self.plan.name if self.plan else None,
            "plan_status": self.plan_status,
            "trial_ends_at": self.trial_ends_at.isoformat() if self.trial_ends_at else None,
            "status": self.status,
            "max_users": self.max_users,
            "max_sub_accounts": self.max_sub_accounts,
            "contact": {
                "name": self.contact_name,
                "email": self.contact_email,
                "phone": self.contact_phone,
            },
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AccountOverride(Base):
    """
    Account-level override of plan defaults.

    Holds a complete capability document and complete custom limits;
    when present it supersedes the plan entirely.
    """
    __tablename__ = "account_overrides"

    override_id = id_column()
    account_id = Column(
        String(36),
        ForeignKey("accounts.account_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    capabilities = Column(JSONB, nullable=False)
    custom_limits = Column(JSONB, nullable=False)
    ui_restrictions = Column(JSONB, nullable=False, default=dict)

    updated_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    account = relationship("Account", back_populates="override")

    @property
    def capability_set(self) -> CapabilitySet:
        return CapabilitySet.model_validate(self.capabilities)

    @property
    def limits(self) -> UsageLimits:
        return UsageLimits.model_validate(self.custom_limits)

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "capabilities": self.capabilities,
            "custom_limits": self.custom_limits,
            "ui_restrictions": self.ui_restrictions or {},
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
