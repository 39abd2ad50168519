"""
User Model - Principal profile bound to at most one account.

Roles come from rbac.roles:
- operator: platform level, no account
- tenant_admin / tenant_member: bound to exactly one account
"""

from enum import Enum

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, String
)
from sqlalchemy.orm import relationship

from database.models import Base, JSONB, id_column, utcnow
from rbac.capabilities import CapabilitySet, UsageLimits
from rbac.roles import Role


class UserStatus(str, Enum):
    ACTIVE = "active"
    INVITED = "invited"
    SUSPENDED = "suspended"


class User(Base):
    """
    User - Principal known to the engine.

    ``external_id`` is the id issued by the identity provider; the
    PrincipalResolver maps verified identities to users through it.
    """
    __tablename__ = "users"

    user_id = id_column()
    external_id = Column(String(255), nullable=True, unique=True, index=True)

    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(30), nullable=True)

    role = Column(String(20), nullable=False, default=Role.TENANT_MEMBER.value, index=True)
    account_id = Column(
        String(36),
        ForeignKey("accounts.account_id"),
        nullable=True,
        index=True,
    )

    status = Column(String(20), nullable=False, default=UserStatus.INVITED.value, index=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    last_login_at = Column(DateTime, nullable=True)

    invited_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    override = relationship(
        "UserOverride",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_user_account_role", "account_id", "role"),
        CheckConstraint(
            "role IN ('operator', 'tenant_admin', 'tenant_member')",
            name="ck_user_role",
        ),
        CheckConstraint("status IN ('active', 'invited', 'suspended')", name="ck_user_status"),
    )

    def __repr__(self):
        return f"<User(id={self.user_id}, email={self.email}, role={self.role})>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_operator(self) -> bool:
        return self.role == Role.OPERATOR.value

    @property
    def is_tenant_admin(self) -> bool:
        return self.role == Role.TENANT_ADMIN.value

    @property
    def is_suspended(self) -> bool:
        return self.status == UserStatus.SUSPENDED.value

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role,
            "account_id": self.account_id,
            "status": self.status,
            "email_verified": self.email_verified,
            "invited_by": self.invited_by,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "has_override": self.override is not None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class UserOverride(Base):
    """
    User-level override for one account.

    Supersedes the account override and the plan defaults entirely, but
    only when resolving permissions for ``account_id``.
    """
    __tablename__ = "user_overrides"

    override_id = id_column()
    user_id = Column(
        String(36),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    account_id = Column(String(36), ForeignKey("accounts.account_id"), nullable=False, index=True)

    capabilities = Column(JSONB, nullable=False)
    custom_limits = Column(JSONB, nullable=True)

    updated_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="override")

    @property
    def capability_set(self) -> CapabilitySet:
        return CapabilitySet.model_validate(self.capabilities)

    @property
    def limits(self):
        if self.custom_limits is None:
            return None
        return UsageLimits.model_validate(self.custom_limits)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "account_id": self.account_id,
            "capabilities": self.capabilities,
            "custom_limits": self.custom_limits,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
