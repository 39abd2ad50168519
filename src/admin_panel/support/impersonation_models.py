"""
Impersonation Models

Data models for operator impersonation ("view as user") sessions.

Lifecycle:
    Created -> Active (is_active and now < expires_at) -> Terminated

Terminated is absorbing: it is reached by an explicit revoke or simply
by the clock passing ``expires_at``. Nothing ever reactivates a session.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String

from database.models import Base, id_column, utcnow


class ImpersonationStatus(str, Enum):
    """Derived status of an impersonation session."""
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


# Token prefix, followed by url-safe base64 of the random bytes
TOKEN_PREFIX = "imp_"


class ImpersonationSession(Base):
    """
    Time-boxed grant letting an operator act as a tenant user.

    Ephemeral: nothing else references a session row except audit
    records, which copy its id.
    """
    __tablename__ = "impersonation_sessions"

    session_id = id_column()

    operator_id = Column(String(36), ForeignKey("users.user_id"), nullable=False, index=True)
    target_account_id = Column(String(36), ForeignKey("accounts.account_id"), nullable=False, index=True)
    target_user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)

    token = Column(String(128), nullable=False, unique=True, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    ended_at = Column(DateTime, nullable=True)
    ended_by = Column(String(36), nullable=True)

    __table_args__ = (
        Index("ix_impersonation_operator_active", "operator_id", "is_active"),
    )

    def __repr__(self):
        return (
            f"<ImpersonationSession(id={self.session_id}, operator={self.operator_id}, "
            f"target={self.target_user_id})>"
        )

    def is_valid_at(self, now: datetime) -> bool:
        """Active while not revoked and strictly before expiry."""
        return bool(self.is_active) and now < self.expires_at

    def status_at(self, now: datetime) -> ImpersonationStatus:
        if not self.is_active:
            return ImpersonationStatus.REVOKED
        if now >= self.expires_at:
            return ImpersonationStatus.EXPIRED
        return ImpersonationStatus.ACTIVE

    def remaining_seconds(self, now: datetime) -> int:
        if not self.is_valid_at(now):
            return 0
        return max(0, int((self.expires_at - now).total_seconds()))

    def to_dict(self, now: Optional[datetime] = None, include_token: bool = False) -> Dict[str, Any]:
        """Convert to dictionary for API response."""
        now = now or utcnow()
        data = {
            "session_id": self.session_id,
            "operator_id": self.operator_id,
            "target_account_id": self.target_account_id,
            "target_user_id": self.target_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "status": self.status_at(now).value,
            "remaining_seconds": self.remaining_seconds(now),
        }
        if include_token:
            data["token"] = self.token
        return data


@dataclass
class ImpersonationGrant:
    """Outcome of a successful validate(): the session plus who it resolves to."""
    session: ImpersonationSession
    target_user: Any
    target_account: Any

    @property
    def operator_id(self) -> str:
        return self.session.operator_id
