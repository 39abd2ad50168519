"""
Audit Log Model - Append-only record of administrative mutations.

The true principal (``actor_id``) and the effective principal under
impersonation (``effective_user_id``) live in separate columns and are
never merged.
"""

from sqlalchemy import Column, DateTime, Index, String

from database.models import Base, JSONB, id_column, utcnow


class AuditLog(Base):
    __tablename__ = "audit_logs"

    log_id = id_column()

    actor_id = Column(String(36), nullable=False, index=True, comment="Real principal")
    effective_user_id = Column(String(36), nullable=True, comment="Impersonated user, if any")
    impersonation_session_id = Column(String(36), nullable=True, index=True)

    account_id = Column(String(36), nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    resource = Column(String(50), nullable=False)
    resource_id = Column(String(36), nullable=True)
    details = Column(JSONB, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_audit_account_created", "account_id", "created_at"),
    )

    @property
    def via_impersonation(self) -> bool:
        return self.impersonation_session_id is not None

    def to_dict(self) -> dict:
        return {
            "log_id": self.log_id,
            "actor_id": self.actor_id,
            "effective_user_id": self.effective_user_id,
            "impersonation_session_id": self.impersonation_session_id,
            "via_impersonation": self.via_impersonation,
            "account_id": self.account_id,
            "action": self.action,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "details": self.details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
