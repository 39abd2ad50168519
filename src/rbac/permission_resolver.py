"""
Permission Resolver

Computes the effective capability set and usage limits for a
(principal, account) pair.

Precedence, highest first:

    1. UserOverride    of the principal, when it applies to this account
    2. AccountOverride of the account
    3. Plan            default capabilities of the account's plan

Each tier supplies its entire capability object; tiers are never merged
field by field. Limits walk the same tiers, ending in a fallback table
derived from the plan. Operators always resolve to an unrestricted set.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from sqlalchemy.orm import Session

from admin_panel.models import Account, Plan, User, UserOverride
from config.settings import Settings, get_settings
from security.api_errors import NotFoundError, UnauthorizedError

from .capabilities import CapabilitySet, UsageLimits
from .context import AuthContext

logger = logging.getLogger(__name__)


class OverrideTier(str, Enum):
    """Where a resolved capability set or limit table came from."""
    OPERATOR = "operator"
    USER = "user"
    ACCOUNT = "account"
    PLAN = "plan"


@dataclass(frozen=True)
class ResolvedPermissions:
    capabilities: CapabilitySet
    limits: UsageLimits
    capability_tier: OverrideTier
    limits_tier: OverrideTier

    def allows(self, capability: str) -> bool:
        return self.capabilities.allows(capability)

    def to_dict(self) -> dict:
        return {
            "capabilities": self.capabilities.to_document(),
            "limits": self.limits.model_dump(),
            "capability_tier": self.capability_tier.value,
            "limits_tier": self.limits_tier.value,
        }


class PermissionResolver:
    """Three-tier capability and limit resolution."""

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def fallback_limits(self, plan: Plan) -> UsageLimits:
        """Limits used when neither override tier supplies custom limits."""
        features = plan.plan_features
        return UsageLimits(
            max_customers=self.settings.fallback_max_customers,
            max_monthly_emails=self.settings.fallback_max_monthly_emails,
            max_users=features.max_users or self.settings.fallback_max_users,
            data_retention_days=features.data_retention or self.settings.fallback_data_retention_days,
        )

    def resolve(
        self,
        session: Session,
        principal: Union[AuthContext, User],
        account: Union[Account, str, None],
    ) -> ResolvedPermissions:
        """
        Resolve capabilities and limits.

        Args:
            session: Open database session.
            principal: AuthContext (effective principal) or User row.
            account: Account row or account id.

        Raises:
            NotFoundError: Account (or its plan) is absent and the principal
                is not an operator.
        """
        is_operator = principal.is_operator
        if is_operator:
            return ResolvedPermissions(
                capabilities=CapabilitySet.unrestricted(),
                limits=UsageLimits.unlimited(),
                capability_tier=OverrideTier.OPERATOR,
                limits_tier=OverrideTier.OPERATOR,
            )

        if isinstance(account, str):
            account_id = account
            account = session.get(Account, account_id)
        else:
            account_id = account.account_id if account is not None else None

        if account is None:
            raise NotFoundError("Account not found", resource="account", resource_id=account_id)

        plan = account.plan or session.get(Plan, account.plan_id)
        if plan is None:
            raise NotFoundError("Plan not found", resource="plan", resource_id=account.plan_id)

        user_override = self._user_override(session, principal.user_id, account.account_id)
        account_override = account.override

        if user_override is not None:
            capabilities = user_override.capability_set
            capability_tier = OverrideTier.USER
        elif account_override is not None:
            capabilities = account_override.capability_set
            capability_tier = OverrideTier.ACCOUNT
        else:
            capabilities = plan.capabilities
            capability_tier = OverrideTier.PLAN

        if user_override is not None and user_override.custom_limits is not None:
            limits = user_override.limits
            limits_tier = OverrideTier.USER
        elif account_override is not None:
            limits = account_override.limits
            limits_tier = OverrideTier.ACCOUNT
        else:
            limits = self.fallback_limits(plan)
            limits_tier = OverrideTier.PLAN

        logger.debug(
            f"Resolved permissions | user={principal.user_id} | account={account.account_id} | "
            f"capabilities={capability_tier.value} | limits={limits_tier.value}"
        )

        return ResolvedPermissions(
            capabilities=capabilities,
            limits=limits,
            capability_tier=capability_tier,
            limits_tier=limits_tier,
        )

    def check(self, session: Session, principal, account, capability: str) -> bool:
        """Whether the principal holds ``capability`` ("category.action") in the account."""
        return self.resolve(session, principal, account).allows(capability)

    def require(self, session: Session, principal, account, capability: str) -> ResolvedPermissions:
        """
        Like check(), but raises instead of returning False.

        Raises:
            UnauthorizedError: Capability not granted.
        """
        resolved = self.resolve(session, principal, account)
        if not resolved.allows(capability):
            raise UnauthorizedError(
                f"Missing capability: {capability}",
                capability=capability,
                tier=resolved.capability_tier.value,
            )
        return resolved

    @staticmethod
    def _user_override(session: Session, user_id: str, account_id: str) -> Optional[UserOverride]:
        return (
            session.query(UserOverride)
            .filter(UserOverride.user_id == user_id, UserOverride.account_id == account_id)
            .first()
        )
