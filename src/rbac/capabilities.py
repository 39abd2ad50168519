"""
Capability Sets and Usage Limits

A capability set is a fixed tagged structure: five categories, each a
group of named boolean actions. Every field is required and unknown keys
are rejected, so a tier that supplies capabilities always supplies the
complete object.

    customers       view, create, edit, delete, export, import
    communications  send_email, send_sms, bulk_message, templates
    reports         basic, advanced, export, custom_reports
    settings        billing_view, billing_edit, user_management, integrations
    features        api_access, webhooks, custom_branding, multi_location

Capabilities are addressed as "category.action", e.g. "customers.delete".

Usage:
    caps = CapabilitySet.model_validate(plan.default_capabilities)
    if caps.allows("reports.export"):
        ...
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Sentinel used for "no practical limit" (operator view of any tenant)
UNLIMITED = 999999


class _CapabilityGroup(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    def action_names(self) -> List[str]:
        """External action names in declaration order ("import", not "import_")."""
        return [info.alias or name for name, info in type(self).model_fields.items()]

    def get_action(self, action: str) -> bool:
        for name, info in type(self).model_fields.items():
            if action in (name, info.alias):
                return getattr(self, name)
        raise KeyError(action)


class CustomerCapabilities(_CapabilityGroup):
    view: bool
    create: bool
    edit: bool
    delete: bool
    export: bool
    import_: bool = Field(alias="import")


class CommunicationCapabilities(_CapabilityGroup):
    send_email: bool
    send_sms: bool
    bulk_message: bool
    templates: bool


class ReportCapabilities(_CapabilityGroup):
    basic: bool
    advanced: bool
    export: bool
    custom_reports: bool


class SettingsCapabilities(_CapabilityGroup):
    billing_view: bool
    billing_edit: bool
    user_management: bool
    integrations: bool


class FeatureCapabilities(_CapabilityGroup):
    api_access: bool
    webhooks: bool
    custom_branding: bool
    multi_location: bool


class CapabilitySet(BaseModel):
    """The complete set of allowed actions for one principal in one tenant."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    customers: CustomerCapabilities
    communications: CommunicationCapabilities
    reports: ReportCapabilities
    settings: SettingsCapabilities
    features: FeatureCapabilities

    @classmethod
    def categories(cls) -> Tuple[str, ...]:
        return tuple(cls.model_fields)

    @classmethod
    def uniform(cls, value: bool) -> "CapabilitySet":
        """Every action set to the same value."""
        data = {}
        for category, info in cls.model_fields.items():
            group_cls = info.annotation
            data[category] = {
                (field.alias or name): value
                for name, field in group_cls.model_fields.items()
            }
        return cls.model_validate(data)

    @classmethod
    def unrestricted(cls) -> "CapabilitySet":
        return cls.uniform(True)

    @classmethod
    def denied(cls) -> "CapabilitySet":
        return cls.uniform(False)

    @classmethod
    def from_plan_features(cls, features: "PlanFeatures") -> "CapabilitySet":
        """
        Derive a plan's default capabilities from its feature flags.

        Core actions (viewing, creating and editing customers, email,
        templates, basic reports, billing view) are always on; everything
        else follows the feature that unlocks it.
        """
        analytics = features.analytics
        integrations = features.integrations
        priority = features.priority_support

        return cls.model_validate({
            "customers": {
                "view": True,
                "create": True,
                "edit": True,
                "delete": analytics,
                "export": analytics,
                "import": integrations,
            },
            "communications": {
                "send_email": True,
                "send_sms": priority,
                "bulk_message": analytics,
                "templates": True,
            },
            "reports": {
                "basic": True,
                "advanced": analytics,
                "export": analytics,
                "custom_reports": analytics,
            },
            "settings": {
                "billing_view": True,
                "billing_edit": priority,
                "user_management": (features.max_users or 1) > 1,
                "integrations": integrations,
            },
            "features": {
                "api_access": integrations,
                "webhooks": integrations,
                "custom_branding": features.custom_branding,
                "multi_location": features.multi_location,
            },
        })

    def allows(self, capability: str) -> bool:
        """
        Check one capability addressed as "category.action".

        Raises:
            KeyError: If the category or action does not exist.
        """
        category, _, action = capability.partition(".")
        if category not in type(self).model_fields or not action:
            raise KeyError(capability)
        group: _CapabilityGroup = getattr(self, category)
        return group.get_action(action)

    def granted(self) -> List[str]:
        """All capabilities that are switched on, as "category.action" strings."""
        result = []
        for category in self.categories():
            group: _CapabilityGroup = getattr(self, category)
            result.extend(
                f"{category}.{action}"
                for action in group.action_names()
                if group.get_action(action)
            )
        return result

    def to_document(self) -> Dict[str, Dict[str, bool]]:
        """JSON document form, as stored on plans and overrides."""
        return self.model_dump(by_alias=True)


class UsageLimits(BaseModel):
    """Numeric ceilings for one tenant. Supplied whole, like capabilities."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_customers: int = Field(ge=0)
    max_monthly_emails: int = Field(ge=0)
    max_users: int = Field(ge=0)
    data_retention_days: int = Field(ge=0)

    @classmethod
    def unlimited(cls) -> "UsageLimits":
        return cls(
            max_customers=UNLIMITED,
            max_monthly_emails=UNLIMITED,
            max_users=UNLIMITED,
            data_retention_days=UNLIMITED,
        )


class PlanFeatures(BaseModel):
    """Numeric ceilings and feature switches carried by a plan."""

    model_config = ConfigDict(extra="forbid")

    max_users: Optional[int] = Field(default=None, ge=0)
    max_sub_accounts: Optional[int] = Field(default=None, ge=0)
    data_retention: Optional[int] = Field(default=None, ge=0, description="Days")
    api_calls: Optional[int] = Field(default=None, ge=0, description="Per month")
    custom_domain: bool = False
    custom_branding: bool = False
    priority_support: bool = False
    analytics: bool = False
    integrations: bool = False
    multi_location: bool = False


class UIRestrictions(BaseModel):
    """Per-account UI trimming stored alongside an account override."""

    model_config = ConfigDict(extra="forbid")

    hidden_modules: List[str] = Field(default_factory=list)
    disabled_features: List[str] = Field(default_factory=list)
    custom_dashboard: Optional[Dict[str, Any]] = None
