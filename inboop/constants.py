"""Plan tiers, entitlements, feature gating and workspace role permissions."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Final

DEFAULT_CURRENCY: Final[str] = os.getenv("INBOOP_DEFAULT_CURRENCY", "INR")


class Plan(str, Enum):
    FREE = "FREE"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"

    @property
    def rank(self) -> int:
        return PLAN_CATALOG[self].rank

    @property
    def max_users(self) -> int:
        return PLAN_CATALOG[self].max_users

    @property
    def analytics_enabled(self) -> bool:
        return PLAN_CATALOG[self].analytics_enabled

    @property
    def api_access_enabled(self) -> bool:
        return PLAN_CATALOG[self].api_access_enabled


class PlanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    SUSPENDED = "SUSPENDED"


@dataclass(frozen=True)
class PlanEntitlements:
    rank: int
    max_users: int
    analytics_enabled: bool
    api_access_enabled: bool


# Rank is explicit so reordering the enum never changes the tier hierarchy.
PLAN_CATALOG: Final[dict[Plan, PlanEntitlements]] = {
    Plan.FREE: PlanEntitlements(
        rank=1,
        max_users=2,
        analytics_enabled=False,
        api_access_enabled=False,
    ),
    Plan.PRO: PlanEntitlements(
        rank=2,
        max_users=5,
        analytics_enabled=True,
        api_access_enabled=True,
    ),
    Plan.ENTERPRISE: PlanEntitlements(
        rank=3,
        max_users=100,
        analytics_enabled=True,
        api_access_enabled=True,
    ),
}


class Feature(str, Enum):
    INVITE_USERS = "INVITE_USERS"
    ANALYTICS_DASHBOARD = "ANALYTICS_DASHBOARD"
    ANALYTICS_EXPORT = "ANALYTICS_EXPORT"
    API_ACCESS = "API_ACCESS"
    WEBHOOK_ACCESS = "WEBHOOK_ACCESS"
    CUSTOM_LABELS = "CUSTOM_LABELS"
    BULK_OPERATIONS = "BULK_OPERATIONS"
    PRIORITY_SUPPORT = "PRIORITY_SUPPORT"

    @property
    def minimum_plan(self) -> Plan:
        return FEATURE_MIN_PLAN[self]

    @property
    def display_name(self) -> str:
        return FEATURE_DISPLAY_NAMES[self]


FEATURE_MIN_PLAN: Final[dict[Feature, Plan]] = {
    # Every plan can invite, up to its seat cap.
    Feature.INVITE_USERS: Plan.FREE,
    Feature.ANALYTICS_DASHBOARD: Plan.PRO,
    Feature.ANALYTICS_EXPORT: Plan.PRO,
    Feature.API_ACCESS: Plan.PRO,
    Feature.WEBHOOK_ACCESS: Plan.PRO,
    Feature.CUSTOM_LABELS: Plan.PRO,
    Feature.BULK_OPERATIONS: Plan.PRO,
    Feature.PRIORITY_SUPPORT: Plan.ENTERPRISE,
}

FEATURE_DISPLAY_NAMES: Final[dict[Feature, str]] = {
    Feature.INVITE_USERS: "Inviting users",
    Feature.ANALYTICS_DASHBOARD: "Analytics dashboard",
    Feature.ANALYTICS_EXPORT: "Analytics export",
    Feature.API_ACCESS: "API access",
    Feature.WEBHOOK_ACCESS: "Webhook access",
    Feature.CUSTOM_LABELS: "Custom labels",
    Feature.BULK_OPERATIONS: "Bulk operations",
    Feature.PRIORITY_SUPPORT: "Priority support",
}


def parse_feature(feature_key: str) -> Feature | None:
    normalized = feature_key.strip().upper().replace("-", "_")
    try:
        return Feature(normalized)
    except ValueError:
        return None


def parse_plan(plan_value: str | None) -> Plan | None:
    if not plan_value:
        return None
    try:
        return Plan(plan_value.strip().upper())
    except ValueError:
        return None


def plan_allows_feature(plan: Plan, feature: Feature) -> bool:
    return plan.rank >= feature.minimum_plan.rank


def features_for_plan(plan: Plan) -> list[Feature]:
    return [feature for feature in Feature if plan_allows_feature(plan, feature)]


def plans_by_rank() -> list[Plan]:
    return sorted(Plan, key=lambda plan: plan.rank)


class Permission(str, Enum):
    LEAD_READ = "LEAD_READ"
    LEAD_WRITE = "LEAD_WRITE"
    LEAD_ASSIGN = "LEAD_ASSIGN"
    ORDER_READ = "ORDER_READ"
    ORDER_WRITE = "ORDER_WRITE"
    ORDER_ASSIGN = "ORDER_ASSIGN"
    ANALYTICS_READ = "ANALYTICS_READ"
    TEAM_MANAGE = "TEAM_MANAGE"


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"
    # Legacy; behaves as EDITOR.
    MEMBER = "member"

    @property
    def permissions(self) -> frozenset[Permission]:
        return ROLE_PERMISSIONS[self]

    def has_permission(self, permission: Permission) -> bool:
        return permission in ROLE_PERMISSIONS[self]


VIEWER_PERMISSIONS: Final[frozenset[Permission]] = frozenset(
    {
        Permission.LEAD_READ,
        Permission.ORDER_READ,
        Permission.ANALYTICS_READ,
    }
)

EDITOR_PERMISSIONS: Final[frozenset[Permission]] = VIEWER_PERMISSIONS | {
    Permission.LEAD_WRITE,
    Permission.LEAD_ASSIGN,
    Permission.ORDER_WRITE,
    Permission.ORDER_ASSIGN,
}

ADMIN_PERMISSIONS: Final[frozenset[Permission]] = EDITOR_PERMISSIONS | {Permission.TEAM_MANAGE}

ROLE_PERMISSIONS: Final[dict[Role, frozenset[Permission]]] = {
    Role.OWNER: ADMIN_PERMISSIONS,
    Role.ADMIN: ADMIN_PERMISSIONS,
    Role.EDITOR: EDITOR_PERMISSIONS,
    Role.MEMBER: EDITOR_PERMISSIONS,
    Role.VIEWER: VIEWER_PERMISSIONS,
}


def parse_role(role_value: str | None) -> Role | None:
    if not role_value:
        return None
    try:
        return Role(role_value.strip().lower())
    except ValueError:
        return None
