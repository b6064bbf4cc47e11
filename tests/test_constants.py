from __future__ import annotations

import itertools

from inboop.constants import (
    PLAN_CATALOG,
    Feature,
    Permission,
    Plan,
    Role,
    features_for_plan,
    parse_feature,
    parse_plan,
    parse_role,
    plan_allows_feature,
    plans_by_rank,
)


def test_plans_rank_free_pro_enterprise() -> None:
    assert plans_by_rank() == [Plan.FREE, Plan.PRO, Plan.ENTERPRISE]
    assert Plan.FREE.rank < Plan.PRO.rank < Plan.ENTERPRISE.rank


def test_seat_caps_never_decrease_with_rank() -> None:
    caps = [plan.max_users for plan in plans_by_rank()]
    assert caps == sorted(caps)
    assert (Plan.FREE.max_users, Plan.PRO.max_users, Plan.ENTERPRISE.max_users) == (2, 5, 100)


def test_plan_entitlements() -> None:
    assert not Plan.FREE.analytics_enabled
    assert not Plan.FREE.api_access_enabled
    assert Plan.PRO.analytics_enabled and Plan.PRO.api_access_enabled
    assert set(PLAN_CATALOG) == set(Plan)


def test_feature_gate_follows_rank_for_every_pair() -> None:
    for plan, feature in itertools.product(Plan, Feature):
        assert plan_allows_feature(plan, feature) == (plan.rank >= feature.minimum_plan.rank)


def test_feature_minimum_plans() -> None:
    assert Feature.INVITE_USERS.minimum_plan is Plan.FREE
    assert Feature.ANALYTICS_DASHBOARD.minimum_plan is Plan.PRO
    assert Feature.BULK_OPERATIONS.minimum_plan is Plan.PRO
    assert Feature.PRIORITY_SUPPORT.minimum_plan is Plan.ENTERPRISE


def test_features_for_plan() -> None:
    assert features_for_plan(Plan.FREE) == [Feature.INVITE_USERS]
    assert Feature.PRIORITY_SUPPORT not in features_for_plan(Plan.PRO)
    assert features_for_plan(Plan.ENTERPRISE) == list(Feature)


def test_parse_feature_accepts_kebab_and_lower_case() -> None:
    assert parse_feature("analytics-dashboard") is Feature.ANALYTICS_DASHBOARD
    assert parse_feature("api_access") is Feature.API_ACCESS
    assert parse_feature("sso") is None


def test_parse_plan() -> None:
    assert parse_plan(" pro ") is Plan.PRO
    assert parse_plan("growth") is None
    assert parse_plan(None) is None


def test_viewer_is_read_only() -> None:
    assert Role.VIEWER.permissions == {Permission.LEAD_READ, Permission.ORDER_READ, Permission.ANALYTICS_READ}
    assert not Role.VIEWER.has_permission(Permission.ORDER_WRITE)
    assert not Role.VIEWER.has_permission(Permission.ORDER_ASSIGN)


def test_editor_and_legacy_member_cannot_manage_team() -> None:
    assert Role.MEMBER.permissions == Role.EDITOR.permissions
    assert Role.EDITOR.has_permission(Permission.ORDER_WRITE)
    assert Role.EDITOR.has_permission(Permission.LEAD_ASSIGN)
    assert not Role.EDITOR.has_permission(Permission.TEAM_MANAGE)


def test_owner_and_admin_hold_every_permission() -> None:
    assert Role.OWNER.permissions == set(Permission)
    assert Role.ADMIN.permissions == set(Permission)


def test_parse_role() -> None:
    assert parse_role("Viewer") is Role.VIEWER
    assert parse_role("superuser") is None
    assert parse_role(None) is None
