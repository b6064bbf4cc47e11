from __future__ import annotations

from datetime import timedelta, timezone

import pytest
from conftest import make_workspace
from sqlalchemy import func, select

from inboop import db, plans
from inboop.constants import Feature, Plan, PlanStatus
from inboop.errors import FeatureNotAvailable, PlanExpired, PlanLimitReached, PlanSuspended, WorkspaceNotFound
from inboop.models import User, WorkspacePlan, as_utc, utc_now


def test_workspace_without_record_is_free_and_active(session) -> None:
    workspace = make_workspace(session)

    assert plans.find_workspace_plan(session, workspace.id) is None
    assert plans.get_plan(session, workspace.id) is Plan.FREE
    assert plans.is_active(session, workspace.id) is True
    plans.assert_plan_active(session, workspace.id)
    assert plans.max_users_allowed(session, workspace.id) == 2
    # Reads never materialize a record.
    assert session.scalar(select(func.count(WorkspacePlan.id))) == 0


def test_free_workspace_at_cap_cannot_invite(session) -> None:
    workspace = make_workspace(session, members=2)

    assert plans.can_invite_user(session, workspace.id) is False
    with pytest.raises(PlanLimitReached) as excinfo:
        plans.assert_can_invite_user(session, workspace.id)

    error = excinfo.value
    assert error.current_plan is Plan.FREE
    assert error.max_users == 2
    assert error.to_dict() == {
        "code": "PLAN_LIMIT_REACHED",
        "message": "FREE plan supports up to 2 users. Upgrade to add more team members.",
        "upgrade_suggested": True,
        "current_plan": "FREE",
        "required_plan": None,
        "feature": None,
    }


def test_free_workspace_below_cap_can_invite(session) -> None:
    workspace = make_workspace(session, members=1)

    assert plans.can_invite_user(session, workspace.id) is True
    plans.assert_can_invite_user(session, workspace.id)


def test_pro_workspace_feature_gating(session) -> None:
    workspace = make_workspace(session, plan=Plan.PRO)

    assert plans.is_feature_enabled(session, workspace.id, Feature.ANALYTICS_DASHBOARD) is True
    plans.assert_feature_enabled(session, workspace.id, Feature.ANALYTICS_DASHBOARD)
    assert plans.is_feature_enabled(session, workspace.id, Feature.PRIORITY_SUPPORT) is False

    with pytest.raises(FeatureNotAvailable) as excinfo:
        plans.assert_feature_enabled(session, workspace.id, Feature.PRIORITY_SUPPORT)

    payload = excinfo.value.to_dict()
    assert payload["current_plan"] == "PRO"
    assert payload["required_plan"] == "ENTERPRISE"
    assert payload["feature"] == "PRIORITY_SUPPORT"
    assert payload["message"] == (
        "Priority support is not available on your PRO plan. Upgrade to ENTERPRISE to unlock this feature."
    )


def test_active_plan_past_expiry_is_expired(session) -> None:
    workspace = make_workspace(
        session,
        plan=Plan.PRO,
        status=PlanStatus.ACTIVE,
        expires_at=utc_now() - timedelta(seconds=1),
    )

    assert plans.is_active(session, workspace.id) is False
    with pytest.raises(PlanExpired) as excinfo:
        plans.assert_plan_active(session, workspace.id)
    assert excinfo.value.code == "PLAN_EXPIRED"
    assert excinfo.value.current_plan is Plan.PRO


def test_future_expiry_is_still_active(session) -> None:
    workspace = make_workspace(session, plan=Plan.PRO, expires_at=utc_now() + timedelta(days=3))

    assert plans.is_active(session, workspace.id) is True
    plans.assert_plan_active(session, workspace.id)


def test_expired_status_without_expiry_date(session) -> None:
    workspace = make_workspace(session, plan=Plan.PRO, status=PlanStatus.EXPIRED)

    assert plans.is_active(session, workspace.id) is False
    with pytest.raises(PlanExpired):
        plans.assert_plan_active(session, workspace.id)


def test_suspended_plan(session) -> None:
    workspace = make_workspace(session, plan=Plan.ENTERPRISE, status=PlanStatus.SUSPENDED)

    assert plans.is_active(session, workspace.id) is False
    with pytest.raises(PlanSuspended) as excinfo:
        plans.assert_plan_active(session, workspace.id)
    assert excinfo.value.to_dict()["code"] == "PLAN_SUSPENDED"


def test_suspension_wins_over_expiry(session) -> None:
    workspace = make_workspace(
        session,
        plan=Plan.PRO,
        status=PlanStatus.SUSPENDED,
        expires_at=utc_now() - timedelta(days=1),
    )

    with pytest.raises(PlanSuspended):
        plans.assert_plan_active(session, workspace.id)


def test_seat_info(session) -> None:
    workspace = make_workspace(session, members=3, plan=Plan.PRO)

    seats = plans.get_seat_info(session, workspace.id)
    assert (seats.used, seats.max, seats.available) == (3, 5, 2)
    assert plans.get_available_seats(session, workspace.id) == 2


def test_seat_info_never_negative_after_downgrade(session) -> None:
    workspace = make_workspace(session, members=4, plan=Plan.FREE)

    seats = plans.get_seat_info(session, workspace.id)
    assert (seats.used, seats.max, seats.available) == (4, 2, 0)


def test_create_default_plan(session) -> None:
    workspace = make_workspace(session)

    record = plans.create_default_plan(session, workspace.id)
    session.commit()

    assert record.plan is Plan.FREE
    assert record.plan_status is PlanStatus.ACTIVE
    assert record.started_at is not None
    assert record.expires_at is None
    assert plans.find_workspace_plan(session, workspace.id).id == record.id


def test_create_default_plan_for_unknown_workspace(session) -> None:
    with pytest.raises(WorkspaceNotFound) as excinfo:
        plans.create_default_plan(session, 9999)
    assert excinfo.value.workspace_id == 9999


def test_get_or_create_does_not_duplicate(session) -> None:
    workspace = make_workspace(session)

    first = plans.get_or_create_workspace_plan(session, workspace.id)
    second = plans.get_or_create_workspace_plan(session, workspace.id)
    session.commit()

    assert first.id == second.id
    assert session.scalar(select(func.count(WorkspacePlan.id))) == 1


def test_update_workspace_plan_raises_seat_cap(session) -> None:
    workspace = make_workspace(session, members=2)
    assert plans.can_invite_user(session, workspace.id) is False

    record = plans.update_workspace_plan(session, workspace.id, Plan.PRO, PlanStatus.ACTIVE)
    session.commit()

    assert record.plan is Plan.PRO
    assert plans.can_invite_user(session, workspace.id) is True
    session.add(User(workspace_id=workspace.id, email="third@acme.com", full_name="Third"))
    session.commit()
    assert plans.count_members(session, workspace.id) == 3


def test_expiry_with_utc_offset_is_stored_as_utc(session) -> None:
    workspace = make_workspace(session, plan=Plan.PRO)
    an_hour_ago = (utc_now() - timedelta(hours=1)).astimezone(timezone(timedelta(hours=5)))

    plans.update_workspace_plan(session, workspace.id, Plan.PRO, PlanStatus.ACTIVE, expires_at=an_hour_ago)
    session.commit()

    with db.SessionLocal() as fresh:
        record = plans.find_workspace_plan(fresh, workspace.id)
        assert as_utc(record.expires_at) == an_hour_ago
        assert plans.is_active(fresh, workspace.id) is False
        with pytest.raises(PlanExpired):
            plans.assert_plan_active(fresh, workspace.id)
