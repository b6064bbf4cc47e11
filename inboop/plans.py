"""Plan-based feature gating and seat limit enforcement.

Every entitlement check goes through this module. Reads never write: a
workspace without a plan record is evaluated as FREE/ACTIVE, and the record
is only created by an explicit ``create_default_plan`` call.

Seat checks read the member count without locking, so two concurrent
invites can both pass the check and overshoot the cap by one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .constants import Feature, Plan, PlanStatus, plan_allows_feature
from .errors import FeatureNotAvailable, PlanExpired, PlanLimitReached, PlanSuspended, WorkspaceNotFound
from .models import User, Workspace, WorkspacePlan, as_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeatInfo:
    used: int
    max: int
    available: int


def find_workspace_plan(db: Session, workspace_id: int) -> WorkspacePlan | None:
    return db.scalar(select(WorkspacePlan).where(WorkspacePlan.workspace_id == workspace_id))


def count_members(db: Session, workspace_id: int) -> int:
    return db.scalar(select(func.count(User.id)).where(User.workspace_id == workspace_id)) or 0


def get_plan(db: Session, workspace_id: int) -> Plan:
    record = find_workspace_plan(db, workspace_id)
    return record.plan if record else Plan.FREE


def is_active(db: Session, workspace_id: int, now: datetime | None = None) -> bool:
    record = find_workspace_plan(db, workspace_id)
    if record is None:
        return True
    return record.is_active(now)


def max_users_allowed(db: Session, workspace_id: int) -> int:
    return get_plan(db, workspace_id).max_users


def can_invite_user(db: Session, workspace_id: int) -> bool:
    return count_members(db, workspace_id) < max_users_allowed(db, workspace_id)


def assert_can_invite_user(db: Session, workspace_id: int) -> None:
    plan = get_plan(db, workspace_id)
    if count_members(db, workspace_id) >= plan.max_users:
        logger.warning("Seat limit reached for workspace %s on %s plan", workspace_id, plan.value)
        raise PlanLimitReached(plan, plan.max_users)


def is_feature_enabled(db: Session, workspace_id: int, feature: Feature) -> bool:
    return plan_allows_feature(get_plan(db, workspace_id), feature)


def assert_feature_enabled(db: Session, workspace_id: int, feature: Feature) -> None:
    plan = get_plan(db, workspace_id)
    if not plan_allows_feature(plan, feature):
        logger.warning(
            "Feature %s denied for workspace %s (%s < %s)",
            feature.value,
            workspace_id,
            plan.value,
            feature.minimum_plan.value,
        )
        raise FeatureNotAvailable(feature, plan, feature.minimum_plan)


def assert_plan_active(db: Session, workspace_id: int, now: datetime | None = None) -> None:
    record = find_workspace_plan(db, workspace_id)
    if record is None:
        return

    if record.plan_status is PlanStatus.SUSPENDED:
        raise PlanSuspended(record.plan)
    if record.is_expired(now):
        raise PlanExpired(record.plan)


def get_available_seats(db: Session, workspace_id: int) -> int:
    return get_seat_info(db, workspace_id).available


def get_seat_info(db: Session, workspace_id: int) -> SeatInfo:
    max_users = max_users_allowed(db, workspace_id)
    used = count_members(db, workspace_id)
    return SeatInfo(used=used, max=max_users, available=max(0, max_users - used))


def create_default_plan(db: Session, workspace_id: int) -> WorkspacePlan:
    """Materialize a FREE/ACTIVE record.

    The caller must only invoke this for a workspace that has no record yet;
    the unique constraint on ``workspace_id`` rejects a second one.
    """
    if db.get(Workspace, workspace_id) is None:
        raise WorkspaceNotFound(workspace_id)

    record = WorkspacePlan(
        workspace_id=workspace_id,
        plan=Plan.FREE,
        plan_status=PlanStatus.ACTIVE,
        started_at=utc_now(),
    )
    db.add(record)
    db.flush()
    logger.info("Created default FREE plan for workspace %s", workspace_id)
    return record


def get_or_create_workspace_plan(db: Session, workspace_id: int) -> WorkspacePlan:
    record = find_workspace_plan(db, workspace_id)
    if record:
        return record
    return create_default_plan(db, workspace_id)


def update_workspace_plan(
    db: Session,
    workspace_id: int,
    plan: Plan,
    status: PlanStatus,
    expires_at: datetime | None = None,
) -> WorkspacePlan:
    """Apply a billing/administrative change to a workspace's plan."""
    record = get_or_create_workspace_plan(db, workspace_id)
    if record.plan is not plan:
        logger.info(
            "Workspace %s plan change %s -> %s",
            workspace_id,
            record.plan.value,
            plan.value,
        )
        record.started_at = utc_now()
    if record.plan_status is not status:
        logger.info(
            "Workspace %s plan status %s -> %s",
            workspace_id,
            record.plan_status.value,
            status.value,
        )

    record.plan = plan
    record.plan_status = status
    record.expires_at = as_utc(expires_at) if expires_at else None
    db.flush()
    return record
