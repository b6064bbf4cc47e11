from __future__ import annotations

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from inboop import db
from inboop.constants import Plan, PlanStatus
from inboop.main import app
from inboop.models import User, Workspace, WorkspacePlan


@pytest.fixture()
def database(tmp_path):
    db.reset_engine(f"sqlite:///{tmp_path}/test.db")
    db.init_db()
    yield
    db.engine.dispose()


@pytest.fixture()
def session(database):
    with db.SessionLocal() as session:
        yield session


@pytest.fixture()
def client(database):
    with TestClient(app) as test_client:
        yield test_client


def make_workspace(
    session: Session,
    slug: str = "acme",
    members: int = 1,
    plan: Plan | None = None,
    status: PlanStatus = PlanStatus.ACTIVE,
    expires_at: datetime | None = None,
) -> Workspace:
    """Create a workspace with ``members`` users and, if ``plan`` is given, a plan record."""
    workspace = Workspace(name=slug.title(), slug=slug)
    session.add(workspace)
    session.flush()
    for index in range(members):
        session.add(
            User(
                workspace_id=workspace.id,
                email=f"user{index}@{slug}.com",
                full_name=f"User {index}",
                role="owner" if index == 0 else "member",
            )
        )
    if plan is not None:
        session.add(
            WorkspacePlan(
                workspace_id=workspace.id,
                plan=plan,
                plan_status=status,
                expires_at=expires_at,
            )
        )
    session.commit()
    return workspace
