"""FastAPI app for the Inboop DM-sales backend."""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import analytics, leads, orders, plans
from .constants import (
    Feature,
    Permission,
    Plan,
    PlanStatus,
    Role,
    features_for_plan,
    parse_feature,
    parse_role,
    plan_allows_feature,
    plans_by_rank,
)
from .db import get_db, init_db
from .errors import InvalidTransition, NotFound, OrderNotEditable, PermissionDenied, PlanLimitError
from .lifecycle import ChannelType, LeadStatus, OrderStatus, PaymentStatus
from .models import ApiToken, User, Workspace, as_utc, utc_now
from .schemas import (
    AnalyticsOverviewOut,
    AssignOrderRequest,
    AuthResponse,
    BulkCancelRequest,
    CancelOrderRequest,
    FeatureAccessOut,
    LeadCreateRequest,
    LeadOut,
    LeadStatusRequest,
    MemberInviteRequest,
    OrderCreateRequest,
    OrderOut,
    PaymentStatusRequest,
    PlanPatchRequest,
    RefundOrderRequest,
    RegisterRequest,
    SeatInfoOut,
    ShipOrderRequest,
    UpdateItemsRequest,
    UpdateShippingRequest,
    UserOut,
    WorkspaceOut,
    WorkspacePlanOut,
)
from .security import generate_access_token, hash_token

logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DEFAULT_ANALYTICS_WINDOW = timedelta(days=30)
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class RequestContext:
    user: User
    workspace: Workspace
    token: ApiToken


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Inboop API",
    description="Multi-tenant backend for DM-based sales: workspaces, plan gating, leads, orders and analytics.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(PlanLimitError)
async def handle_plan_limit_error(_: Request, exc: PlanLimitError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(InvalidTransition)
async def handle_invalid_transition(_: Request, exc: InvalidTransition) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(OrderNotEditable)
async def handle_order_not_editable(_: Request, exc: OrderNotEditable) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(PermissionDenied)
async def handle_permission_denied(_: Request, exc: PermissionDenied) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(NotFound)
async def handle_not_found(_: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


def validate_email(email: str) -> None:
    if not EMAIL_REGEX.match(email):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid email format.",
        )


def get_request_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> RequestContext:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token.",
        )

    token = db.scalar(
        select(ApiToken).where(
            ApiToken.token_hash == hash_token(credentials.credentials),
            ApiToken.revoked_at.is_(None),
        )
    )
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
        )

    user = db.get(User, token.user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token user not found.",
        )

    workspace = db.get(Workspace, user.workspace_id)
    if not workspace:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Workspace not found.",
        )

    return RequestContext(user=user, workspace=workspace, token=token)


def require_permission(context: RequestContext, permission: Permission) -> None:
    role = parse_role(context.user.role)
    if role is not None and role.has_permission(permission):
        return

    logger.warning(
        "User %s (%s) denied %s in workspace %s",
        context.user.id,
        context.user.role,
        permission.value,
        context.workspace.id,
    )
    if permission is Permission.TEAM_MANAGE:
        raise PermissionDenied(permission, "Only admins can manage team members.")
    raise PermissionDenied(permission, "Viewers cannot perform this action. Contact an admin to upgrade your role.")


def serialize_plan(db: Session, workspace_id: int) -> WorkspacePlanOut:
    record = plans.find_workspace_plan(db, workspace_id)
    plan = record.plan if record else Plan.FREE
    return WorkspacePlanOut(
        plan=plan,
        plan_status=record.plan_status if record else PlanStatus.ACTIVE,
        is_active=record.is_active() if record else True,
        started_at=record.started_at if record else None,
        expires_at=record.expires_at if record else None,
        max_users=plan.max_users,
        analytics_enabled=plan.analytics_enabled,
        api_access_enabled=plan.api_access_enabled,
        features=features_for_plan(plan),
    )


@app.get("/health")
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> AuthResponse:
    validate_email(payload.email)
    existing = db.scalar(select(Workspace).where(Workspace.slug == payload.workspace_slug))
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Workspace slug already exists.",
        )

    workspace = Workspace(
        name=payload.workspace_name.strip(),
        slug=payload.workspace_slug.strip(),
    )
    user = User(
        workspace=workspace,
        email=payload.email.strip().lower(),
        full_name=payload.full_name.strip(),
        role=Role.OWNER.value,
    )
    access_token = generate_access_token()
    token = ApiToken(user=user, token_hash=hash_token(access_token))

    db.add_all([workspace, user, token])
    try:
        db.flush()
        plans.create_default_plan(db, workspace.id)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Unable to register workspace with provided data.",
        ) from None

    logger.info("Registered workspace %s", workspace.slug)
    return AuthResponse(
        access_token=access_token,
        token_type="bearer",
        workspace=WorkspaceOut.model_validate(workspace),
        user=UserOut.model_validate(user),
        plan=serialize_plan(db, workspace.id),
    )


@app.get("/workspaces/me")
def get_my_workspace(
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> dict:
    return {
        "workspace": WorkspaceOut.model_validate(context.workspace).model_dump(mode="json"),
        "plan": serialize_plan(db, context.workspace.id).model_dump(mode="json"),
    }


@app.get("/workspaces/me/members", response_model=list[UserOut])
def list_members(
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> list[User]:
    return list(
        db.scalars(select(User).where(User.workspace_id == context.workspace.id).order_by(User.id)).all()
    )


@app.post("/workspaces/me/members", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def invite_member(
    payload: MemberInviteRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> User:
    require_permission(context, Permission.TEAM_MANAGE)
    validate_email(payload.email)
    plans.assert_plan_active(db, context.workspace.id)
    plans.assert_feature_enabled(db, context.workspace.id, Feature.INVITE_USERS)
    plans.assert_can_invite_user(db, context.workspace.id)

    email = payload.email.strip().lower()
    existing = db.scalar(
        select(User).where(User.workspace_id == context.workspace.id, User.email == email)
    )
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists in this workspace.",
        )

    user = User(
        workspace_id=context.workspace.id,
        email=email,
        full_name=payload.full_name.strip(),
        role=payload.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@app.get("/workspaces/me/seats", response_model=SeatInfoOut)
def get_seats(
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> SeatInfoOut:
    return SeatInfoOut.model_validate(plans.get_seat_info(db, context.workspace.id))


@app.get("/workspaces/me/plan", response_model=WorkspacePlanOut)
def get_my_plan(
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> WorkspacePlanOut:
    return serialize_plan(db, context.workspace.id)


@app.patch("/workspaces/me/plan", response_model=WorkspacePlanOut)
def update_my_plan(
    payload: PlanPatchRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> WorkspacePlanOut:
    require_permission(context, Permission.TEAM_MANAGE)
    plans.update_workspace_plan(
        db,
        context.workspace.id,
        payload.plan,
        payload.status,
        payload.expires_at,
    )
    db.commit()
    return serialize_plan(db, context.workspace.id)


@app.get("/plans")
def get_plan_catalog() -> dict[str, list[dict]]:
    catalog: list[dict] = []
    for plan in plans_by_rank():
        catalog.append(
            {
                "name": plan.value,
                "rank": plan.rank,
                "limits": {
                    "max_users": plan.max_users,
                    "analytics_enabled": plan.analytics_enabled,
                    "api_access_enabled": plan.api_access_enabled,
                },
                "features": sorted(feature.value for feature in features_for_plan(plan)),
            }
        )
    return {"plans": catalog}


@app.get("/features/{feature_key}", response_model=FeatureAccessOut)
def check_feature_access(
    feature_key: str,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> FeatureAccessOut:
    feature = parse_feature(feature_key)
    if feature is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unknown feature.",
        )

    plan = plans.get_plan(db, context.workspace.id)
    return FeatureAccessOut(
        feature=feature,
        plan=plan,
        required_plan=feature.minimum_plan,
        allowed=plan_allows_feature(plan, feature),
    )


@app.post("/orders", response_model=OrderOut)
def create_order(
    payload: OrderCreateRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> JSONResponse:
    require_permission(context, Permission.ORDER_WRITE)
    plans.assert_plan_active(db, context.workspace.id)
    order, created = orders.create_order(db, context.workspace.id, payload, performed_by=context.user)
    db.commit()
    body = OrderOut.model_validate(order).model_dump(mode="json")
    return JSONResponse(
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        content=body,
    )


@app.get("/orders", response_model=list[OrderOut])
def list_orders(
    order_status: OrderStatus | None = Query(default=None, alias="status"),
    payment_status: PaymentStatus | None = None,
    channel: ChannelType | None = None,
    assigned_to: int | None = None,
    limit: int = 50,
    offset: int = 0,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> list[OrderOut]:
    require_permission(context, Permission.ORDER_READ)
    found = orders.list_orders(
        db,
        context.workspace.id,
        status=order_status,
        payment_status=payment_status,
        channel=channel,
        assigned_to=assigned_to,
        limit=min(max(limit, 1), 200),
        offset=max(offset, 0),
    )
    return [OrderOut.model_validate(order) for order in found]


@app.get("/orders/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> OrderOut:
    require_permission(context, Permission.ORDER_READ)
    return OrderOut.model_validate(orders.get_order(db, context.workspace.id, order_id))


@app.post("/orders/bulk/cancel", response_model=list[OrderOut])
def bulk_cancel_orders(
    payload: BulkCancelRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> list[OrderOut]:
    require_permission(context, Permission.ORDER_WRITE)
    plans.assert_plan_active(db, context.workspace.id)
    plans.assert_feature_enabled(db, context.workspace.id, Feature.BULK_OPERATIONS)

    # All or nothing: one illegal transition rolls back the whole batch.
    cancelled = []
    try:
        for order_id in dict.fromkeys(payload.order_ids):
            order = orders.get_order(db, context.workspace.id, order_id)
            cancelled.append(orders.cancel_order(order, payload.reason, performed_by=context.user))
    except (InvalidTransition, NotFound):
        db.rollback()
        raise
    db.commit()
    return [OrderOut.model_validate(order) for order in cancelled]


@app.post("/orders/{order_id}/confirm", response_model=OrderOut)
def confirm_order(
    order_id: int,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> OrderOut:
    require_permission(context, Permission.ORDER_WRITE)
    order = orders.confirm_order(orders.get_order(db, context.workspace.id, order_id), context.user)
    db.commit()
    return OrderOut.model_validate(order)


@app.post("/orders/{order_id}/ship", response_model=OrderOut)
def ship_order(
    order_id: int,
    payload: ShipOrderRequest | None = None,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> OrderOut:
    require_permission(context, Permission.ORDER_WRITE)
    order = orders.ship_order(orders.get_order(db, context.workspace.id, order_id), payload, context.user)
    db.commit()
    return OrderOut.model_validate(order)


@app.post("/orders/{order_id}/deliver", response_model=OrderOut)
def deliver_order(
    order_id: int,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> OrderOut:
    require_permission(context, Permission.ORDER_WRITE)
    order = orders.deliver_order(orders.get_order(db, context.workspace.id, order_id), context.user)
    db.commit()
    return OrderOut.model_validate(order)


@app.post("/orders/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    payload: CancelOrderRequest | None = None,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> OrderOut:
    require_permission(context, Permission.ORDER_WRITE)
    order = orders.cancel_order(
        orders.get_order(db, context.workspace.id, order_id),
        payload.reason if payload else None,
        context.user,
    )
    db.commit()
    return OrderOut.model_validate(order)


@app.post("/orders/{order_id}/payment", response_model=OrderOut)
def update_payment_status(
    order_id: int,
    payload: PaymentStatusRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> OrderOut:
    require_permission(context, Permission.ORDER_WRITE)
    order = orders.update_payment_status(
        orders.get_order(db, context.workspace.id, order_id),
        payload.payment_status,
        context.user,
    )
    db.commit()
    return OrderOut.model_validate(order)


@app.post("/orders/{order_id}/refund", response_model=OrderOut)
def refund_order(
    order_id: int,
    payload: RefundOrderRequest | None = None,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> OrderOut:
    require_permission(context, Permission.ORDER_WRITE)
    order = orders.refund_order(
        orders.get_order(db, context.workspace.id, order_id),
        payload.reason if payload else None,
        context.user,
    )
    db.commit()
    return OrderOut.model_validate(order)


@app.put("/orders/{order_id}/items", response_model=OrderOut)
def update_order_items(
    order_id: int,
    payload: UpdateItemsRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> OrderOut:
    require_permission(context, Permission.ORDER_WRITE)
    order = orders.update_order_items(
        orders.get_order(db, context.workspace.id, order_id),
        payload.items,
        context.user,
    )
    db.commit()
    return OrderOut.model_validate(order)


@app.patch("/orders/{order_id}/assign", response_model=OrderOut)
def assign_order(
    order_id: int,
    payload: AssignOrderRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> OrderOut:
    require_permission(context, Permission.ORDER_ASSIGN)
    order = orders.assign_order(
        db,
        orders.get_order(db, context.workspace.id, order_id),
        payload.assigned_to_user_id,
        context.user,
    )
    db.commit()
    return OrderOut.model_validate(order)


@app.patch("/orders/{order_id}/shipping", response_model=OrderOut)
def update_order_shipping(
    order_id: int,
    payload: UpdateShippingRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> OrderOut:
    require_permission(context, Permission.ORDER_WRITE)
    order = orders.update_order_shipping(
        orders.get_order(db, context.workspace.id, order_id),
        payload,
        context.user,
    )
    db.commit()
    return OrderOut.model_validate(order)


@app.post("/leads", response_model=LeadOut, status_code=status.HTTP_201_CREATED)
def create_lead(
    payload: LeadCreateRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> LeadOut:
    require_permission(context, Permission.LEAD_WRITE)
    lead = leads.create_lead(db, context.workspace.id, payload)
    db.commit()
    return LeadOut.model_validate(lead)


@app.get("/leads", response_model=list[LeadOut])
def list_leads(
    lead_status: LeadStatus | None = Query(default=None, alias="status"),
    channel: ChannelType | None = None,
    limit: int = 50,
    offset: int = 0,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> list[LeadOut]:
    require_permission(context, Permission.LEAD_READ)
    found = leads.list_leads(
        db,
        context.workspace.id,
        status=lead_status,
        channel=channel,
        limit=min(max(limit, 1), 200),
        offset=max(offset, 0),
    )
    return [LeadOut.model_validate(lead) for lead in found]


@app.patch("/leads/{lead_id}/status", response_model=LeadOut)
def update_lead_status(
    lead_id: int,
    payload: LeadStatusRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> LeadOut:
    require_permission(context, Permission.LEAD_WRITE)
    lead = leads.update_lead_status(leads.get_lead(db, context.workspace.id, lead_id), payload.status)
    db.commit()
    return LeadOut.model_validate(lead)


@app.get("/analytics/overview", response_model=AnalyticsOverviewOut)
def analytics_overview(
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    channel: ChannelType | None = None,
    currency: str | None = None,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
) -> AnalyticsOverviewOut:
    require_permission(context, Permission.ANALYTICS_READ)
    plans.assert_plan_active(db, context.workspace.id)
    plans.assert_feature_enabled(db, context.workspace.id, Feature.ANALYTICS_DASHBOARD)

    period_end = as_utc(period_end) if period_end else utc_now()
    period_start = as_utc(period_start) if period_start else period_end - DEFAULT_ANALYTICS_WINDOW
    if period_start >= period_end:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="period_start must be before period_end.",
        )

    overview = analytics.get_overview(
        db,
        context.workspace.id,
        period_start,
        period_end,
        channel=channel,
        currency=currency,
    )
    return AnalyticsOverviewOut.model_validate(overview)
