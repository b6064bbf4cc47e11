"""Pydantic schemas for API requests and responses."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .constants import Feature, Plan, PlanStatus
from .lifecycle import ChannelType, LeadStatus, OrderStatus, PaymentMethod, PaymentStatus


class RegisterRequest(BaseModel):
    workspace_name: str = Field(min_length=2, max_length=200)
    workspace_slug: str = Field(
        min_length=3,
        max_length=80,
        pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$",
    )
    email: str = Field(min_length=5, max_length=255)
    full_name: str = Field(min_length=2, max_length=200)


class MemberInviteRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    full_name: str = Field(min_length=2, max_length=200)
    role: Literal["admin", "editor", "viewer"] = "editor"


class WorkspaceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    created_at: datetime


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: str
    role: str
    created_at: datetime


class SeatInfoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    used: int
    max: int
    available: int


class WorkspacePlanOut(BaseModel):
    plan: Plan
    plan_status: PlanStatus
    is_active: bool
    started_at: datetime | None
    expires_at: datetime | None
    max_users: int
    analytics_enabled: bool
    api_access_enabled: bool
    features: list[Feature]


class PlanPatchRequest(BaseModel):
    plan: Plan
    status: PlanStatus = PlanStatus.ACTIVE
    expires_at: datetime | None = None


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    workspace: WorkspaceOut
    user: UserOut
    plan: WorkspacePlanOut


class FeatureAccessOut(BaseModel):
    feature: Feature
    plan: Plan
    required_plan: Plan
    allowed: bool


class OrderItemIn(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    quantity: int | None = Field(default=None, ge=1)
    unit_price: Decimal | None = Field(default=None, ge=0)


class OrderCreateRequest(BaseModel):
    customer_handle: str = Field(min_length=1, max_length=200)
    customer_name: str | None = Field(default=None, max_length=200)
    channel: ChannelType
    lead_id: int | None = None
    items: list[OrderItemIn] = Field(default_factory=list)
    total_amount: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    payment_method: PaymentMethod | None = None
    notes: str | None = None
    idempotency_key: str | None = Field(default=None, max_length=200)


class ShipOrderRequest(BaseModel):
    carrier: str | None = Field(default=None, max_length=100)
    tracking_number: str | None = Field(default=None, max_length=100)
    tracking_url: str | None = Field(default=None, max_length=500)
    note: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class RefundOrderRequest(BaseModel):
    reason: str | None = None


class PaymentStatusRequest(BaseModel):
    payment_status: PaymentStatus


class UpdateItemsRequest(BaseModel):
    items: list[OrderItemIn]


class AssignOrderRequest(BaseModel):
    # None unassigns.
    assigned_to_user_id: int | None = None


class UpdateShippingRequest(BaseModel):
    carrier: str | None = Field(default=None, max_length=100)
    tracking_number: str | None = Field(default=None, max_length=100)
    tracking_url: str | None = Field(default=None, max_length=500)


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderTimelineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_type: str
    status: OrderStatus
    payment_status: PaymentStatus | None
    note: str | None
    performed_by_id: int | None
    created_at: datetime


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    lead_id: int | None
    is_converting_order: bool
    assigned_to_id: int | None
    customer_name: str | None
    customer_handle: str
    channel: ChannelType
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod | None
    currency: str
    total_amount: Decimal
    notes: str | None
    carrier: str | None
    tracking_number: str | None
    tracking_url: str | None
    cancellation_reason: str | None
    paid_at: datetime | None
    confirmed_at: datetime | None
    shipped_at: datetime | None
    delivered_at: datetime | None
    cancelled_at: datetime | None
    refunded_at: datetime | None
    created_at: datetime
    items: list[OrderItemOut]
    timeline: list[OrderTimelineOut]


class LeadCreateRequest(BaseModel):
    customer_handle: str = Field(min_length=1, max_length=200)
    customer_name: str | None = Field(default=None, max_length=200)
    channel: ChannelType
    notes: str | None = None


class LeadStatusRequest(BaseModel):
    status: LeadStatus


class LeadOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_name: str | None
    customer_handle: str
    channel: ChannelType
    status: LeadStatus
    notes: str | None
    converted_order_id: int | None
    converted_order_number: str | None
    converted_at: datetime | None
    closed_at: datetime | None
    created_at: datetime


class OrderMetricsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    created: int
    delivered: int
    cancelled: int
    cancellation_rate: Decimal
    by_channel: dict[str, int] | None
    by_status: dict[str, int]


class RevenueMetricsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    gross: Decimal
    refunded: Decimal
    net: Decimal
    average_order_value: Decimal
    currency: str


class LeadMetricsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    created: int
    converted: int
    lost: int
    closed: int
    conversion_rate: Decimal
    open: int
    by_channel: dict[str, int] | None


class AnalyticsOverviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period_start: datetime
    period_end: datetime
    orders: OrderMetricsOut
    revenue: RevenueMetricsOut
    leads: LeadMetricsOut


class BulkCancelRequest(BaseModel):
    order_ids: list[int] = Field(min_length=1, max_length=100)
    reason: str | None = None
