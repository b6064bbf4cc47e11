"""Workspace analytics overview.

All metrics are computed at query time over a half-open period
``[period_start, period_end)``. Event counts use the timestamp of the event
itself (``delivered_at``, ``paid_at``...), snapshots ignore the period.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from .constants import DEFAULT_CURRENCY
from .lifecycle import ChannelType, LeadStatus, OrderStatus, PaymentStatus
from .models import Lead, Order, as_utc

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass
class OrderMetrics:
    created: int
    delivered: int
    cancelled: int
    cancellation_rate: Decimal
    by_channel: dict[str, int] | None
    by_status: dict[str, int]


@dataclass
class RevenueMetrics:
    gross: Decimal
    refunded: Decimal
    net: Decimal
    average_order_value: Decimal
    currency: str


@dataclass
class LeadMetrics:
    created: int
    converted: int
    lost: int
    closed: int
    conversion_rate: Decimal
    open: int
    by_channel: dict[str, int] | None


@dataclass
class AnalyticsOverview:
    period_start: datetime
    period_end: datetime
    orders: OrderMetrics
    revenue: RevenueMetrics
    leads: LeadMetrics


def percentage(part: int, whole: int) -> Decimal:
    """part * 100 / whole, two decimals, HALF_UP; zero when whole is zero."""
    if whole <= 0:
        return ZERO
    return (Decimal(part) * 100 / Decimal(whole)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _in_period(column, period_start: datetime, period_end: datetime):
    return (column >= period_start) & (column < period_end)


def _scoped(query: Select, model, workspace_id: int, channel: ChannelType | None) -> Select:
    query = query.where(model.workspace_id == workspace_id)
    if channel is not None:
        query = query.where(model.channel == channel)
    return query


def _count(db: Session, model, workspace_id: int, channel: ChannelType | None, *conditions) -> int:
    query = _scoped(select(func.count(model.id)), model, workspace_id, channel).where(*conditions)
    return db.scalar(query) or 0


def _channel_counts(db: Session, model, workspace_id: int, *conditions) -> dict[str, int]:
    counts = {channel.value: 0 for channel in ChannelType}
    counts.update(_grouped(db, model.channel, model, workspace_id, *conditions))
    return counts


def _grouped(db: Session, column, model, workspace_id: int, *conditions) -> dict[str, int]:
    query = (
        select(column, func.count(model.id))
        .where(model.workspace_id == workspace_id, *conditions)
        .group_by(column)
    )
    return {key.value: count for key, count in db.execute(query).all()}


def compute_order_metrics(
    db: Session,
    workspace_id: int,
    period_start: datetime,
    period_end: datetime,
    channel: ChannelType | None = None,
) -> OrderMetrics:
    created = _count(db, Order, workspace_id, channel, _in_period(Order.created_at, period_start, period_end))
    delivered = _count(
        db,
        Order,
        workspace_id,
        channel,
        Order.status == OrderStatus.DELIVERED,
        _in_period(Order.delivered_at, period_start, period_end),
    )
    cancelled = _count(
        db,
        Order,
        workspace_id,
        channel,
        Order.status == OrderStatus.CANCELLED,
        _in_period(Order.cancelled_at, period_start, period_end),
    )

    by_channel = None
    if channel is None:
        by_channel = _channel_counts(
            db, Order, workspace_id, _in_period(Order.created_at, period_start, period_end)
        )

    return OrderMetrics(
        created=created,
        delivered=delivered,
        cancelled=cancelled,
        cancellation_rate=percentage(cancelled, delivered + cancelled),
        by_channel=by_channel,
        by_status=_grouped(db, Order.status, Order, workspace_id),
    )


def compute_revenue_metrics(
    db: Session,
    workspace_id: int,
    period_start: datetime,
    period_end: datetime,
    channel: ChannelType | None = None,
    currency: str | None = None,
) -> RevenueMetrics:
    paid_in_period = (
        Order.payment_status == PaymentStatus.PAID,
        _in_period(Order.paid_at, period_start, period_end),
    )
    gross = db.scalar(
        _scoped(select(func.sum(Order.total_amount)), Order, workspace_id, channel).where(*paid_in_period)
    )
    average = db.scalar(
        _scoped(select(func.avg(Order.total_amount)), Order, workspace_id, channel).where(*paid_in_period)
    )
    refunded = db.scalar(
        _scoped(select(func.sum(Order.total_amount)), Order, workspace_id, channel).where(
            Order.payment_status == PaymentStatus.REFUNDED,
            _in_period(Order.refunded_at, period_start, period_end),
        )
    )

    gross_amount = _money(gross)
    refunded_amount = _money(refunded)
    return RevenueMetrics(
        gross=gross_amount,
        refunded=refunded_amount,
        net=gross_amount - refunded_amount,
        average_order_value=_money(average),
        currency=currency or DEFAULT_CURRENCY,
    )


def compute_lead_metrics(
    db: Session,
    workspace_id: int,
    period_start: datetime,
    period_end: datetime,
    channel: ChannelType | None = None,
) -> LeadMetrics:
    created = _count(db, Lead, workspace_id, channel, _in_period(Lead.created_at, period_start, period_end))
    converted = _count(
        db,
        Lead,
        workspace_id,
        channel,
        Lead.status == LeadStatus.CONVERTED,
        _in_period(Lead.converted_at, period_start, period_end),
    )
    lost = _count(
        db,
        Lead,
        workspace_id,
        channel,
        Lead.status == LeadStatus.LOST,
        _in_period(Lead.closed_at, period_start, period_end),
    )
    closed = _count(
        db,
        Lead,
        workspace_id,
        channel,
        Lead.status == LeadStatus.CLOSED,
        _in_period(Lead.closed_at, period_start, period_end),
    )
    open_leads = _count(db, Lead, workspace_id, None, Lead.status == LeadStatus.NEW)

    by_channel = None
    if channel is None:
        by_channel = _channel_counts(
            db, Lead, workspace_id, _in_period(Lead.created_at, period_start, period_end)
        )

    return LeadMetrics(
        created=created,
        converted=converted,
        lost=lost,
        closed=closed,
        conversion_rate=percentage(converted, converted + lost + closed),
        open=open_leads,
        by_channel=by_channel,
    )


def get_overview(
    db: Session,
    workspace_id: int,
    period_start: datetime,
    period_end: datetime,
    channel: ChannelType | None = None,
    currency: str | None = None,
) -> AnalyticsOverview:
    period_start, period_end = as_utc(period_start), as_utc(period_end)
    return AnalyticsOverview(
        period_start=period_start,
        period_end=period_end,
        orders=compute_order_metrics(db, workspace_id, period_start, period_end, channel),
        revenue=compute_revenue_metrics(db, workspace_id, period_start, period_end, channel, currency),
        leads=compute_lead_metrics(db, workspace_id, period_start, period_end, channel),
    )
