"""Order creation and lifecycle actions.

Fulfillment (``status``) and payment (``payment_status``) move on separate
axes; nothing here derives one from the other. Every action appends an
``OrderTimeline`` entry. Callers commit.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .constants import DEFAULT_CURRENCY
from .errors import NotFound, OrderNotEditable
from .lifecycle import (
    ChannelType,
    LeadStatus,
    OrderStatus,
    PaymentStatus,
    is_order_terminal,
    validate_lead_transition,
    validate_order_transition,
    validate_payment_transition,
)
from .models import Lead, Order, OrderItem, OrderTimeline, User, utc_now
from .schemas import OrderCreateRequest, OrderItemIn, ShipOrderRequest, UpdateShippingRequest

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

_TRANSITION_TIMESTAMPS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def generate_order_number(now: datetime | None = None) -> str:
    """ORD-YYYYMMDD-NNNNN, e.g. ORD-20251222-00001."""
    now = now or utc_now()
    return f"ORD-{now:%Y%m%d}-{secrets.randbelow(100_000):05d}"


def _unique_order_number(db: Session) -> str:
    while True:
        candidate = generate_order_number()
        if db.scalar(select(Order.id).where(Order.order_number == candidate)) is None:
            return candidate


def _add_timeline_entry(
    order: Order,
    note: str,
    performed_by: User | None,
    payment_status: PaymentStatus | None = None,
    event_type: str = "STATUS_CHANGE",
) -> None:
    order.timeline.append(
        OrderTimeline(
            event_type=event_type,
            status=order.status,
            payment_status=payment_status,
            note=note,
            performed_by_id=performed_by.id if performed_by else None,
        )
    )


def _build_items(items: list[OrderItemIn]) -> tuple[list[OrderItem], Decimal]:
    built: list[OrderItem] = []
    total = Decimal("0")
    for item in items:
        if not item.name or not item.name.strip():
            continue
        quantity = item.quantity or 1
        unit_price = (item.unit_price or Decimal("0")).quantize(CENTS, rounding=ROUND_HALF_UP)
        line_total = unit_price * quantity
        built.append(
            OrderItem(
                name=item.name.strip(),
                quantity=quantity,
                unit_price=unit_price,
                total_price=line_total,
            )
        )
        total += line_total
    return built, total


def get_order(db: Session, workspace_id: int, order_id: int) -> Order:
    order = db.scalar(select(Order).where(Order.id == order_id, Order.workspace_id == workspace_id))
    if order is None:
        raise NotFound("Order", order_id)
    return order


def find_order_by_idempotency_key(db: Session, workspace_id: int, key: str) -> Order | None:
    return db.scalar(
        select(Order).where(Order.idempotency_key == key, Order.workspace_id == workspace_id)
    )


def list_orders(
    db: Session,
    workspace_id: int,
    status: OrderStatus | None = None,
    payment_status: PaymentStatus | None = None,
    channel: ChannelType | None = None,
    assigned_to: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Order]:
    query = select(Order).where(Order.workspace_id == workspace_id)
    if status is not None:
        query = query.where(Order.status == status)
    if payment_status is not None:
        query = query.where(Order.payment_status == payment_status)
    if channel is not None:
        query = query.where(Order.channel == channel)
    if assigned_to is not None:
        query = query.where(Order.assigned_to_id == assigned_to)
    query = (
        query.options(selectinload(Order.items), selectinload(Order.timeline))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(db.scalars(query).all())


def create_order(
    db: Session,
    workspace_id: int,
    payload: OrderCreateRequest,
    performed_by: User | None = None,
) -> tuple[Order, bool]:
    """Create an order, or return the one already stored under the idempotency key.

    Returns the order and whether it was newly created. Linking a NEW lead
    converts it and marks this order as the converting order.
    """
    if payload.idempotency_key:
        existing = find_order_by_idempotency_key(db, workspace_id, payload.idempotency_key)
        if existing:
            return existing, False

    order = Order(
        workspace_id=workspace_id,
        order_number=_unique_order_number(db),
        idempotency_key=payload.idempotency_key or None,
        customer_handle=payload.customer_handle.strip(),
        customer_name=payload.customer_name.strip() if payload.customer_name else None,
        channel=payload.channel,
        status=OrderStatus.NEW,
        payment_status=PaymentStatus.UNPAID,
        payment_method=payload.payment_method,
        currency=(payload.currency or DEFAULT_CURRENCY).upper(),
        notes=payload.notes,
    )

    lead: Lead | None = None
    if payload.lead_id is not None:
        lead = db.scalar(
            select(Lead).where(Lead.id == payload.lead_id, Lead.workspace_id == workspace_id)
        )
        if lead is None:
            raise NotFound("Lead", payload.lead_id)
        order.lead_id = lead.id
        if lead.status is LeadStatus.NEW and lead.converted_order_id is None:
            validate_lead_transition(lead.status, LeadStatus.CONVERTED)
            lead.status = LeadStatus.CONVERTED
            lead.converted_at = utc_now()
            order.is_converting_order = True

    items, calculated_total = _build_items(payload.items)
    order.items.extend(items)
    total = payload.total_amount if payload.total_amount is not None else calculated_total
    order.total_amount = total.quantize(CENTS, rounding=ROUND_HALF_UP)

    note = "Order created from lead conversion" if order.is_converting_order else "Order created from conversation"
    _add_timeline_entry(order, note, performed_by)

    db.add(order)
    db.flush()

    if order.is_converting_order and lead is not None:
        lead.converted_order_id = order.id
        lead.converted_order_number = order.order_number

    logger.info("Created order %s in workspace %s", order.order_number, workspace_id)
    return order, True


def _transition(order: Order, target: OrderStatus, note: str, performed_by: User | None) -> Order:
    validate_order_transition(order.status, target)
    previous = order.status
    order.status = target
    setattr(order, _TRANSITION_TIMESTAMPS[target], utc_now())
    _add_timeline_entry(order, note, performed_by)
    logger.info("Order %s %s -> %s", order.order_number, previous.value, target.value)
    return order


def confirm_order(order: Order, performed_by: User | None = None) -> Order:
    return _transition(order, OrderStatus.CONFIRMED, "Order confirmed", performed_by)


def ship_order(
    order: Order,
    request: ShipOrderRequest | None = None,
    performed_by: User | None = None,
) -> Order:
    validate_order_transition(order.status, OrderStatus.SHIPPED)
    if request is not None:
        order.carrier = request.carrier
        order.tracking_number = request.tracking_number
        order.tracking_url = request.tracking_url
    note = request.note if request is not None and request.note else "Order shipped"
    return _transition(order, OrderStatus.SHIPPED, note, performed_by)


def deliver_order(order: Order, performed_by: User | None = None) -> Order:
    return _transition(order, OrderStatus.DELIVERED, "Order delivered", performed_by)


def cancel_order(order: Order, reason: str | None = None, performed_by: User | None = None) -> Order:
    validate_order_transition(order.status, OrderStatus.CANCELLED)
    order.cancellation_reason = reason
    note = f"Order cancelled: {reason}" if reason else "Order cancelled"
    return _transition(order, OrderStatus.CANCELLED, note, performed_by)


def update_payment_status(
    order: Order,
    target: PaymentStatus,
    performed_by: User | None = None,
    note: str | None = None,
) -> Order:
    previous = order.payment_status
    validate_payment_transition(previous, target)
    order.payment_status = target
    if target is PaymentStatus.PAID:
        order.paid_at = utc_now()
    elif target is PaymentStatus.REFUNDED:
        order.refunded_at = utc_now()

    _add_timeline_entry(
        order,
        note or f"Payment status changed from {previous.value} to {target.value}",
        performed_by,
        payment_status=target,
        event_type="PAYMENT_CHANGE",
    )
    logger.info("Order %s payment %s -> %s", order.order_number, previous.value, target.value)
    return order


def refund_order(order: Order, reason: str | None = None, performed_by: User | None = None) -> Order:
    note = f"Payment refunded: {reason}" if reason else "Payment refunded"
    return update_payment_status(order, PaymentStatus.REFUNDED, performed_by, note=note)


def update_order_items(
    order: Order,
    items: list[OrderItemIn],
    performed_by: User | None = None,
) -> Order:
    """Replace all line items and recompute the total."""
    if is_order_terminal(order.status):
        raise OrderNotEditable(order.status, "update items")

    built, total = _build_items(items)
    order.items.clear()
    order.items.extend(built)
    order.total_amount = total
    _add_timeline_entry(
        order,
        f"Order items updated, new total: {order.currency} {total}",
        performed_by,
        event_type="ITEMS_UPDATED",
    )
    return order


def update_order_shipping(
    order: Order,
    request: UpdateShippingRequest,
    performed_by: User | None = None,
) -> Order:
    if is_order_terminal(order.status):
        raise OrderNotEditable(order.status, "update shipping")

    changed = []
    for field in ("carrier", "tracking_number", "tracking_url"):
        value = getattr(request, field)
        if value is not None:
            setattr(order, field, value)
            changed.append(field)

    note = f"Shipping details updated: {', '.join(changed)}" if changed else "Shipping details updated"
    _add_timeline_entry(order, note, performed_by, event_type="SHIPPING_UPDATED")
    return order


def assign_order(
    db: Session,
    order: Order,
    assignee_id: int | None,
    performed_by: User | None = None,
) -> Order:
    """Assign the order to a member of its workspace, or unassign it with ``None``."""
    assignee = None
    if assignee_id is not None:
        assignee = db.scalar(
            select(User).where(User.id == assignee_id, User.workspace_id == order.workspace_id)
        )
        if assignee is None:
            raise NotFound("User", assignee_id)
    previous = db.get(User, order.assigned_to_id) if order.assigned_to_id else None

    if assignee is None:
        note = f"Order unassigned from {previous.full_name}" if previous else "Order unassigned"
    elif previous is None:
        note = f"Order assigned to {assignee.full_name}"
    else:
        note = f"Order reassigned from {previous.full_name} to {assignee.full_name}"

    order.assigned_to_id = assignee.id if assignee else None
    _add_timeline_entry(order, note, performed_by, event_type="ASSIGNED")
    logger.info("Order %s assigned to user %s", order.order_number, order.assigned_to_id)
    return order
