from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from conftest import make_workspace

from inboop import leads, orders
from inboop.errors import (
    InvalidLeadTransition,
    InvalidOrderTransition,
    InvalidPaymentTransition,
    NotFound,
    OrderNotEditable,
)
from inboop.lifecycle import ChannelType, LeadStatus, OrderStatus, PaymentStatus
from inboop.models import Order
from inboop.schemas import (
    LeadCreateRequest,
    OrderCreateRequest,
    OrderItemIn,
    ShipOrderRequest,
    UpdateShippingRequest,
)


def new_order(session, workspace_id: int, **overrides) -> Order:
    payload = {
        "customer_handle": "@priya",
        "customer_name": "Priya",
        "channel": ChannelType.INSTAGRAM,
        "items": [
            OrderItemIn(name="Kurta", quantity=2, unit_price=Decimal("450.00")),
            OrderItemIn(name="Scarf", unit_price=Decimal("199.50")),
        ],
    }
    payload.update(overrides)
    order, _ = orders.create_order(session, workspace_id, OrderCreateRequest(**payload))
    session.commit()
    return order


def test_order_number_format() -> None:
    number = orders.generate_order_number(datetime(2025, 12, 22, tzinfo=timezone.utc))
    assert re.fullmatch(r"ORD-20251222-\d{5}", number)


def test_create_order_totals_items_and_timeline(session) -> None:
    workspace = make_workspace(session)

    order = new_order(
        session,
        workspace.id,
        items=[
            OrderItemIn(name="Kurta", quantity=2, unit_price=Decimal("450.00")),
            OrderItemIn(name="  ", unit_price=Decimal("10")),
            OrderItemIn(name="Scarf", unit_price=Decimal("199.50")),
        ],
    )

    assert order.status is OrderStatus.NEW
    assert order.payment_status is PaymentStatus.UNPAID
    assert [item.name for item in order.items] == ["Kurta", "Scarf"]
    assert order.total_amount == Decimal("1099.50")
    assert order.currency == "INR"
    assert [entry.note for entry in order.timeline] == ["Order created from conversation"]


def test_explicit_total_wins_over_items(session) -> None:
    workspace = make_workspace(session)

    order = new_order(session, workspace.id, total_amount=Decimal("999"))

    assert order.total_amount == Decimal("999.00")


def test_idempotency_key_returns_existing_order(session) -> None:
    workspace = make_workspace(session)
    first = new_order(session, workspace.id, idempotency_key="dm-123")

    again, created = orders.create_order(
        session,
        workspace.id,
        OrderCreateRequest(customer_handle="@other", channel=ChannelType.WHATSAPP, idempotency_key="dm-123"),
    )

    assert created is False
    assert again.id == first.id
    assert len(orders.list_orders(session, workspace.id)) == 1


def test_linking_new_lead_converts_it(session) -> None:
    workspace = make_workspace(session)
    lead = leads.create_lead(
        session,
        workspace.id,
        LeadCreateRequest(customer_handle="@priya", channel=ChannelType.INSTAGRAM),
    )
    session.commit()

    order = new_order(session, workspace.id, lead_id=lead.id)

    assert order.is_converting_order is True
    assert order.timeline[0].note == "Order created from lead conversion"
    assert lead.status is LeadStatus.CONVERTED
    assert lead.converted_order_id == order.id
    assert lead.converted_order_number == order.order_number
    assert lead.converted_at is not None


def test_linking_closed_lead_does_not_reconvert(session) -> None:
    workspace = make_workspace(session)
    lead = leads.create_lead(
        session,
        workspace.id,
        LeadCreateRequest(customer_handle="@sam", channel=ChannelType.MESSENGER),
    )
    leads.update_lead_status(lead, LeadStatus.CLOSED)
    session.commit()

    order = new_order(session, workspace.id, lead_id=lead.id)

    assert order.lead_id == lead.id
    assert not order.is_converting_order
    assert lead.status is LeadStatus.CLOSED


def test_lead_from_another_workspace_is_not_found(session) -> None:
    workspace = make_workspace(session, slug="acme")
    other = make_workspace(session, slug="other")
    lead = leads.create_lead(
        session,
        other.id,
        LeadCreateRequest(customer_handle="@x", channel=ChannelType.WHATSAPP),
    )
    session.commit()

    with pytest.raises(NotFound):
        orders.create_order(
            session,
            workspace.id,
            OrderCreateRequest(customer_handle="@x", channel=ChannelType.WHATSAPP, lead_id=lead.id),
        )


def test_full_fulfillment_track(session) -> None:
    workspace = make_workspace(session)
    order = new_order(session, workspace.id)

    orders.confirm_order(order)
    orders.ship_order(order, ShipOrderRequest(carrier="Delhivery", tracking_number="DL123"))
    orders.deliver_order(order)
    session.commit()

    assert order.status is OrderStatus.DELIVERED
    assert order.carrier == "Delhivery"
    assert order.confirmed_at and order.shipped_at and order.delivered_at
    assert [entry.status for entry in order.timeline] == [
        OrderStatus.NEW,
        OrderStatus.CONFIRMED,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
    ]

    with pytest.raises(InvalidOrderTransition) as excinfo:
        orders.cancel_order(order, "changed mind")
    assert (excinfo.value.current, excinfo.value.target) == (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


def test_cannot_skip_confirmation(session) -> None:
    workspace = make_workspace(session)
    order = new_order(session, workspace.id)

    with pytest.raises(InvalidOrderTransition):
        orders.ship_order(order, ShipOrderRequest(carrier="BlueDart"))
    assert order.status is OrderStatus.NEW
    assert order.carrier is None


def test_cancel_records_reason(session) -> None:
    workspace = make_workspace(session)
    order = new_order(session, workspace.id)
    orders.confirm_order(order)

    orders.cancel_order(order, "out of stock")
    session.commit()

    assert order.status is OrderStatus.CANCELLED
    assert order.cancellation_reason == "out of stock"
    assert order.timeline[-1].note == "Order cancelled: out of stock"


def test_legacy_pending_order_cannot_move(session) -> None:
    workspace = make_workspace(session)
    order = new_order(session, workspace.id)
    order.status = OrderStatus.PENDING
    session.commit()

    with pytest.raises(InvalidOrderTransition):
        orders.confirm_order(order)
    with pytest.raises(InvalidOrderTransition):
        orders.cancel_order(order)


def test_payment_is_independent_of_fulfillment(session) -> None:
    workspace = make_workspace(session)
    order = new_order(session, workspace.id)

    orders.update_payment_status(order, PaymentStatus.PAID)
    session.commit()
    assert order.status is OrderStatus.NEW
    assert order.paid_at is not None

    orders.confirm_order(order)
    orders.cancel_order(order)
    assert order.payment_status is PaymentStatus.PAID

    orders.refund_order(order, "cancelled")
    session.commit()
    assert order.payment_status is PaymentStatus.REFUNDED
    assert order.status is OrderStatus.CANCELLED
    assert order.refunded_at is not None
    assert order.timeline[-1].payment_status is PaymentStatus.REFUNDED
    assert order.timeline[-1].note == "Payment refunded: cancelled"

    with pytest.raises(InvalidPaymentTransition):
        orders.refund_order(order)


def test_refund_requires_paid(session) -> None:
    workspace = make_workspace(session)
    order = new_order(session, workspace.id)

    with pytest.raises(InvalidPaymentTransition):
        orders.refund_order(order)


def test_update_items_recomputes_total(session) -> None:
    workspace = make_workspace(session)
    order = new_order(session, workspace.id)

    orders.update_order_items(order, [OrderItemIn(name="Saree", quantity=3, unit_price=Decimal("1200"))])
    session.commit()

    assert [item.name for item in order.items] == ["Saree"]
    assert order.total_amount == Decimal("3600.00")
    assert order.timeline[-1].event_type == "ITEMS_UPDATED"


def test_terminal_orders_are_not_editable(session) -> None:
    workspace = make_workspace(session)
    order = new_order(session, workspace.id)
    orders.cancel_order(order)

    with pytest.raises(OrderNotEditable):
        orders.update_order_items(order, [OrderItemIn(name="Saree")])
    with pytest.raises(OrderNotEditable):
        orders.update_order_shipping(order, UpdateShippingRequest(carrier="DTDC"))


def test_update_shipping_only_touches_given_fields(session) -> None:
    workspace = make_workspace(session)
    order = new_order(session, workspace.id)
    orders.confirm_order(order)
    orders.ship_order(order, ShipOrderRequest(carrier="Delhivery", tracking_number="DL1"))

    orders.update_order_shipping(order, UpdateShippingRequest(tracking_number="DL2"))

    assert order.carrier == "Delhivery"
    assert order.tracking_number == "DL2"
    assert order.timeline[-1].note == "Shipping details updated: tracking_number"


def test_list_orders_filters(session) -> None:
    workspace = make_workspace(session)
    first = new_order(session, workspace.id)
    second = new_order(session, workspace.id, channel=ChannelType.WHATSAPP)
    orders.confirm_order(second)
    session.commit()

    assert [o.id for o in orders.list_orders(session, workspace.id, status=OrderStatus.NEW)] == [first.id]
    assert [o.id for o in orders.list_orders(session, workspace.id, channel=ChannelType.WHATSAPP)] == [second.id]


def test_lead_status_changes(session) -> None:
    workspace = make_workspace(session)
    lead = leads.create_lead(
        session,
        workspace.id,
        LeadCreateRequest(customer_handle="@asha", channel=ChannelType.WHATSAPP),
    )

    leads.update_lead_status(lead, LeadStatus.LOST)
    session.commit()
    assert lead.status is LeadStatus.LOST
    assert lead.closed_at is not None

    with pytest.raises(InvalidLeadTransition):
        leads.update_lead_status(lead, LeadStatus.CONVERTED)
    with pytest.raises(NotFound):
        leads.get_lead(session, workspace.id, lead.id + 100)


def test_assign_reassign_and_unassign(session) -> None:
    workspace = make_workspace(session, members=2)
    owner, teammate = sorted(workspace.users, key=lambda user: user.id)
    order = new_order(session, workspace.id)

    orders.assign_order(session, order, owner.id, performed_by=owner)
    session.commit()
    assert order.assigned_to_id == owner.id
    assert order.timeline[-1].note == "Order assigned to User 0"
    assert order.timeline[-1].event_type == "ASSIGNED"

    orders.assign_order(session, order, teammate.id, performed_by=owner)
    assert order.timeline[-1].note == "Order reassigned from User 0 to User 1"
    session.commit()
    assert [o.id for o in orders.list_orders(session, workspace.id, assigned_to=teammate.id)] == [order.id]

    orders.assign_order(session, order, None, performed_by=owner)
    assert order.assigned_to_id is None
    assert order.timeline[-1].note == "Order unassigned from User 1"


def test_assignee_must_belong_to_the_workspace(session) -> None:
    workspace = make_workspace(session, slug="acme")
    other = make_workspace(session, slug="other")
    outsider = other.users[0]
    order = new_order(session, workspace.id)

    with pytest.raises(NotFound):
        orders.assign_order(session, order, outsider.id)
    assert order.assigned_to_id is None
