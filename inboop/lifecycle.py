"""Order, payment and lead status rules.

Fulfillment and payment are two independent axes on an order:

    NEW -> CONFIRMED -> SHIPPED -> DELIVERED
    NEW | CONFIRMED | SHIPPED -> CANCELLED

    UNPAID -> PAID -> REFUNDED

Leads only ever leave NEW, and only for a terminal outcome.

Legacy statuses are kept so historical rows still load. They are never a
legal transition target, and nothing transitions out of them either.
"""

from __future__ import annotations

from enum import Enum
from typing import Final

from .errors import InvalidLeadTransition, InvalidOrderTransition, InvalidPaymentTransition


class ChannelType(str, Enum):
    INSTAGRAM = "INSTAGRAM"
    WHATSAPP = "WHATSAPP"
    MESSENGER = "MESSENGER"


class OrderStatus(str, Enum):
    NEW = "NEW"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    # legacy
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    REFUNDED = "REFUNDED"

    @property
    def is_legacy(self) -> bool:
        return self in LEGACY_ORDER_STATUSES


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    ONLINE = "ONLINE"
    COD = "COD"
    MANUAL = "MANUAL"
    BANK_TRANSFER = "BANK_TRANSFER"


class LeadStatus(str, Enum):
    NEW = "NEW"
    CONVERTED = "CONVERTED"
    CLOSED = "CLOSED"
    LOST = "LOST"
    # legacy
    CONTACTED = "CONTACTED"
    QUALIFIED = "QUALIFIED"
    NEGOTIATING = "NEGOTIATING"
    SPAM = "SPAM"

    @property
    def is_legacy(self) -> bool:
        return self in LEGACY_LEAD_STATUSES


LEGACY_ORDER_STATUSES: Final[frozenset[OrderStatus]] = frozenset(
    {OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.REFUNDED}
)
TERMINAL_ORDER_STATUSES: Final[frozenset[OrderStatus]] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)
ORDER_TRANSITIONS: Final[dict[OrderStatus, frozenset[OrderStatus]]] = {
    OrderStatus.NEW: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
}

PAYMENT_TRANSITIONS: Final[dict[PaymentStatus, frozenset[PaymentStatus]]] = {
    PaymentStatus.UNPAID: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
}

LEGACY_LEAD_STATUSES: Final[frozenset[LeadStatus]] = frozenset(
    {
        LeadStatus.CONTACTED,
        LeadStatus.QUALIFIED,
        LeadStatus.NEGOTIATING,
        LeadStatus.SPAM,
    }
)
TERMINAL_LEAD_STATUSES: Final[frozenset[LeadStatus]] = frozenset(
    {LeadStatus.CONVERTED, LeadStatus.CLOSED, LeadStatus.LOST}
)
LEAD_TRANSITIONS: Final[dict[LeadStatus, frozenset[LeadStatus]]] = {
    LeadStatus.NEW: TERMINAL_LEAD_STATUSES,
}


def is_order_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_ORDER_STATUSES


def can_transition_order(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def validate_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    if not can_transition_order(current, target):
        raise InvalidOrderTransition(current, target)


def is_payment_terminal(status: PaymentStatus) -> bool:
    return status is PaymentStatus.REFUNDED


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in PAYMENT_TRANSITIONS.get(current, frozenset())


def validate_payment_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    if not can_transition_payment(current, target):
        raise InvalidPaymentTransition(current, target)


def is_lead_terminal(status: LeadStatus) -> bool:
    return status in TERMINAL_LEAD_STATUSES


def can_transition_lead(current: LeadStatus, target: LeadStatus) -> bool:
    return target in LEAD_TRANSITIONS.get(current, frozenset())


def validate_lead_transition(current: LeadStatus, target: LeadStatus) -> None:
    if not can_transition_lead(current, target):
        raise InvalidLeadTransition(current, target)
