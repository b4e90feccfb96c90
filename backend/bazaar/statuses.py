# Overview: Closed status vocabularies and their allowed transitions.

"""
Order / payment state machine.

ORDER:
    pending -> processing   (settlement success only)
    processing -> shipped -> delivered
    pending -> cancelled    (manual)
    delivered, cancelled are terminal.

PAYMENT ATTEMPT:
    pending -> completed | failed   (both terminal)

ORDER PAYMENT STATUS (aggregate over attempts):
    pending -> completed | failed
    failed -> pending               (a retry has started)

Statuses are persisted as their string values; every write goes through
`ensure_transition`, so an illegal move (e.g. delivered -> pending) is
rejected before it reaches the database.
"""

from __future__ import annotations

from enum import Enum

from .errors import IllegalTransitionError, ValidationError


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    CARD = "card"
    CASH = "cash"
    DIGITAL_WALLET = "digital_wallet"
    BANK_TRANSFER = "bank_transfer"


class ChangeType(str, Enum):
    SALE = "sale"
    RESTOCK = "restock"
    ADJUSTMENT = "adjustment"
    RETURN = "return"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

PAYMENT_ATTEMPT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}

ORDER_PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
}

TERMINAL_ORDER_STATUSES = frozenset(
    status for status, targets in ORDER_TRANSITIONS.items() if not targets
)


def parse_enum(enum_cls, value, field: str):
    """Coerce raw input into a member of `enum_cls` or raise ValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {field}: {value!r}. Must be one of {allowed}",
            details={"field": field, "allowed": [m.value for m in enum_cls]},
        )


def ensure_transition(table: dict, entity: str, current, target) -> None:
    current_member = type(target)(current)
    if target not in table[current_member]:
        raise IllegalTransitionError(entity, current_member.value, target.value)


def ensure_order_transition(current: str, target: OrderStatus) -> None:
    ensure_transition(ORDER_TRANSITIONS, "order", current, target)


def ensure_payment_attempt_transition(current: str, target: PaymentStatus) -> None:
    ensure_transition(PAYMENT_ATTEMPT_TRANSITIONS, "payment", current, target)


def ensure_order_payment_transition(current: str, target: PaymentStatus) -> None:
    ensure_transition(ORDER_PAYMENT_TRANSITIONS, "order payment status", current, target)
