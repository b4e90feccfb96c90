# Overview: Order queries, manual status transitions, and stock release/re-reservation.

from __future__ import annotations

import logging

from ..errors import ConcurrencyConflictError, IllegalTransitionError, NotFoundError
from ..permissions import require_order_access, require_order_fulfillment
from ..statuses import ChangeType, OrderStatus, PaymentStatus, ensure_order_transition, parse_enum
from bazaar.time_utils import utcnow

logger = logging.getLogger(__name__)


class OrderService:
    """
    Manual order lifecycle.

    pending -> processing is reserved for settlement (PaymentService); every
    other move goes through transition(). Cancelling an order whose stock is
    still reserved gives the stock back with compensating adjustments.
    """

    def __init__(self, repository, ledger):
        self.repository = repository
        self.ledger = ledger

    def list_for(self, actor, *, status=None):
        if status is not None:
            status = parse_enum(OrderStatus, status, "status").value
        if actor.is_admin:
            return self.repository.list_orders(status=status)
        if actor.is_seller:
            return self.repository.list_orders(seller_id=actor.seller_id, status=status)
        return self.repository.list_orders(customer_id=actor.user_id, status=status)

    def get(self, actor, order_id: int):
        order = self.repository.get_order(order_id)
        if order is None:
            raise NotFoundError("order", order_id)
        require_order_access(actor, order)
        return order

    def transition(self, actor, order_id: int, target):
        target = parse_enum(OrderStatus, target, "status")

        def _op():
            order = self.repository.get_order(order_id, lock=True)
            if order is None:
                raise NotFoundError("order", order_id)
            require_order_access(actor, order)

            if target == OrderStatus.CANCELLED:
                is_customer = order.customer_id == actor.user_id
                if not is_customer:
                    require_order_fulfillment(actor, order)
            elif target == OrderStatus.PROCESSING:
                # Only a successful settlement moves an order into processing.
                raise IllegalTransitionError("order", order.status, target.value)
            else:
                # customers may only cancel
                require_order_fulfillment(actor, order)

            ensure_order_transition(order.status, target)

            released = False
            if target == OrderStatus.CANCELLED:
                pending = [
                    p for p in self.repository.list_payments(order.id)
                    if p.status == PaymentStatus.PENDING.value
                ]
                if pending:
                    raise ConcurrencyConflictError(
                        "A payment attempt for this order is still in progress",
                        details={"order_id": order.id, "payment_id": pending[0].id},
                    )
                if order.stock_reserved:
                    self.release_stock(order, reason=f"Order #{order.id} cancelled", actor_user_id=actor.user_id)
                    released = True

            previous = order.status
            order.status = target.value
            order.updated_at = utcnow()
            return order, previous, released

        order, previous, released = self.repository.run_in_transaction(_op)
        logger.info(
            "Order %s: %s -> %s by user %s%s",
            order.id, previous, order.status, actor.user_id, " (stock released)" if released else "",
        )
        return order

    def release_stock(self, order, *, reason: str, payment_id: int | None = None, actor_user_id: int | None = None):
        """Compensating restock of every line. Caller owns the unit of work."""
        movements = [
            self.ledger.apply_delta(
                line["product_id"],
                line["quantity"],
                ChangeType.ADJUSTMENT,
                reason=reason,
                order_id=order.id,
                payment_id=payment_id,
                actor_user_id=actor_user_id,
            )
            for line in order.items
        ]
        order.stock_reserved = False
        return movements

    def reserve_stock(self, order, *, reason: str, payment_id: int | None = None, actor_user_id: int | None = None):
        """Take the order's lines out of stock again (payment retry). Caller owns the unit of work."""
        movements = [
            self.ledger.apply_delta(
                line["product_id"],
                -line["quantity"],
                ChangeType.SALE,
                reason=reason,
                order_id=order.id,
                payment_id=payment_id,
                actor_user_id=actor_user_id,
            )
            for line in order.items
        ]
        order.stock_reserved = True
        return movements
