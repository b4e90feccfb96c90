# Overview: Checkout; turns a cart or POS basket into a committed order with stock decremented.

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import (
    AuthorizationError,
    ConcurrencyConflictError,
    EmptyCartError,
    MultiSellerCartError,
    NotFoundError,
    ValidationError,
)
from ..models import Order
from ..statuses import ChangeType, OrderStatus, PaymentStatus
from .availability_service import CheckoutLine, normalize_lines
from bazaar.money import MAX_AMOUNT_FILS
from bazaar.time_utils import utcnow

logger = logging.getLogger(__name__)

"""
Checkout Invariants (authoritative)

- One checkout == one unit of work: re-read products, snapshot lines, insert
  the order header, decrement stock + append log entries. Any failure rolls
  ALL of it back; there is never an order without its decrements or a
  decrement without its order.
- The availability pre-check runs before the unit of work and is advisory;
  the ledger's conditional update is the real gate.
- Client-supplied prices and totals are ignored. total_fils is the sum of the
  snapshotted line totals.
- The cart is cleared only after commit, and never for POS orders.
- Notifications run after commit and cannot fail the checkout.
"""

MAX_IDEMPOTENCY_KEY_LENGTH = 128


@dataclass(frozen=True)
class OrderDraft:
    seller_id: int
    items: list[dict]
    total_fils: int


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    replayed: bool = False


class OrderAggregator:
    """Builds the immutable line snapshot for an order."""

    def build(self, lines: list[CheckoutLine], products: dict) -> OrderDraft:
        seller_ids = sorted({products[line.product_id].seller_id for line in lines})
        if len(seller_ids) > 1:
            raise MultiSellerCartError(
                "All items in an order must come from the same seller",
                details={"seller_ids": seller_ids},
            )

        items = []
        total_fils = 0
        for line in lines:
            product = products[line.product_id]
            if product.price_fils is None:
                raise ValidationError(
                    f"Product {product.id} has no price and cannot be sold",
                    details={"product_id": product.id},
                )
            line_total = product.price_fils * line.quantity
            items.append({
                "product_id": product.id,
                "name": product.name,
                "unit_price_fils": product.price_fils,
                "quantity": line.quantity,
                "line_total_fils": line_total,
            })
            total_fils += line_total

        if total_fils > MAX_AMOUNT_FILS:
            raise ValidationError("Order total exceeds the maximum amount", details={"total_fils": total_fils})

        # seller of the first line; all lines share it at this point
        return OrderDraft(seller_id=products[lines[0].product_id].seller_id, items=items, total_fils=total_fils)


def _clean_idempotency_key(key) -> str | None:
    if key is None:
        return None
    key = str(key).strip()
    if not key:
        return None
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(
            f"Idempotency-Key exceeds max length {MAX_IDEMPOTENCY_KEY_LENGTH}",
            details={"field": "Idempotency-Key"},
        )
    return key


class CheckoutService:
    def __init__(self, repository, ledger, validator, *, aggregator=None, notifier=None, retry_attempts: int = 5):
        self.repository = repository
        self.ledger = ledger
        self.validator = validator
        self.aggregator = aggregator or OrderAggregator()
        self.notifier = notifier
        self.retry_attempts = retry_attempts

    def _resolve_lines(self, actor, *, is_pos_order: bool, items) -> list[CheckoutLine]:
        if is_pos_order:
            if not (actor.is_admin or actor.is_seller):
                raise AuthorizationError("Only sellers and admins can submit POS orders")
            return normalize_lines(items)

        cart_items = self.repository.list_cart_items(actor.user_id)
        if not cart_items:
            raise EmptyCartError("Cart is empty")
        return normalize_lines([{"product_id": c.product_id, "quantity": c.quantity} for c in cart_items])

    def _resolve_customer(self, actor, *, is_pos_order: bool, customer_id) -> int:
        if not is_pos_order or customer_id is None:
            return actor.user_id
        if self.repository.get_user(customer_id) is None:
            raise NotFoundError("customer", customer_id)
        return customer_id

    def checkout(
        self,
        actor,
        *,
        items=None,
        is_pos_order: bool = False,
        customer_id: int | None = None,
        shipping_address=None,
        idempotency_key=None,
    ) -> CheckoutResult:
        """
        Create an order for `actor`.

        Non-POS orders take their lines from the actor's cart. POS orders take
        `items` from the terminal and may name a walk-in `customer_id`.

        Raises:
            EmptyCartError, ValidationError, NotFoundError,
            InsufficientStockError, AuthorizationError,
            ConcurrencyConflictError (retries exhausted)
        """
        key = _clean_idempotency_key(idempotency_key)
        customer = self._resolve_customer(actor, is_pos_order=is_pos_order, customer_id=customer_id)

        if key is not None:
            existing = self.repository.find_order_by_idempotency_key(customer, key)
            if existing is not None:
                logger.info("Checkout replay: key %r already produced order %s", key, existing.id)
                return CheckoutResult(order=existing, replayed=True)

        if shipping_address is not None and not isinstance(shipping_address, dict):
            raise ValidationError("shipping_address must be an object", details={"field": "shipping_address"})

        lines = self._resolve_lines(actor, is_pos_order=is_pos_order, items=items)

        # Advisory pre-check: fail fast before taking the write lock.
        products = self.validator.check(lines)
        if is_pos_order and not actor.is_admin:
            foreign = sorted(p.id for p in products.values() if p.seller_id != actor.seller_id)
            if foreign:
                raise AuthorizationError(
                    "POS orders may only contain your own products",
                    details={"product_ids": foreign},
                )

        def _op():
            fresh = {}
            for line in lines:
                product = self.repository.get_product(line.product_id)
                if product is None:
                    raise NotFoundError("product", line.product_id)
                if not product.is_active:
                    raise ValidationError(
                        f"Product {product.id} is not available for sale",
                        details={"product_id": product.id},
                    )
                fresh[product.id] = product

            draft = self.aggregator.build(lines, fresh)
            now = utcnow()
            order = self.repository.add_order(Order(
                customer_id=customer,
                seller_id=draft.seller_id,
                created_by_user_id=actor.user_id,
                items=draft.items,
                total_fils=draft.total_fils,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                is_pos_order=is_pos_order,
                shipping_address=shipping_address,
                stock_reserved=True,
                idempotency_key=key,
                created_at=now,
                updated_at=now,
            ))

            movements = [
                self.ledger.apply_delta(
                    line.product_id,
                    -line.quantity,
                    ChangeType.SALE,
                    reason=f"Order #{order.id}",
                    order_id=order.id,
                    actor_user_id=actor.user_id,
                )
                for line in lines
            ]
            return order, movements

        try:
            order, movements = self.repository.run_in_transaction(_op, attempts=self.retry_attempts)
        except ConcurrencyConflictError:
            if key is None:
                raise
            # A concurrent request with the same key won the unique constraint.
            existing = self.repository.find_order_by_idempotency_key(customer, key)
            if existing is None:
                raise
            return CheckoutResult(order=existing, replayed=True)

        logger.info(
            "Checkout committed order %s (seller %s, total %s fils, %s line(s), pos=%s)",
            order.id, order.seller_id, order.total_fils, len(order.items), is_pos_order,
        )

        if not is_pos_order:
            self._clear_cart(actor.user_id, order.id)

        if self.notifier is not None:
            self.notifier.new_order(order)
            for movement in movements:
                self.notifier.low_stock_if_needed(movement.entry.product_id, movement.new)

        return CheckoutResult(order=order, replayed=False)

    def _clear_cart(self, user_id: int, order_id: int) -> None:
        try:
            self.repository.run_in_transaction(lambda: self.repository.clear_cart(user_id))
        except Exception:
            # The order is committed; a stale cart is recoverable, a lost order is not.
            logger.exception("Failed to clear cart for user %s after order %s", user_id, order_id)
