# Overview: Service-layer operations for payment; attempts, settlement, compensation and retry.

"""
Payment Processing Service

FLOW (one attempt):
1. Unit of work: validate, record a PENDING attempt, re-reserve stock if an
   earlier decline released it. Commit.
2. Call the settlement gateway with NO transaction open.
3. Unit of work: apply the outcome.
   - Completed: attempt COMPLETED, order pending -> processing, order
     payment_status COMPLETED. After commit, credit loyalty (idempotent).
   - Declined: attempt FAILED, order payment_status FAILED, compensating
     adjustment per line (tagged with order and payment), stock_reserved
     cleared. After commit, notify the admin inbox.
If step 3 never commits, the attempt stays PENDING with the stock reserved;
an admin settles it by hand with confirm() or fail().

DESIGN PRINCIPLES:
- Many attempts per order, at most one COMPLETED, at most one PENDING.
- amount_fils always equals the order total; partial payments do not exist.
- Cash over-tender is recorded as change; under-tender is rejected.
- Declines are compensated, never rolled back: the decrement was committed
  at checkout and the restock is a new ledger entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import ConcurrencyConflictError, IllegalTransitionError, NotFoundError, ValidationError
from ..models import Payment
from ..permissions import require_admin, require_order_access
from ..statuses import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ensure_order_payment_transition,
    ensure_order_transition,
    ensure_payment_attempt_transition,
    parse_enum,
)
from ..validation import coerce_amount_fils
from .settlement_service import Completed, Declined
from bazaar.money import cash_change_fils
from bazaar.time_utils import utcnow

logger = logging.getLogger(__name__)

GATEWAY_ERROR_REASON = "Settlement gateway error"
MANUAL_FAIL_REASON = "Failed by admin reconciliation"


@dataclass
class PaymentOutcome:
    payment: Payment
    order: object
    completed: bool
    loyalty_transaction: object = None

    @property
    def items_released(self) -> bool:
        return not self.completed


class PaymentService:
    def __init__(self, repository, orders, gateway, loyalty, *, notifier=None):
        self.repository = repository
        self.orders = orders
        self.gateway = gateway
        self.loyalty = loyalty
        self.notifier = notifier

    # Queries

    def list_for_order(self, actor, order_id: int) -> list[Payment]:
        order = self.repository.get_order(order_id)
        if order is None:
            raise NotFoundError("order", order_id)
        require_order_access(actor, order)
        return self.repository.list_payments(order_id)

    # Attempts

    def submit(self, actor, order_id: int, *, amount_fils, method, amount_received_fils=None) -> PaymentOutcome:
        """
        Record an attempt, settle it, and apply the outcome.

        A new attempt on an order whose previous attempt failed is a retry:
        its stock is re-reserved first, which can fail with
        InsufficientStockError if someone bought the units in between.
        """
        method = parse_enum(PaymentMethod, method, "method")
        amount = coerce_amount_fils(amount_fils, "amount_fils")

        details = {}
        if method == PaymentMethod.CASH:
            received = amount if amount_received_fils is None else coerce_amount_fils(
                amount_received_fils, "amount_received_fils"
            )
            if received < amount:
                raise ValidationError(
                    "Cash tendered is less than the order total",
                    details={"amount_fils": amount, "amount_received_fils": received},
                )
            details = {"amount_received_fils": received, "change_fils": cash_change_fils(amount, received)}

        def _op():
            order = self.repository.get_order(order_id, lock=True)
            if order is None:
                raise NotFoundError("order", order_id)
            require_order_access(actor, order)

            attempts = self.repository.list_payments(order.id)
            if order.payment_status == PaymentStatus.COMPLETED.value or any(
                p.status == PaymentStatus.COMPLETED.value for p in attempts
            ):
                raise ValidationError("Order is already paid", details={"order_id": order.id})
            if order.status != OrderStatus.PENDING.value:
                raise IllegalTransitionError("order", order.status, OrderStatus.PROCESSING.value)
            in_flight = [p for p in attempts if p.status == PaymentStatus.PENDING.value]
            if in_flight:
                raise ConcurrencyConflictError(
                    "A payment attempt for this order is already in progress",
                    details={"order_id": order.id, "payment_id": in_flight[0].id},
                )
            if amount != order.total_fils:
                raise ValidationError(
                    "Payment amount must equal the order total",
                    details={"expected_fils": order.total_fils, "amount_fils": amount},
                )

            if order.payment_status == PaymentStatus.FAILED.value:
                ensure_order_payment_transition(order.payment_status, PaymentStatus.PENDING)
                order.payment_status = PaymentStatus.PENDING.value

            now = utcnow()
            payment = self.repository.add_payment(Payment(
                order_id=order.id,
                amount_fils=amount,
                method=method.value,
                status=PaymentStatus.PENDING.value,
                details=details,
                created_by_user_id=actor.user_id,
                created_at=now,
                updated_at=now,
            ))

            if not order.stock_reserved:
                self.orders.reserve_stock(
                    order,
                    reason=f"Re-reserved for payment #{payment.id} (retry)",
                    payment_id=payment.id,
                    actor_user_id=actor.user_id,
                )
            order.updated_at = now
            return payment.id

        payment_id = self.repository.run_in_transaction(_op)
        logger.info("Payment %s (%s, %s fils) recorded for order %s", payment_id, method.value, amount, order_id)

        result = self._settle(order_id, amount, method.value)
        if isinstance(result, Completed):
            return self._complete(payment_id, result.transaction_id)
        return self._decline(payment_id, result.reason, actor_user_id=actor.user_id)

    def retry(self, actor, order_id: int) -> PaymentOutcome:
        """Re-run settlement with the method and amount of the last failed attempt."""
        order = self.repository.get_order(order_id)
        if order is None:
            raise NotFoundError("order", order_id)
        require_order_access(actor, order)

        failed = [p for p in self.repository.list_payments(order_id) if p.status == PaymentStatus.FAILED.value]
        if not failed:
            raise ValidationError("Order has no failed payment to retry", details={"order_id": order_id})
        last = failed[-1]
        received = (last.details or {}).get("amount_received_fils")
        return self.submit(
            actor,
            order_id,
            amount_fils=last.amount_fils,
            method=last.method,
            amount_received_fils=received,
        )

    def confirm(self, actor, payment_id: int) -> PaymentOutcome:
        """
        Admin confirmation. Completes a pending attempt, or replays the
        success steps of a completed one. Safe to call any number of times:
        loyalty is keyed by the payment id.
        """
        require_admin(actor)
        payment = self.repository.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)
        if payment.status == PaymentStatus.FAILED.value:
            raise IllegalTransitionError("payment", payment.status, PaymentStatus.COMPLETED.value)
        return self._complete(payment_id, payment.transaction_id or f"MANUAL-{payment_id}")

    def fail(self, actor, payment_id: int, reason: str | None = None) -> PaymentOutcome:
        """
        Admin reconciliation for an attempt stuck in PENDING.

        Settlement happens between two commits, so a crash or an exhausted
        retry after the gateway answered leaves the attempt pending with the
        stock still reserved. Failing it runs the normal decline path: the
        stock is released and the order can be retried or cancelled.
        Failing an already failed attempt is a no-op replay.
        """
        require_admin(actor)
        if reason is not None and (not isinstance(reason, str) or not reason.strip()):
            raise ValidationError("reason must be a non-empty string", details={"field": "reason"})
        payment = self.repository.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)
        if payment.status == PaymentStatus.FAILED.value:
            order = self.repository.get_order(payment.order_id)
            return PaymentOutcome(payment=payment, order=order, completed=False)
        if payment.status == PaymentStatus.COMPLETED.value:
            raise IllegalTransitionError("payment", payment.status, PaymentStatus.FAILED.value)

        logger.warning("Admin %s failing pending payment %s", actor.user_id, payment_id)
        return self._decline(
            payment_id,
            reason.strip() if reason else MANUAL_FAIL_REASON,
            actor_user_id=actor.user_id,
        )

    # Internals

    def _settle(self, order_id: int, amount_fils: int, method: str):
        try:
            return self.gateway.settle(order_id, amount_fils, method)
        except Exception:
            logger.exception("Settlement gateway failed for order %s; recording a decline", order_id)
            return Declined(reason=GATEWAY_ERROR_REASON)

    def _complete(self, payment_id: int, transaction_id: str) -> PaymentOutcome:
        def _op():
            payment = self.repository.get_payment(payment_id, lock=True)
            order = self.repository.get_order(payment.order_id, lock=True)
            if payment.status == PaymentStatus.COMPLETED.value:
                # Replay: state already applied.
                return payment, order

            ensure_payment_attempt_transition(payment.status, PaymentStatus.COMPLETED)
            ensure_order_transition(order.status, OrderStatus.PROCESSING)
            ensure_order_payment_transition(order.payment_status, PaymentStatus.COMPLETED)

            now = utcnow()
            payment.status = PaymentStatus.COMPLETED.value
            payment.transaction_id = transaction_id
            payment.updated_at = now
            order.status = OrderStatus.PROCESSING.value
            order.payment_status = PaymentStatus.COMPLETED.value
            order.updated_at = now
            return payment, order

        payment, order = self.repository.run_in_transaction(_op)
        logger.info("Payment %s completed (txn %s); order %s is processing", payment.id, payment.transaction_id, order.id)

        txn = self.loyalty.credit_for_payment(order.customer_id, payment)
        return PaymentOutcome(payment=payment, order=order, completed=True, loyalty_transaction=txn)

    def _decline(self, payment_id: int, reason: str, *, actor_user_id: int | None = None) -> PaymentOutcome:
        def _op():
            payment = self.repository.get_payment(payment_id, lock=True)
            order = self.repository.get_order(payment.order_id, lock=True)

            ensure_payment_attempt_transition(payment.status, PaymentStatus.FAILED)
            ensure_order_payment_transition(order.payment_status, PaymentStatus.FAILED)

            now = utcnow()
            payment.status = PaymentStatus.FAILED.value
            payment.decline_reason = reason
            payment.updated_at = now
            order.payment_status = PaymentStatus.FAILED.value
            order.updated_at = now

            if order.stock_reserved:
                self.orders.release_stock(
                    order,
                    reason=f"Payment #{payment.id} declined; stock released",
                    payment_id=payment.id,
                    actor_user_id=actor_user_id,
                )
            return payment, order

        payment, order = self.repository.run_in_transaction(_op)
        logger.warning("Payment %s for order %s declined: %s (stock released)", payment.id, order.id, reason)

        if self.notifier is not None:
            self.notifier.payment_declined(order, payment)
        return PaymentOutcome(payment=payment, order=order, completed=False)
