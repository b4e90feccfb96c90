# Overview: Loyalty point accrual and redemption.

from __future__ import annotations

import logging

from ..errors import ConcurrencyConflictError, ValidationError
from ..models import LoyaltyTransaction
from ..validation import coerce_int
from bazaar.time_utils import utcnow

logger = logging.getLogger(__name__)


class FloorAccrualPolicy:
    """One point per whole currency unit settled, rounded down."""

    def __init__(self, fils_per_point: int = 1000):
        if fils_per_point <= 0:
            raise ValueError("fils_per_point must be positive")
        self.fils_per_point = fils_per_point

    def points_for(self, amount_fils: int) -> int:
        return max(amount_fils, 0) // self.fils_per_point


class LoyaltyService:
    """
    Points ledger. Balance is the sum of transactions; nothing is cached.

    IDEMPOTENCY: credit() is keyed by payment_id. It looks for an existing
    earn row first and the unique constraint on payment_id catches the race
    where two confirmations check at the same moment. Either way the payment
    credits at most once.
    """

    def __init__(self, repository, policy: FloorAccrualPolicy | None = None):
        self.repository = repository
        self.policy = policy or FloorAccrualPolicy()

    def credit(self, customer_id: int, payment_id: int, points: int) -> LoyaltyTransaction | None:
        """Returns the earn transaction (new or existing) or None when there is nothing to credit."""
        if points <= 0:
            return None

        def _op():
            existing = self.repository.find_loyalty_transaction_by_payment(payment_id)
            if existing is not None:
                return existing
            return self.repository.add_loyalty_transaction(LoyaltyTransaction(
                user_id=customer_id,
                transaction_type="earn",
                points=points,
                description=f"Earned from payment #{payment_id}",
                payment_id=payment_id,
                created_at=utcnow(),
            ))

        try:
            txn = self.repository.run_in_transaction(_op)
        except ConcurrencyConflictError:
            # Lost the insert race to a concurrent confirmation.
            txn = self.repository.find_loyalty_transaction_by_payment(payment_id)
            if txn is None:
                raise
        logger.info("Loyalty: user %s holds earn txn %s for payment %s", customer_id, txn.id, payment_id)
        return txn

    def credit_for_payment(self, customer_id: int, payment) -> LoyaltyTransaction | None:
        return self.credit(customer_id, payment.id, self.policy.points_for(payment.amount_fils))

    def balance(self, user_id: int) -> int:
        return self.repository.loyalty_balance(user_id)

    def transactions(self, user_id: int) -> list[LoyaltyTransaction]:
        return self.repository.list_loyalty_transactions(user_id)

    def redeem(self, user_id: int, points, description: str | None = None) -> LoyaltyTransaction:
        points = coerce_int(points, "points", minimum=1)

        def _op():
            # Concurrent redeems for one user queue here, so each sees the
            # balance left by the previous one.
            self.repository.lock_user(user_id)
            available = self.repository.loyalty_balance(user_id)
            if points > available:
                raise ValidationError(
                    "Insufficient loyalty points",
                    details={"requested": points, "available": available},
                )
            return self.repository.add_loyalty_transaction(LoyaltyTransaction(
                user_id=user_id,
                transaction_type="redeem",
                points=-points,
                description=description or f"Redeemed {points} points",
                payment_id=None,
                created_at=utcnow(),
            ))

        return self.repository.run_in_transaction(_op)
