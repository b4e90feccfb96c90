# Overview: Settlement boundary; decides whether a payment attempt clears.

"""
Settlement is a pluggable strategy. The pipeline only ever calls
`gateway.settle(order_id, amount_fils, method)` and branches on the result
type; it never knows whether a simulator or a real processor answered.

The call happens OUTSIDE any database transaction: a slow gateway must not
hold row locks on stock.
"""

from __future__ import annotations

import random
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Completed:
    transaction_id: str


@dataclass(frozen=True)
class Declined:
    reason: str


class SettlementGateway(ABC):
    name = "abstract"

    @abstractmethod
    def settle(self, order_id: int, amount_fils: int, method: str):
        """Return Completed(transaction_id) or Declined(reason)."""


def _transaction_id() -> str:
    return f"TXN-{secrets.token_hex(8).upper()}"


class RandomSettlementSimulator(SettlementGateway):
    """Reference placeholder: approves with probability `success_rate`."""
    name = "random"

    def __init__(self, success_rate: float = 0.9, rng: random.Random | None = None):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be between 0 and 1")
        self.success_rate = success_rate
        self.rng = rng or random.Random()

    def settle(self, order_id, amount_fils, method):
        if self.rng.random() < self.success_rate:
            return Completed(transaction_id=_transaction_id())
        return Declined(reason="Payment declined by issuer")


class ApprovingSettlementGateway(SettlementGateway):
    name = "approve"

    def settle(self, order_id, amount_fils, method):
        return Completed(transaction_id=_transaction_id())


class DecliningSettlementGateway(SettlementGateway):
    name = "decline"

    def __init__(self, reason: str = "Payment declined by issuer"):
        self.reason = reason

    def settle(self, order_id, amount_fils, method):
        return Declined(reason=self.reason)


def gateway_from_config(config) -> SettlementGateway:
    backend = (config.get("SETTLEMENT_BACKEND") or "random").lower()
    if backend == "approve":
        return ApprovingSettlementGateway()
    if backend == "decline":
        return DecliningSettlementGateway()
    if backend == "random":
        return RandomSettlementSimulator(success_rate=float(config.get("SETTLEMENT_SUCCESS_RATE", 0.9)))
    raise ValueError(f"Unknown SETTLEMENT_BACKEND: {backend!r}")
