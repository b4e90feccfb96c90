"""
Test doubles for the checkout pipeline.

InMemoryRepository implements the full Repository capability set on plain
dicts, so services can be exercised (and raced from threads) without a
database. A unit of work holds one re-entrant lock for its whole duration and
restores every touched row on failure, which gives it the same all-or-nothing
behaviour as the SQL implementation.
"""

import copy
import itertools
import threading
from collections import deque
from contextlib import contextmanager

from sqlalchemy import inspect

from bazaar.errors import ConcurrencyConflictError
from bazaar.repository import Repository
from bazaar.services.settlement_service import Completed, Declined, SettlementGateway
from bazaar.time_utils import utcnow
from bazaar.validation import MAX_STOCK


TABLES = (
    "users", "sellers", "products", "inventory", "orders",
    "payments", "loyalty", "cart", "notifications",
)


def _columns(obj) -> dict:
    return {attr.key: copy.deepcopy(getattr(obj, attr.key)) for attr in inspect(type(obj)).column_attrs}


class InMemoryRepository(Repository):
    retryable_errors = ()

    def __init__(self):
        self._lock = threading.RLock()
        self._rows = {name: {} for name in TABLES}
        self._ids = {name: itertools.count(1) for name in TABLES}

    # Unit of work

    @contextmanager
    def unit_of_work(self):
        with self._lock:
            snapshot = {
                name: {row_id: (obj, _columns(obj)) for row_id, obj in rows.items()}
                for name, rows in self._rows.items()
            }
            try:
                yield self
            except Exception:
                for name, saved in snapshot.items():
                    self._rows[name] = {}
                    for row_id, (obj, values) in saved.items():
                        for key, value in values.items():
                            setattr(obj, key, value)
                        self._rows[name][row_id] = obj
                raise

    def _insert(self, table: str, obj):
        with self._lock:
            obj.id = next(self._ids[table])
            if getattr(obj, "created_at", None) is None:
                obj.created_at = utcnow()
            self._rows[table][obj.id] = obj
            return obj

    def _all(self, table: str) -> list:
        with self._lock:
            return sorted(self._rows[table].values(), key=lambda o: o.id)

    # Seeding (not part of the capability set)

    def seed_user(self, user):
        return self._insert("users", user)

    def seed_seller(self, seller):
        return self._insert("sellers", seller)

    # Accounts

    def get_user(self, user_id):
        return self._rows["users"].get(user_id)

    def get_seller(self, seller_id):
        return self._rows["sellers"].get(seller_id)

    def lock_user(self, user_id):
        # the unit of work already holds the store-wide lock
        return self._rows["users"].get(user_id)

    # Products / stock

    def add_product(self, product):
        return self._insert("products", product)

    def get_product(self, product_id):
        return self._rows["products"].get(product_id)

    def get_stock(self, product_id):
        with self._lock:
            product = self._rows["products"].get(product_id)
            return product.stock if product is not None else None

    def list_product_ids(self):
        return [p.id for p in self._all("products")]

    def apply_stock_delta(self, product_id, delta):
        with self._lock:
            product = self._rows["products"].get(product_id)
            if product is None or not 0 <= product.stock + delta <= MAX_STOCK:
                return None
            product.stock += delta
            return product.stock

    # Inventory log

    def add_inventory_entry(self, entry):
        return self._insert("inventory", entry)

    def list_inventory_entries(self, product_id):
        return [e for e in self._all("inventory") if e.product_id == product_id]

    # Orders

    def add_order(self, order):
        with self._lock:
            if order.idempotency_key is not None and self.find_order_by_idempotency_key(
                order.customer_id, order.idempotency_key
            ) is not None:
                raise ConcurrencyConflictError("duplicate idempotency key")
            order.version_id = 1
            return self._insert("orders", order)

    def get_order(self, order_id, *, lock=False):
        return self._rows["orders"].get(order_id)

    def list_orders(self, *, customer_id=None, seller_id=None, status=None):
        orders = [
            o for o in self._all("orders")
            if (customer_id is None or o.customer_id == customer_id)
            and (seller_id is None or o.seller_id == seller_id)
            and (status is None or o.status == status)
        ]
        return list(reversed(orders))

    def find_order_by_idempotency_key(self, customer_id, key):
        return next(
            (o for o in self._all("orders") if o.customer_id == customer_id and o.idempotency_key == key),
            None,
        )

    # Payments

    def add_payment(self, payment):
        return self._insert("payments", payment)

    def get_payment(self, payment_id, *, lock=False):
        return self._rows["payments"].get(payment_id)

    def list_payments(self, order_id):
        return [p for p in self._all("payments") if p.order_id == order_id]

    # Loyalty

    def add_loyalty_transaction(self, txn):
        with self._lock:
            if txn.payment_id is not None and self.find_loyalty_transaction_by_payment(txn.payment_id) is not None:
                raise ConcurrencyConflictError("duplicate loyalty credit")
            return self._insert("loyalty", txn)

    def find_loyalty_transaction_by_payment(self, payment_id):
        return next((t for t in self._all("loyalty") if t.payment_id == payment_id), None)

    def loyalty_balance(self, user_id):
        return sum(t.points for t in self._all("loyalty") if t.user_id == user_id)

    def list_loyalty_transactions(self, user_id):
        return list(reversed([t for t in self._all("loyalty") if t.user_id == user_id]))

    # Cart

    def list_cart_items(self, user_id):
        return [c for c in self._all("cart") if c.user_id == user_id]

    def get_cart_item(self, item_id):
        return self._rows["cart"].get(item_id)

    def find_cart_item(self, user_id, product_id):
        return next((c for c in self._all("cart") if c.user_id == user_id and c.product_id == product_id), None)

    def add_cart_item(self, item):
        with self._lock:
            if self.find_cart_item(item.user_id, item.product_id) is not None:
                raise ConcurrencyConflictError("duplicate cart line")
            return self._insert("cart", item)

    def delete_cart_item(self, item):
        with self._lock:
            self._rows["cart"].pop(item.id, None)

    def clear_cart(self, user_id):
        with self._lock:
            doomed = [c.id for c in self._all("cart") if c.user_id == user_id]
            for item_id in doomed:
                del self._rows["cart"][item_id]
            return len(doomed)

    # Notifications

    def add_notification(self, notification):
        return self._insert("notifications", notification)

    def get_notification(self, notification_id):
        return self._rows["notifications"].get(notification_id)

    def list_notifications(self, *, seller_id, limit=50):
        rows = [n for n in self._all("notifications") if n.seller_id == seller_id]
        return list(reversed(rows))[:limit]


class ScriptedSettlementGateway(SettlementGateway):
    """
    Plays back queued outcomes: "approve", "decline", or an exception
    instance to raise. Approves once the queue is empty.
    """
    name = "scripted"

    def __init__(self, *outcomes):
        self.outcomes = deque(outcomes)
        self.calls = []

    def queue(self, *outcomes):
        self.outcomes.extend(outcomes)

    def reset(self):
        self.outcomes.clear()
        self.calls.clear()

    def settle(self, order_id, amount_fils, method):
        self.calls.append((order_id, amount_fils, method))
        outcome = self.outcomes.popleft() if self.outcomes else "approve"
        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "decline":
            return Declined(reason="Card declined")
        return Completed(transaction_id=f"TXN-TEST-{len(self.calls)}")
