# Overview: Storage capability set used by the checkout pipeline, and its SQLAlchemy implementation.

"""
Repository Invariants (authoritative)

- Services never touch `db.session` directly; they receive a Repository.
- Every write happens inside `unit_of_work()`: commit on clean exit, roll back
  on any exception. Nothing partial is ever committed.
- `apply_stock_delta` is the ONLY way stock changes. It is a single
  conditional UPDATE ("add delta iff the result stays in [0, MAX_STOCK]"),
  never a read-then-write pair.
- Inventory log entries are append-only; there is no update/delete method.
- Lookups return None for missing rows; raising NotFoundError is the
  service's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError

from .errors import ConcurrencyConflictError, ValidationError
from .extensions import db
from .models import (
    CartItem,
    InventoryLogEntry,
    LoyaltyTransaction,
    Notification,
    Order,
    Payment,
    Product,
    Seller,
    User,
)
from .services.concurrency import RETRYABLE_DB_ERRORS, lock_for_update, run_with_retry
from .validation import MAX_STOCK

# Unique indexes that only collide when two requests race the same insert.
# Each pair is (constraint name as PostgreSQL reports it, column as SQLite reports it).
RACE_CONSTRAINTS = (
    ("uq_orders_customer_idempotency_key", "orders.idempotency_key"),
    ("uq_loyalty_payment", "loyalty_transactions.payment_id"),
    ("uq_cart_user_product", "cart_items.product_id"),
)


def integrity_error_to_domain(exc: IntegrityError):
    """
    Translate a constraint violation.

    Races on the keys above become ConcurrencyConflictError so callers can
    look up the winner. Anything else (duplicate SKU or email, a missing
    parent row) is bad input and becomes ValidationError.
    """
    message = str(exc.orig)
    if any(name in message or column in message for name, column in RACE_CONSTRAINTS):
        return ConcurrencyConflictError(
            "Conflicting write detected; nothing was applied",
            details={"constraint": message},
        )
    return ValidationError(
        "Write violates a uniqueness or reference rule; nothing was applied",
        details={"constraint": message},
    )


class Repository(ABC):
    """Capabilities the pipeline needs from a store."""

    retryable_errors: tuple = ()

    @abstractmethod
    def unit_of_work(self):
        """Context manager wrapping one atomic unit of work."""

    def run_in_transaction(self, func, *, attempts: int = 3, backoff_base: float = 0.05):
        """Run `func` inside a unit of work, retrying transient lock failures."""
        def _op():
            with self.unit_of_work():
                return func()
        return run_with_retry(
            _op,
            retry_on=self.retryable_errors,
            attempts=attempts,
            backoff_base=backoff_base,
        )

    # Accounts
    @abstractmethod
    def get_user(self, user_id: int) -> User | None: ...

    @abstractmethod
    def get_seller(self, seller_id: int) -> Seller | None: ...

    @abstractmethod
    def lock_user(self, user_id: int) -> User | None:
        """Row-lock the user for the rest of the unit of work (serializes balance checks)."""

    # Products / stock
    @abstractmethod
    def add_product(self, product: Product) -> Product: ...

    @abstractmethod
    def get_product(self, product_id: int) -> Product | None: ...

    @abstractmethod
    def get_stock(self, product_id: int) -> int | None:
        """Current committed-or-own-transaction stock, bypassing any cached instance."""

    @abstractmethod
    def list_product_ids(self) -> list[int]: ...

    @abstractmethod
    def apply_stock_delta(self, product_id: int, delta: int) -> int | None:
        """Atomically add `delta` iff stock stays in [0, MAX_STOCK]. Returns new stock, or None if no row changed."""

    # Inventory log
    @abstractmethod
    def add_inventory_entry(self, entry: InventoryLogEntry) -> InventoryLogEntry: ...

    @abstractmethod
    def list_inventory_entries(self, product_id: int) -> list[InventoryLogEntry]:
        """Entries for a product in chain order (oldest first)."""

    # Orders
    @abstractmethod
    def add_order(self, order: Order) -> Order: ...

    @abstractmethod
    def get_order(self, order_id: int, *, lock: bool = False) -> Order | None: ...

    @abstractmethod
    def list_orders(self, *, customer_id: int | None = None, seller_id: int | None = None,
                    status: str | None = None) -> list[Order]: ...

    @abstractmethod
    def find_order_by_idempotency_key(self, customer_id: int, key: str) -> Order | None: ...

    # Payments
    @abstractmethod
    def add_payment(self, payment: Payment) -> Payment: ...

    @abstractmethod
    def get_payment(self, payment_id: int, *, lock: bool = False) -> Payment | None: ...

    @abstractmethod
    def list_payments(self, order_id: int) -> list[Payment]:
        """Attempts for an order, oldest first."""

    # Loyalty
    @abstractmethod
    def add_loyalty_transaction(self, txn: LoyaltyTransaction) -> LoyaltyTransaction: ...

    @abstractmethod
    def find_loyalty_transaction_by_payment(self, payment_id: int) -> LoyaltyTransaction | None: ...

    @abstractmethod
    def loyalty_balance(self, user_id: int) -> int: ...

    @abstractmethod
    def list_loyalty_transactions(self, user_id: int) -> list[LoyaltyTransaction]: ...

    # Cart
    @abstractmethod
    def list_cart_items(self, user_id: int) -> list[CartItem]: ...

    @abstractmethod
    def get_cart_item(self, item_id: int) -> CartItem | None: ...

    @abstractmethod
    def find_cart_item(self, user_id: int, product_id: int) -> CartItem | None: ...

    @abstractmethod
    def add_cart_item(self, item: CartItem) -> CartItem: ...

    @abstractmethod
    def delete_cart_item(self, item: CartItem) -> None: ...

    @abstractmethod
    def clear_cart(self, user_id: int) -> int: ...

    # Notifications
    @abstractmethod
    def add_notification(self, notification: Notification) -> Notification: ...

    @abstractmethod
    def get_notification(self, notification_id: int) -> Notification | None: ...

    @abstractmethod
    def list_notifications(self, *, seller_id: int | None, limit: int = 50) -> list[Notification]: ...


class SqlAlchemyRepository(Repository):
    """Repository over the Flask-SQLAlchemy scoped session."""

    retryable_errors = RETRYABLE_DB_ERRORS

    @contextmanager
    def unit_of_work(self):
        # the scoped_session proxy has no in_transaction(); use the real Session
        session = db.session()
        # Close out any read-only transaction left by earlier lookups so the
        # write transaction below starts clean.
        if session.in_transaction():
            session.commit()
        try:
            if db.engine.dialect.name == "sqlite":
                # take the write lock up front; SQLite has no row locks
                session.execute(text("BEGIN IMMEDIATE"))
            yield self
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise integrity_error_to_domain(exc) from exc
        except Exception:
            session.rollback()
            raise

    def _add(self, obj):
        db.session.add(obj)
        db.session.flush()  # assigns id without committing
        return obj

    # Accounts
    def get_user(self, user_id):
        return db.session.get(User, user_id)

    def get_seller(self, seller_id):
        return db.session.get(Seller, seller_id)

    def lock_user(self, user_id):
        return lock_for_update(db.session.query(User).filter_by(id=user_id)).first()

    # Products / stock
    def add_product(self, product):
        return self._add(product)

    def get_product(self, product_id):
        return db.session.get(Product, product_id)

    def get_stock(self, product_id):
        return db.session.execute(select(Product.stock).where(Product.id == product_id)).scalar_one_or_none()

    def list_product_ids(self):
        return [row[0] for row in db.session.query(Product.id).order_by(Product.id).all()]

    def apply_stock_delta(self, product_id, delta):
        stmt = (
            update(Product)
            .where(
                Product.id == product_id,
                Product.stock + delta >= 0,
                Product.stock + delta <= MAX_STOCK,
            )
            .values(stock=Product.stock + delta)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if not result.rowcount:
            return None
        # Re-read inside the same transaction; the row is already write-locked.
        product = db.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return product.stock

    # Inventory log
    def add_inventory_entry(self, entry):
        return self._add(entry)

    def list_inventory_entries(self, product_id):
        return (
            db.session.query(InventoryLogEntry)
            .filter_by(product_id=product_id)
            .order_by(InventoryLogEntry.id.asc())
            .all()
        )

    # Orders
    def add_order(self, order):
        return self._add(order)

    def get_order(self, order_id, *, lock=False):
        query = db.session.query(Order).filter_by(id=order_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def list_orders(self, *, customer_id=None, seller_id=None, status=None):
        query = db.session.query(Order)
        if customer_id is not None:
            query = query.filter(Order.customer_id == customer_id)
        if seller_id is not None:
            query = query.filter(Order.seller_id == seller_id)
        if status is not None:
            query = query.filter(Order.status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    def find_order_by_idempotency_key(self, customer_id, key):
        return db.session.query(Order).filter_by(customer_id=customer_id, idempotency_key=key).first()

    # Payments
    def add_payment(self, payment):
        return self._add(payment)

    def get_payment(self, payment_id, *, lock=False):
        query = db.session.query(Payment).filter_by(id=payment_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def list_payments(self, order_id):
        return (
            db.session.query(Payment)
            .filter_by(order_id=order_id)
            .order_by(Payment.id.asc())
            .all()
        )

    # Loyalty
    def add_loyalty_transaction(self, txn):
        return self._add(txn)

    def find_loyalty_transaction_by_payment(self, payment_id):
        return db.session.query(LoyaltyTransaction).filter_by(payment_id=payment_id).first()

    def loyalty_balance(self, user_id):
        total = db.session.query(
            func.coalesce(func.sum(LoyaltyTransaction.points), 0)
        ).filter(LoyaltyTransaction.user_id == user_id).scalar()
        return int(total or 0)

    def list_loyalty_transactions(self, user_id):
        return (
            db.session.query(LoyaltyTransaction)
            .filter_by(user_id=user_id)
            .order_by(LoyaltyTransaction.id.desc())
            .all()
        )

    # Cart
    def list_cart_items(self, user_id):
        return db.session.query(CartItem).filter_by(user_id=user_id).order_by(CartItem.id.asc()).all()

    def get_cart_item(self, item_id):
        return db.session.get(CartItem, item_id)

    def find_cart_item(self, user_id, product_id):
        return db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).first()

    def add_cart_item(self, item):
        return self._add(item)

    def delete_cart_item(self, item):
        db.session.delete(item)
        db.session.flush()

    def clear_cart(self, user_id):
        return db.session.query(CartItem).filter_by(user_id=user_id).delete()

    # Notifications
    def add_notification(self, notification):
        return self._add(notification)

    def get_notification(self, notification_id):
        return db.session.get(Notification, notification_id)

    def list_notifications(self, *, seller_id, limit=50):
        query = db.session.query(Notification)
        if seller_id is None:
            query = query.filter(Notification.seller_id.is_(None))
        else:
            query = query.filter(Notification.seller_id == seller_id)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
