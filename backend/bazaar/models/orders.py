from __future__ import annotations

from ..extensions import db
from bazaar.money import format_fils
from bazaar.time_utils import to_utc_z


class CartItem(db.Model):
    """Persisted cart line; the source of non-POS checkouts."""
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_cart_user_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Order(db.Model):
    """
    Committed checkout.

    WHY items is a JSON snapshot: name and unit price are frozen at checkout,
    so total_fils == sum(line_total_fils) forever, whatever happens to the
    live product price afterwards.

    SINGLE SELLER: seller_id comes from the first line's product; carts that
    span sellers are rejected before an order is built.

    stock_reserved tracks whether the lines' stock is currently decremented.
    It flips to False after a compensating restock (decline or cancel) and
    back to True when a payment retry re-reserves the stock.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "idempotency_key", name="uq_orders_customer_idempotency_key"),
        db.Index("ix_orders_seller_status", "seller_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    items = db.Column(db.JSON, nullable=False)
    total_fils = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    is_pos_order = db.Column(db.Boolean, nullable=False, default=False)
    shipping_address = db.Column(db.JSON, nullable=True)
    stock_reserved = db.Column(db.Boolean, nullable=False, default=True)

    idempotency_key = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "seller_id": self.seller_id,
            "created_by_user_id": self.created_by_user_id,
            "items": [
                dict(line, unit_price=format_fils(line["unit_price_fils"]), line_total=format_fils(line["line_total_fils"]))
                for line in (self.items or [])
            ],
            "total_fils": self.total_fils,
            "total": format_fils(self.total_fils),
            "status": self.status,
            "payment_status": self.payment_status,
            "is_pos_order": self.is_pos_order,
            "shipping_address": self.shipping_address,
            "stock_reserved": self.stock_reserved,
            "idempotency_key": self.idempotency_key,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class Payment(db.Model):
    """
    One settlement attempt for an order.

    An order may collect many attempts (declines followed by retries), but
    at most one ends COMPLETED. amount_fils always equals the order total.

    METADATA (method specific):
    - cash: amount_received_fils, change_fils
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order_status", "order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount_fils = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    transaction_id = db.Column(db.String(128), nullable=True)
    decline_reason = db.Column(db.String(255), nullable=True)
    # "metadata" is reserved on declarative classes
    details = db.Column("metadata", db.JSON, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_fils": self.amount_fils,
            "amount": format_fils(self.amount_fils),
            "method": self.method,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "decline_reason": self.decline_reason,
            "metadata": self.details or {},
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
