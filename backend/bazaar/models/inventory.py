from __future__ import annotations

from ..extensions import db
from bazaar.time_utils import to_utc_z


class InventoryLogEntry(db.Model):
    """
    Append-only record of one stock mutation.

    CHAIN: ordered by id per product, entry[i+1].previous_quantity equals
    entry[i].new_quantity, the first entry starts from 0, and the last
    new_quantity equals Product.stock.

    CHANGE TYPES:
    - sale: checkout decrement (negative)
    - restock: goods in (positive)
    - adjustment: manual correction, compensation after a decline or cancel
    - return: customer return (positive)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "inventory_log_entries"
    __table_args__ = (
        db.Index("ix_invlog_product_id_order", "product_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    change_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_change = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "change_type": self.change_type,
            "quantity_change": self.quantity_change,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reason": self.reason,
            "order_id": self.order_id,
            "payment_id": self.payment_id,
            "actor_user_id": self.actor_user_id,
            "created_at": to_utc_z(self.created_at),
        }
