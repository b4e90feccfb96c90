from __future__ import annotations

from ..extensions import db
from bazaar.time_utils import to_utc_z


class LoyaltyTransaction(db.Model):
    """
    Append-only ledger of reward point events.

    TRANSACTION TYPES:
    - earn: points credited for a completed payment (payment_id set)
    - redeem: points spent by the customer (negative)

    Balance is SUM(points) per user. payment_id is unique, so a payment can
    credit points at most once no matter how often its confirmation arrives.
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.UniqueConstraint("payment_id", name="uq_loyalty_payment"),
        db.Index("ix_loyalty_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "description": self.description,
            "payment_id": self.payment_id,
            "created_at": to_utc_z(self.created_at),
        }
