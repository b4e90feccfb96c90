from __future__ import annotations

from ..extensions import db
from bazaar.time_utils import to_utc_z


class Notification(db.Model):
    """Inbox entry. seller_id NULL means the admin inbox."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_seller_created", "seller_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(32), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    related_id = db.Column(db.String(64), nullable=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    details = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "related_id": self.related_id,
            "seller_id": self.seller_id,
            "is_read": self.is_read,
            "metadata": self.details or {},
            "created_at": to_utc_z(self.created_at),
        }
