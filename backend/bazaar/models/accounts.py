from __future__ import annotations

from ..extensions import db
from bazaar.time_utils import to_utc_z


class User(db.Model):
    """
    Marketplace account.

    ROLES:
    - customer: buys through the cart checkout
    - seller: owns a Seller profile, lists products, runs the POS terminal
    - admin: audits everything, may act on any order

    Credentials live with the external identity provider; this table only
    holds what the pipeline needs for attribution and authorization.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="customer", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Seller(db.Model):
    """
    Seller business profile. One per seller user.

    Business contact fields are printed on receipts; the low-stock settings
    drive seller alerts emitted after stock-decrementing commits.
    """
    __tablename__ = "sellers"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_sellers_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    business_name = db.Column(db.String(255), nullable=False)
    business_email = db.Column(db.String(255), nullable=True)
    business_logo = db.Column(db.String(255), nullable=True)
    business_website = db.Column(db.String(255), nullable=True)
    business_address = db.Column(db.Text, nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    whatsapp_number = db.Column(db.String(32), nullable=True)

    low_stock_alerts = db.Column(db.Boolean, nullable=False, default=True)
    # NULL -> use LOW_STOCK_THRESHOLD from config
    low_stock_threshold = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("seller_profile", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "business_name": self.business_name,
            "business_email": self.business_email,
            "business_logo": self.business_logo,
            "business_website": self.business_website,
            "business_address": self.business_address,
            "phone_number": self.phone_number,
            "whatsapp_number": self.whatsapp_number,
            "low_stock_alerts": self.low_stock_alerts,
            "low_stock_threshold": self.low_stock_threshold,
            "created_at": to_utc_z(self.created_at),
        }


class SessionToken(db.Model):
    """
    Bearer session issued by the identity provider.

    Only the SHA-256 hash of the token is stored.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    is_revoked = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))
