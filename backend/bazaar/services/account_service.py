# Overview: Service-layer operations for accounts; user and seller profile bootstrap.

"""
Account bootstrap.

Identity issuance lives upstream; this module only creates the local rows
the pipeline attributes orders, payments and stock changes to. It is used by
the CLI and by test fixtures.
"""

from ..extensions import db
from ..errors import ValidationError
from ..models import Seller, User
from ..permissions import Role
from bazaar.time_utils import utcnow


def get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=email.strip().lower()).first()


def create_user(
    email: str,
    role: str = Role.CUSTOMER,
    *,
    first_name: str | None = None,
    last_name: str | None = None,
    business_name: str | None = None,
    low_stock_threshold: int | None = None,
) -> User:
    """
    Create a user; sellers also get their Seller profile in the same commit.

    Raises ValidationError for unknown roles, duplicate emails, or a seller
    without a business name.
    """
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required", details={"field": "email"})
    if role not in Role.ALL:
        raise ValidationError(f"Invalid role: {role}", details={"field": "role", "allowed": list(Role.ALL)})
    if get_user_by_email(email) is not None:
        raise ValidationError(f"User {email} already exists", details={"field": "email"})
    if role == Role.SELLER and not business_name:
        raise ValidationError("Sellers need a business name", details={"field": "business_name"})

    now = utcnow()
    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=True,
        created_at=now,
    )
    db.session.add(user)
    db.session.flush()

    if role == Role.SELLER:
        db.session.add(Seller(
            user_id=user.id,
            business_name=business_name,
            business_email=email,
            low_stock_alerts=True,
            low_stock_threshold=low_stock_threshold,
            created_at=now,
        ))

    db.session.commit()
    return user
