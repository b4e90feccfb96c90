"""
Actors and ownership rules.

WHY: Every service call receives an Actor instead of reaching into the
request. The same rules then apply to HTTP, CLI and tests.

ROLES:
- customer: own cart, own orders, may cancel own pending orders
- seller: own products and orders placed with the shop, POS terminal
- admin: any order, payment confirmation, admin inbox
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import AuthorizationError


class Role:
    CUSTOMER = "customer"
    SELLER = "seller"
    ADMIN = "admin"

    ALL = (CUSTOMER, SELLER, ADMIN)


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str
    seller_id: int | None = None

    @classmethod
    def for_user(cls, user) -> "Actor":
        profile = getattr(user, "seller_profile", None)
        return cls(user_id=user.id, role=user.role, seller_id=profile.id if profile is not None else None)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_seller(self) -> bool:
        return self.role == Role.SELLER and self.seller_id is not None


def can_view_order(actor: Actor, order) -> bool:
    if actor.is_admin:
        return True
    if order.customer_id == actor.user_id:
        return True
    return actor.seller_id is not None and order.seller_id == actor.seller_id


def require_order_access(actor: Actor, order) -> None:
    if not can_view_order(actor, order):
        raise AuthorizationError(
            "You do not have access to this order",
            details={"order_id": order.id},
        )


def require_order_fulfillment(actor: Actor, order) -> None:
    """Shipping and delivery belong to the shop that sold the order (or an admin)."""
    if actor.is_admin:
        return
    if actor.seller_id is not None and order.seller_id == actor.seller_id:
        return
    raise AuthorizationError(
        "Only the order's seller or an admin may fulfill it",
        details={"order_id": order.id},
    )


def require_product_owner(actor: Actor, product) -> None:
    if actor.is_admin:
        return
    if actor.seller_id is not None and product.seller_id == actor.seller_id:
        return
    raise AuthorizationError(
        "Only the product's seller or an admin may change it",
        details={"product_id": product.id},
    )


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise AuthorizationError("Admin role required")
