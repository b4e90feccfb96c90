# Overview: Error taxonomy for the checkout pipeline and its JSON rendering.

"""
Every business failure raised by the services derives from MarketplaceError.

Each class carries the HTTP status it maps to and a stable machine-readable
code; `details` holds whatever the caller needs to act on the failure (e.g.
the product, requested and available quantities for a stock failure).
Anything that is NOT a MarketplaceError is an unexpected failure and is
rendered as a 500 by the routes.
"""

from __future__ import annotations

from flask import jsonify


class MarketplaceError(Exception):
    """Base class for expected, caller-actionable failures."""
    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(MarketplaceError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_ERROR"


class EmptyCartError(ValidationError):
    code = "EMPTY_CART"


class MultiSellerCartError(ValidationError):
    """Checkout lines belong to more than one seller."""
    code = "MULTI_SELLER_CART"


class IllegalTransitionError(ValidationError):
    """Requested status change is not allowed from the current status."""
    status_code = 409
    code = "ILLEGAL_TRANSITION"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Cannot move {entity} from {current} to {target}",
            details={"entity": entity, "current": current, "target": target},
        )


class NotFoundError(MarketplaceError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity.capitalize()} {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )


class InsufficientStockError(MarketplaceError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}. Available: {available}, Requested: {requested}",
            details={"product_id": product_id, "requested": requested, "available": available},
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class AuthenticationError(MarketplaceError):
    status_code = 401
    code = "AUTHENTICATION_REQUIRED"


class AuthorizationError(MarketplaceError):
    """Actor does not own (or may not act on) the resource."""
    status_code = 403
    code = "AUTHORIZATION_ERROR"


class PaymentDeclinedError(MarketplaceError):
    """Recorded settlement decline; stock has already been released."""
    status_code = 402
    code = "PAYMENT_DECLINED"


class ConcurrencyConflictError(MarketplaceError):
    """A commit lost a race; nothing was applied and the caller should retry."""
    status_code = 409
    code = "CONCURRENCY_CONFLICT"


def error_response(exc: MarketplaceError):
    return jsonify(exc.to_dict()), exc.status_code
