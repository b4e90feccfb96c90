# Overview: Flask API routes for orders; checkout, listing, transitions, receipts, payment retry.

"""Order API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..container import get_services
from ..decorators import require_auth
from ..errors import MarketplaceError, ValidationError, error_response
from ..validation import coerce_int
from .payments import payment_outcome_response


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Checkout.

    Body (customer): {"shipping_address": {...}?}  -- lines come from the cart
    Body (POS): {"is_pos_order": true, "items": [{"product_id", "quantity"}], "customer_id"?}
    Header: Idempotency-Key (optional)

    Returns 201 with the new order, or 200 with the existing order when the
    Idempotency-Key was already used by this customer.
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        is_pos = data.get("is_pos_order", False)
        if not isinstance(is_pos, bool):
            raise ValidationError("is_pos_order must be a boolean", details={"field": "is_pos_order"})

        customer_id = data.get("customer_id")
        if customer_id is not None:
            customer_id = coerce_int(customer_id, "customer_id", minimum=1)

        result = get_services().checkout.checkout(
            g.actor,
            items=data.get("items"),
            is_pos_order=is_pos,
            customer_id=customer_id,
            shipping_address=data.get("shipping_address"),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
        status = 200 if result.replayed else 201
        return jsonify({"order": result.order.to_dict(), "replayed": result.replayed}), status

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    try:
        orders = get_services().orders.list_for(g.actor, status=request.args.get("status"))
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = get_services().orders.get(g.actor, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>")
@require_auth
def update_order_status_route(order_id: int):
    """
    Manual status transition.

    Seller/admin: shipped, delivered, cancelled. Customer: cancelled only.
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict) or "status" not in data:
            raise ValidationError("status required", details={"field": "status"})

        order = get_services().orders.transition(g.actor, order_id, data["status"])
        return jsonify({"order": order.to_dict()}), 200

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/receipt")
@require_auth
def get_receipt_route(order_id: int):
    try:
        receipt = get_services().receipts.build(g.actor, order_id)
        return jsonify({"receipt": receipt}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build receipt")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/payments/retry")
@require_auth
def retry_payment_route(order_id: int):
    """Re-attempt settlement with the last failed attempt's method and amount."""
    try:
        outcome = get_services().payments.retry(g.actor, order_id)
        return payment_outcome_response(outcome)
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Payment retry failed")
        return jsonify({"error": "Internal server error"}), 500
