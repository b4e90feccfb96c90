# Overview: Flask API routes for the shopping cart.

from flask import Blueprint, current_app, g, jsonify, request

from ..container import get_services
from ..decorators import require_auth
from ..errors import MarketplaceError, ValidationError, error_response


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _body() -> dict:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@cart_bp.get("")
@require_auth
def get_cart_route():
    try:
        return jsonify({"cart": get_services().cart.view(g.actor.user_id)}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("")
@require_auth
def add_to_cart_route():
    """Body: {"product_id", "quantity"?}. Adding an existing product merges quantities."""
    try:
        data = _body()
        item = get_services().cart.add(g.actor.user_id, data.get("product_id"), data.get("quantity", 1))
        return jsonify({"item": item.to_dict()}), 201
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.put("/<int:item_id>")
@require_auth
def update_cart_item_route(item_id: int):
    try:
        data = _body()
        item = get_services().cart.update(g.actor.user_id, item_id, data.get("quantity"))
        return jsonify({"item": item.to_dict()}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/<int:item_id>")
@require_auth
def delete_cart_item_route(item_id: int):
    try:
        get_services().cart.remove(g.actor.user_id, item_id)
        return jsonify({"deleted": True}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500
