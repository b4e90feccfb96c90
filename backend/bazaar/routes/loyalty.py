# Overview: Flask API routes for loyalty points.

from flask import Blueprint, current_app, g, jsonify, request

from ..container import get_services
from ..decorators import require_auth
from ..errors import MarketplaceError, ValidationError, error_response


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


@loyalty_bp.get("")
@require_auth
def get_loyalty_route():
    try:
        loyalty = get_services().loyalty
        user_id = g.actor.user_id
        return jsonify({
            "balance": loyalty.balance(user_id),
            "transactions": [t.to_dict() for t in loyalty.transactions(user_id)],
        }), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load loyalty account")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.post("/redeem")
@require_auth
def redeem_points_route():
    """Body: {"points": int > 0, "description"?}"""
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        loyalty = get_services().loyalty
        txn = loyalty.redeem(g.actor.user_id, data.get("points"), data.get("description"))
        return jsonify({"transaction": txn.to_dict(), "balance": loyalty.balance(g.actor.user_id)}), 201
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to redeem loyalty points")
        return jsonify({"error": "Internal server error"}), 500
