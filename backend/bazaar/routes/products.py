# Overview: Flask API routes for products; detail, manual stock changes, inventory chain.

from flask import Blueprint, current_app, g, jsonify, request

from ..container import get_services
from ..decorators import require_auth
from ..errors import MarketplaceError, ValidationError, error_response
from ..permissions import require_product_owner
from ..statuses import ChangeType, parse_enum
from ..validation import coerce_quantity


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

# sale entries are written by checkout only
MANUAL_CHANGE_TYPES = (ChangeType.ADJUSTMENT, ChangeType.RESTOCK, ChangeType.RETURN)


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = get_services().catalog.get(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/stock")
@require_auth
def change_stock_route(product_id: int):
    """
    Manual stock change by the product's seller or an admin.

    Body: {"quantity_change": int != 0, "reason": str?, "change_type": "adjustment"|"restock"|"return"?}
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        services = get_services()
        product = services.catalog.get(product_id)
        require_product_owner(g.actor, product)

        change_type = parse_enum(ChangeType, data.get("change_type", ChangeType.ADJUSTMENT.value), "change_type")
        if change_type not in MANUAL_CHANGE_TYPES:
            raise ValidationError(
                "change_type must be adjustment, restock or return",
                details={"field": "change_type"},
            )
        delta = coerce_quantity(data.get("quantity_change"), "quantity_change", allow_negative=True)
        reason = data.get("reason")
        if reason is not None and not isinstance(reason, str):
            raise ValidationError("reason must be a string", details={"field": "reason"})

        movement = services.ledger.adjust(
            product_id,
            delta,
            change_type=change_type,
            reason=reason,
            actor_user_id=g.actor.user_id,
        )
        return jsonify({
            "entry": movement.entry.to_dict(),
            "previous_quantity": movement.previous,
            "new_quantity": movement.new,
        }), 201

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/inventory")
@require_auth
def inventory_history_route(product_id: int):
    """Ordered inventory log plus a replay check against the live stock."""
    try:
        services = get_services()
        product = services.catalog.get(product_id)
        require_product_owner(g.actor, product)

        entries = services.ledger.history(product_id)
        report = services.ledger.verify_chain(product_id)
        return jsonify({
            "product_id": product_id,
            "entries": [e.to_dict() for e in entries],
            "verification": report.to_dict(),
        }), 200

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load inventory history")
        return jsonify({"error": "Internal server error"}), 500
