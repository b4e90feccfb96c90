# Overview: Flask API routes for payments; parses input and returns JSON responses.

"""Payment API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..container import get_services
from ..decorators import require_auth, require_role
from ..errors import MarketplaceError, PaymentDeclinedError, ValidationError, error_response
from ..permissions import Role
from ..validation import coerce_int


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def payment_outcome_response(outcome, *, success_status: int = 201):
    """
    201 with payment + order on success.

    402 PAYMENT_DECLINED on decline; the body still carries the failed
    payment and the order, and tells the client the stock was released.
    """
    if outcome.completed:
        body = {
            "payment": outcome.payment.to_dict(),
            "order": outcome.order.to_dict(),
            "loyalty_transaction": outcome.loyalty_transaction.to_dict() if outcome.loyalty_transaction else None,
        }
        return jsonify(body), success_status

    declined = PaymentDeclinedError(
        outcome.payment.decline_reason or "Payment declined",
        details={"order_id": outcome.order.id, "payment_id": outcome.payment.id},
    )
    body = dict(
        declined.to_dict(),
        payment=outcome.payment.to_dict(),
        order=outcome.order.to_dict(),
        items_released=outcome.items_released,
    )
    return jsonify(body), declined.status_code


@payments_bp.post("")
@require_auth
def create_payment_route():
    """
    Pay for an order.

    Body: {"order_id", "amount_fils", "method", "amount_received_fils"?}
    amount_received_fils applies to cash only; change is computed.
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        if "order_id" not in data or "amount_fils" not in data or "method" not in data:
            raise ValidationError("order_id, amount_fils and method required")

        order_id = coerce_int(data.get("order_id"), "order_id", minimum=1)
        outcome = get_services().payments.submit(
            g.actor,
            order_id,
            amount_fils=data.get("amount_fils"),
            method=data.get("method"),
            amount_received_fils=data.get("amount_received_fils"),
        )
        return payment_outcome_response(outcome)

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/<int:payment_id>/confirm")
@require_auth
@require_role(Role.ADMIN)
def confirm_payment_route(payment_id: int):
    """Admin confirmation; replaying it never double-credits loyalty."""
    try:
        outcome = get_services().payments.confirm(g.actor, payment_id)
        return payment_outcome_response(outcome, success_status=200)
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/<int:payment_id>/fail")
@require_auth
@require_role(Role.ADMIN)
def fail_payment_route(payment_id: int):
    """
    Admin reconciliation: mark a stuck pending attempt failed and release its stock.

    Body (optional): {"reason"}
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        outcome = get_services().payments.fail(g.actor, payment_id, data.get("reason"))
        return jsonify({
            "payment": outcome.payment.to_dict(),
            "order": outcome.order.to_dict(),
            "items_released": outcome.items_released,
        }), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reconcile payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/orders/<int:order_id>")
@require_auth
def list_order_payments_route(order_id: int):
    try:
        payments = get_services().payments.list_for_order(g.actor, order_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500
