# Overview: Flask API routes for seller and admin inboxes.

from flask import Blueprint, current_app, g, jsonify, request

from ..container import get_services
from ..decorators import require_auth, require_role
from ..errors import MarketplaceError, error_response
from ..permissions import Role
from ..validation import coerce_int


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@require_role(Role.SELLER, Role.ADMIN)
def list_notifications_route():
    try:
        limit = coerce_int(request.args.get("limit", "50"), "limit", minimum=1, maximum=200)
        notifications = get_services().notifier.inbox(g.actor, limit=limit)
        return jsonify({
            "notifications": [n.to_dict() for n in notifications],
            "unread": sum(1 for n in notifications if not n.is_read),
        }), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.put("/<int:notification_id>/read")
@require_auth
@require_role(Role.SELLER, Role.ADMIN)
def mark_notification_read_route(notification_id: int):
    try:
        notification = get_services().notifier.mark_read(g.actor, notification_id)
        return jsonify({"notification": notification.to_dict()}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark notification read")
        return jsonify({"error": "Internal server error"}), 500
