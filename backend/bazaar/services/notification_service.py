# Overview: Best-effort inbox notifications emitted after commits.

from __future__ import annotations

import logging

from ..errors import AuthorizationError, NotFoundError
from ..models import Notification
from bazaar.money import format_fils
from bazaar.time_utils import utcnow

logger = logging.getLogger(__name__)


class NotificationEmitter:
    """
    Fire-and-forget notifications.

    Every public emit method runs AFTER the business transaction committed and
    swallows its own failures (logged with traceback): a broken inbox must
    never undo or fail a checkout or a payment.
    """

    def __init__(self, repository, *, default_low_stock_threshold: int = 5):
        self.repository = repository
        self.default_low_stock_threshold = default_low_stock_threshold

    def _emit(self, *, type_: str, title: str, message: str, seller_id=None, related_id=None, details=None):
        def _op():
            return self.repository.add_notification(Notification(
                type=type_,
                title=title,
                message=message,
                seller_id=seller_id,
                related_id=str(related_id) if related_id is not None else None,
                is_read=False,
                details=details or {},
                created_at=utcnow(),
            ))

        try:
            return self.repository.run_in_transaction(_op)
        except Exception:
            logger.exception("Failed to emit %s notification (related_id=%s)", type_, related_id)
            return None

    def new_order(self, order):
        return self._emit(
            type_="new_order",
            title="New order received",
            message=f"Order #{order.id} for {format_fils(order.total_fils)} is awaiting payment",
            seller_id=order.seller_id,
            related_id=order.id,
            details={"order_id": order.id, "total_fils": order.total_fils, "is_pos_order": order.is_pos_order},
        )

    def low_stock_if_needed(self, product_id: int, new_stock: int):
        try:
            product = self.repository.get_product(product_id)
            seller = self.repository.get_seller(product.seller_id) if product is not None else None
        except Exception:
            logger.exception("Low stock lookup failed for product %s", product_id)
            return None
        if seller is None or not seller.low_stock_alerts:
            return None

        threshold = seller.low_stock_threshold
        if threshold is None:
            threshold = self.default_low_stock_threshold
        if new_stock > threshold:
            return None

        return self._emit(
            type_="low_stock",
            title="Low stock alert",
            message=f"{product.name} is down to {new_stock} unit(s)",
            seller_id=seller.id,
            related_id=product.id,
            details={"product_id": product.id, "stock": new_stock, "threshold": threshold},
        )

    def payment_declined(self, order, payment):
        # seller_id=None -> admin inbox
        return self._emit(
            type_="payment_declined",
            title="Payment declined",
            message=f"Payment #{payment.id} for order #{order.id} was declined: {payment.decline_reason}",
            seller_id=None,
            related_id=order.id,
            details={"order_id": order.id, "payment_id": payment.id, "reason": payment.decline_reason},
        )

    # Inbox reads

    def inbox(self, actor, *, limit: int = 50):
        if actor.is_admin:
            seller_id = None
        elif actor.seller_id is not None:
            seller_id = actor.seller_id
        else:
            raise AuthorizationError("Only sellers and admins have an inbox")
        return self.repository.list_notifications(seller_id=seller_id, limit=limit)

    def mark_read(self, actor, notification_id: int):
        def _op():
            notification = self.repository.get_notification(notification_id)
            if notification is None:
                raise NotFoundError("notification", notification_id)
            if notification.seller_id is None:
                allowed = actor.is_admin
            else:
                allowed = actor.is_admin or notification.seller_id == actor.seller_id
            if not allowed:
                raise AuthorizationError("Cannot modify another inbox's notification")
            notification.is_read = True
            return notification

        return self.repository.run_in_transaction(_op)
