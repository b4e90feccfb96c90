# Overview: Read-only receipt view derived from an order and its payments.

from __future__ import annotations

from ..statuses import PaymentStatus
from bazaar.money import format_fils
from bazaar.time_utils import to_utc_z


class ReceiptService:
    def __init__(self, repository, orders):
        self.repository = repository
        self.orders = orders

    def build(self, actor, order_id: int) -> dict:
        order = self.orders.get(actor, order_id)

        seller = self.repository.get_seller(order.seller_id)
        customer = self.repository.get_user(order.customer_id)
        attempts = self.repository.list_payments(order.id)

        # completed attempt wins; otherwise the most recent one
        payment = next((p for p in attempts if p.status == PaymentStatus.COMPLETED.value), None)
        if payment is None and attempts:
            payment = attempts[-1]

        return {
            "order_id": order.id,
            "created_at": to_utc_z(order.created_at),
            "status": order.status,
            "payment_status": order.payment_status,
            "is_pos_order": order.is_pos_order,
            "seller": _seller_block(seller),
            "customer": _customer_block(customer),
            "items": [
                dict(line, unit_price=format_fils(line["unit_price_fils"]), line_total=format_fils(line["line_total_fils"]))
                for line in order.items
            ],
            "total_fils": order.total_fils,
            "total": format_fils(order.total_fils),
            "payment": _payment_block(payment),
        }


def _seller_block(seller) -> dict | None:
    if seller is None:
        return None
    return {
        "business_name": seller.business_name,
        "business_email": seller.business_email,
        "business_address": seller.business_address,
        "phone_number": seller.phone_number,
        "whatsapp_number": seller.whatsapp_number,
        "business_website": seller.business_website,
        "business_logo": seller.business_logo,
    }


def _customer_block(customer) -> dict | None:
    if customer is None:
        return None
    name = " ".join(part for part in (customer.first_name, customer.last_name) if part)
    return {"id": customer.id, "name": name or customer.email, "email": customer.email}


def _payment_block(payment) -> dict | None:
    if payment is None:
        return None
    details = payment.details or {}
    received = details.get("amount_received_fils")
    change = details.get("change_fils")
    return {
        "payment_id": payment.id,
        "method": payment.method,
        "status": payment.status,
        "transaction_id": payment.transaction_id,
        "amount_fils": payment.amount_fils,
        "amount_received_fils": received,
        "amount_received": format_fils(received),
        "change_fils": change,
        "change": format_fils(change),
    }
