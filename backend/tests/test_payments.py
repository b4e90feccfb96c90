"""
Payment tests: settlement outcomes, compensation on decline, retries,
cash change, admin confirmation and reconciliation of stuck attempts.
"""

import random

import pytest

from bazaar.errors import (
    AuthorizationError,
    ConcurrencyConflictError,
    IllegalTransitionError,
    InsufficientStockError,
)
from bazaar.extensions import db
from bazaar.models import InventoryLogEntry, Notification, Payment, Product
from bazaar.services.settlement_service import (
    ApprovingSettlementGateway,
    Completed,
    Declined,
    DecliningSettlementGateway,
    RandomSettlementSimulator,
    gateway_from_config,
)


def _place_order(client, fill_cart, user, *lines):
    headers = fill_cart(user, *lines)
    resp = client.post("/api/orders", json={}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["order"], headers


def _pay(client, headers, order, **overrides):
    body = {"order_id": order["id"], "amount_fils": order["total_fils"], "method": "card", **overrides}
    return client.post("/api/payments", json=body, headers=headers)


def test_successful_payment_moves_order_to_processing(client, customer, make_product, fill_cart, gateway):
    product = make_product(price_fils=4_500, stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 2))

    resp = _pay(client, headers, order)

    assert resp.status_code == 201, resp.get_json()
    data = resp.get_json()
    assert data["payment"]["status"] == "completed"
    assert data["payment"]["transaction_id"] == "TXN-TEST-1"
    assert data["order"]["status"] == "processing"
    assert data["order"]["payment_status"] == "completed"
    assert data["loyalty_transaction"]["points"] == 9
    assert gateway.calls == [(order["id"], 9_000, "card")]
    assert db.session.get(Product, product.id).stock == 3


def test_declined_payment_restores_stock(client, customer, make_product, fill_cart, gateway):
    product = make_product(stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 2))
    gateway.queue("decline")

    resp = _pay(client, headers, order)

    assert resp.status_code == 402
    data = resp.get_json()
    assert data["code"] == "PAYMENT_DECLINED"
    assert data["error"] == "Card declined"
    assert data["items_released"] is True
    assert data["payment"]["status"] == "failed"
    assert data["order"]["status"] == "pending"
    assert data["order"]["payment_status"] == "failed"
    assert data["order"]["stock_reserved"] is False

    assert db.session.get(Product, product.id).stock == 5
    restock = (
        db.session.query(InventoryLogEntry)
        .filter_by(product_id=product.id, change_type="adjustment")
        .one()
    )
    assert restock.quantity_change == 2
    assert restock.order_id == order["id"]
    assert restock.payment_id == data["payment"]["id"]

    alert = db.session.query(Notification).filter_by(type="payment_declined").one()
    assert alert.seller_id is None


def test_gateway_error_is_recorded_as_decline(client, customer, make_product, fill_cart, gateway):
    product = make_product(stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))
    gateway.queue(RuntimeError("gateway unreachable"))

    resp = _pay(client, headers, order)

    assert resp.status_code == 402
    assert resp.get_json()["payment"]["decline_reason"] == "Settlement gateway error"
    assert db.session.get(Product, product.id).stock == 5


def test_retry_after_decline_reserves_stock_again(client, customer, make_product, fill_cart, gateway):
    product = make_product(stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 2))
    gateway.queue("decline")
    _pay(client, headers, order)

    resp = client.post(f"/api/orders/{order['id']}/payments/retry", headers=headers)

    assert resp.status_code == 201, resp.get_json()
    data = resp.get_json()
    assert data["order"]["status"] == "processing"
    assert data["order"]["stock_reserved"] is True
    assert db.session.get(Product, product.id).stock == 3

    payments = client.get(f"/api/payments/orders/{order['id']}", headers=headers).get_json()["payments"]
    assert [p["status"] for p in payments] == ["failed", "completed"]


def test_new_payment_after_decline_is_a_retry(client, customer, make_product, fill_cart, gateway, services):
    product = make_product(stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))
    gateway.queue("decline")
    _pay(client, headers, order)

    resp = _pay(client, headers, order)

    assert resp.status_code == 201
    assert db.session.get(Product, product.id).stock == 4
    assert services.ledger.verify_chain(product.id).valid


def test_retry_fails_when_stock_was_sold_meanwhile(client, customer, make_product, fill_cart, gateway, services):
    product = make_product(stock=2)
    order, headers = _place_order(client, fill_cart, customer, (product, 2))
    gateway.queue("decline")
    _pay(client, headers, order)

    services.ledger.adjust(product.id, -1, reason="walk-in sale")

    resp = client.post(f"/api/orders/{order['id']}/payments/retry", headers=headers)

    assert resp.status_code == 409
    assert resp.get_json()["code"] == "INSUFFICIENT_STOCK"
    assert db.session.get(Product, product.id).stock == 1
    statuses = [p.status for p in db.session.query(Payment).filter_by(order_id=order["id"])]
    assert statuses == ["failed"]


def test_retry_without_failed_attempt(client, customer, make_product, fill_cart):
    product = make_product(stock=2)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))

    resp = client.post(f"/api/orders/{order['id']}/payments/retry", headers=headers)
    assert resp.status_code == 400


def test_cash_payment_records_change(client, customer, make_product, fill_cart):
    product = make_product(price_fils=7_500, stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))

    resp = _pay(client, headers, order, method="cash", amount_received_fils=10_000)

    assert resp.status_code == 201
    assert resp.get_json()["payment"]["metadata"] == {"amount_received_fils": 10_000, "change_fils": 2_500}

    receipt = client.get(f"/api/orders/{order['id']}/receipt", headers=headers).get_json()["receipt"]
    assert receipt["payment"]["change"] == "2.500"
    assert receipt["payment"]["amount_received"] == "10.000"


def test_exact_cash_tender_has_no_change(client, customer, make_product, fill_cart):
    product = make_product(price_fils=7_500, stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))

    resp = _pay(client, headers, order, method="cash")
    assert resp.get_json()["payment"]["metadata"]["change_fils"] == 0


def test_cash_under_tender_is_rejected(client, customer, make_product, fill_cart, gateway):
    product = make_product(price_fils=7_500, stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))

    resp = _pay(client, headers, order, method="cash", amount_received_fils=5_000)

    assert resp.status_code == 400
    assert gateway.calls == []


@pytest.mark.parametrize("overrides,field", [
    ({"amount_fils": 1}, "expected_fils"),
    ({"amount_fils": "12.5"}, "field"),
    ({"method": "cheque"}, "allowed"),
])
def test_payment_validation(client, customer, make_product, fill_cart, overrides, field):
    product = make_product(stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))

    resp = _pay(client, headers, order, **overrides)

    assert resp.status_code == 400
    assert field in resp.get_json()["details"]


def test_paying_twice_is_rejected(client, customer, make_product, fill_cart):
    product = make_product(stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))
    _pay(client, headers, order)

    resp = _pay(client, headers, order)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Order is already paid"


def test_paying_someone_elses_order(client, customer, other_customer, make_product, fill_cart, auth_headers):
    product = make_product(stock=5)
    order, _ = _place_order(client, fill_cart, customer, (product, 1))

    resp = _pay(client, auth_headers(other_customer), order)
    assert resp.status_code == 403


def test_admin_confirm_is_idempotent(client, customer, admin, make_product, fill_cart, auth_headers):
    product = make_product(price_fils=7_500, stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))
    payment_id = _pay(client, headers, order).get_json()["payment"]["id"]
    admin_headers = auth_headers(admin)

    first = client.post(f"/api/payments/{payment_id}/confirm", headers=admin_headers)
    second = client.post(f"/api/payments/{payment_id}/confirm", headers=admin_headers)

    assert first.status_code == second.status_code == 200
    assert first.get_json()["loyalty_transaction"]["id"] == second.get_json()["loyalty_transaction"]["id"]
    loyalty = client.get("/api/loyalty", headers=headers).get_json()
    assert loyalty["balance"] == 7
    assert len(loyalty["transactions"]) == 1


def test_confirm_requires_admin_and_rejects_failed(client, customer, admin, make_product, fill_cart, auth_headers, gateway):
    product = make_product(stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))
    gateway.queue("decline")
    payment_id = _pay(client, headers, order).get_json()["payment"]["id"]

    assert client.post(f"/api/payments/{payment_id}/confirm", headers=headers).status_code == 403

    resp = client.post(f"/api/payments/{payment_id}/confirm", headers=auth_headers(admin))
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "ILLEGAL_TRANSITION"


def test_admin_fails_pending_attempt_and_releases_stock(client, customer, admin, make_product, fill_cart, auth_headers):
    product = make_product(stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 2))
    stuck = Payment(order_id=order["id"], amount_fils=order["total_fils"], method="card", status="pending", details={})
    db.session.add(stuck)
    db.session.commit()

    assert client.post(f"/api/payments/{stuck.id}/fail", headers=headers).status_code == 403

    resp = client.post(
        f"/api/payments/{stuck.id}/fail",
        json={"reason": "Gateway says declined"},
        headers=auth_headers(admin),
    )

    assert resp.status_code == 200, resp.get_json()
    data = resp.get_json()
    assert data["payment"]["status"] == "failed"
    assert data["payment"]["decline_reason"] == "Gateway says declined"
    assert data["order"]["payment_status"] == "failed"
    assert data["items_released"] is True
    assert db.session.get(Product, product.id).stock == 5


def test_admin_cannot_fail_completed_payment(client, customer, admin, make_product, fill_cart, auth_headers):
    product = make_product(stock=5)
    order, headers = _place_order(client, fill_cart, customer, (product, 1))
    payment_id = _pay(client, headers, order).get_json()["payment"]["id"]

    resp = client.post(f"/api/payments/{payment_id}/fail", headers=auth_headers(admin))

    assert resp.status_code == 409
    assert resp.get_json()["code"] == "ILLEGAL_TRANSITION"
    assert db.session.get(Product, product.id).stock == 4


# Service level


def _memory_order(memory, *, price_fils=3_000, quantity=1, stock=5):
    product = memory.product(price_fils=price_fils, stock=stock)
    memory.services.cart.add(memory.customer.user_id, product.id, quantity)
    return product, memory.services.checkout.checkout(memory.customer).order


def test_confirm_completes_pending_attempt(memory):
    product, order = _memory_order(memory)
    pending = memory.repo.add_payment(Payment(
        order_id=order.id, amount_fils=order.total_fils, method="bank_transfer", status="pending", details={},
    ))

    outcome = memory.services.payments.confirm(memory.admin, pending.id)
    again = memory.services.payments.confirm(memory.admin, pending.id)

    assert outcome.completed and again.completed
    assert pending.transaction_id == f"MANUAL-{pending.id}"
    assert order.status == "processing"
    assert memory.services.loyalty.balance(memory.customer.user_id) == 3
    assert memory.gateway.calls == []


def test_in_flight_attempt_blocks_a_second_one(memory):
    product, order = _memory_order(memory)
    memory.repo.add_payment(Payment(
        order_id=order.id, amount_fils=order.total_fils, method="card", status="pending", details={},
    ))

    with pytest.raises(ConcurrencyConflictError):
        memory.services.payments.submit(memory.customer, order.id, amount_fils=order.total_fils, method="card")


def test_cancelled_order_cannot_be_paid(memory):
    product, order = _memory_order(memory)
    memory.services.orders.transition(memory.customer, order.id, "cancelled")

    with pytest.raises(IllegalTransitionError):
        memory.services.payments.submit(memory.customer, order.id, amount_fils=order.total_fils, method="card")


def test_decline_then_retry_keeps_chain_valid(memory):
    product, order = _memory_order(memory, quantity=3, stock=3)
    memory.gateway.queue("decline", "approve")

    declined = memory.services.payments.submit(memory.customer, order.id, amount_fils=order.total_fils, method="card")
    assert not declined.completed
    assert product.stock == 3

    retried = memory.services.payments.retry(memory.customer, order.id)
    assert retried.completed
    assert product.stock == 0

    report = memory.services.ledger.verify_chain(product.id)
    assert report.valid
    assert [e.change_type for e in memory.services.ledger.history(product.id)] == [
        "restock", "sale", "adjustment", "sale",
    ]


def test_retry_conflict_leaves_no_attempt(memory):
    product, order = _memory_order(memory, quantity=2, stock=2)
    memory.gateway.queue("decline")
    memory.services.payments.submit(memory.customer, order.id, amount_fils=order.total_fils, method="card")
    memory.services.ledger.adjust(product.id, -2, reason="sold elsewhere")

    with pytest.raises(InsufficientStockError):
        memory.services.payments.retry(memory.customer, order.id)

    assert [p.status for p in memory.repo.list_payments(order.id)] == ["failed"]
    assert order.payment_status == "failed"
    assert order.stock_reserved is False


def test_attempt_stuck_after_settlement_can_be_reconciled(memory, monkeypatch):
    product, order = _memory_order(memory, quantity=2, stock=5)
    memory.gateway.queue("decline")

    real = memory.repo.run_in_transaction
    calls = []

    def losing_outcome_write(func, **kwargs):
        calls.append(func)
        if len(calls) == 2:
            raise ConcurrencyConflictError("Conflicting write detected; nothing was applied")
        return real(func, **kwargs)

    monkeypatch.setattr(memory.repo, "run_in_transaction", losing_outcome_write)
    with pytest.raises(ConcurrencyConflictError):
        memory.services.payments.submit(memory.customer, order.id, amount_fils=order.total_fils, method="card")
    monkeypatch.undo()

    (stuck,) = memory.repo.list_payments(order.id)
    assert stuck.status == "pending"
    assert product.stock == 3
    with pytest.raises(ConcurrencyConflictError):
        memory.services.orders.transition(memory.customer, order.id, "cancelled")

    with pytest.raises(AuthorizationError):
        memory.services.payments.fail(memory.customer, stuck.id)

    outcome = memory.services.payments.fail(memory.admin, stuck.id)

    assert not outcome.completed
    assert stuck.status == "failed"
    assert stuck.decline_reason == "Failed by admin reconciliation"
    assert order.payment_status == "failed"
    assert order.stock_reserved is False
    assert product.stock == 5

    replay = memory.services.payments.fail(memory.admin, stuck.id)
    assert replay.payment is stuck
    assert product.stock == 5
    assert memory.services.ledger.verify_chain(product.id).valid

    assert memory.services.payments.retry(memory.customer, order.id).completed
    assert product.stock == 3


# Settlement gateways


@pytest.mark.parametrize("backend,expected", [
    ("approve", ApprovingSettlementGateway),
    ("decline", DecliningSettlementGateway),
    ("random", RandomSettlementSimulator),
    (None, RandomSettlementSimulator),
])
def test_gateway_from_config(backend, expected):
    assert isinstance(gateway_from_config({"SETTLEMENT_BACKEND": backend}), expected)


def test_unknown_gateway_backend():
    with pytest.raises(ValueError):
        gateway_from_config({"SETTLEMENT_BACKEND": "carrier-pigeon"})


def test_random_simulator_extremes():
    always = RandomSettlementSimulator(success_rate=1.0, rng=random.Random(7))
    never = RandomSettlementSimulator(success_rate=0.0, rng=random.Random(7))

    result = always.settle(1, 1_000, "card")
    assert isinstance(result, Completed)
    assert result.transaction_id.startswith("TXN-")
    assert isinstance(never.settle(1, 1_000, "card"), Declined)

    with pytest.raises(ValueError):
        RandomSettlementSimulator(success_rate=1.5)
