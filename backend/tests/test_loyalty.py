"""
Loyalty tests: accrual policy, idempotent credit, redemption.
"""

import pytest

from bazaar.errors import ValidationError
from bazaar.services.loyalty_service import FloorAccrualPolicy


@pytest.mark.parametrize("amount,points", [
    (0, 0),
    (999, 0),
    (1_000, 1),
    (7_500, 7),
    (10_000, 10),
    (-5_000, 0),
])
def test_floor_accrual(amount, points):
    assert FloorAccrualPolicy().points_for(amount) == points


def test_policy_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        FloorAccrualPolicy(0)


def test_credit_is_keyed_by_payment(memory):
    loyalty = memory.services.loyalty
    user_id = memory.customer.user_id

    first = loyalty.credit(user_id, 7, 12)
    second = loyalty.credit(user_id, 7, 12)

    assert first is second
    assert loyalty.balance(user_id) == 12


def test_nothing_to_credit(memory):
    assert memory.services.loyalty.credit(memory.customer.user_id, 8, 0) is None
    assert memory.services.loyalty.transactions(memory.customer.user_id) == []


def test_redeem_checks_balance(memory):
    loyalty = memory.services.loyalty
    user_id = memory.customer.user_id
    loyalty.credit(user_id, 1, 5)

    with pytest.raises(ValidationError) as exc:
        loyalty.redeem(user_id, 6)
    assert exc.value.details == {"requested": 6, "available": 5}

    txn = loyalty.redeem(user_id, 5, "Free coffee")
    assert (txn.transaction_type, txn.points, txn.description) == ("redeem", -5, "Free coffee")
    assert loyalty.balance(user_id) == 0


# HTTP


def _paid_order(client, fill_cart, user, product, quantity=1):
    headers = fill_cart(user, (product, quantity))
    order = client.post("/api/orders", json={}, headers=headers).get_json()["order"]
    resp = client.post(
        "/api/payments",
        json={"order_id": order["id"], "amount_fils": order["total_fils"], "method": "card"},
        headers=headers,
    )
    return resp, headers


def test_payment_earns_points_for_the_customer(client, seller, customer, make_product, fill_cart, auth_headers):
    product = make_product(price_fils=2_750, stock=10)
    resp, headers = _paid_order(client, fill_cart, customer, product, quantity=2)

    assert resp.get_json()["loyalty_transaction"]["points"] == 5

    account = client.get("/api/loyalty", headers=headers).get_json()
    assert account["balance"] == 5
    assert account["transactions"][0]["payment_id"] == resp.get_json()["payment"]["id"]
    # The seller ran no payment of their own.
    assert client.get("/api/loyalty", headers=auth_headers(seller)).get_json()["balance"] == 0


def test_small_payment_earns_nothing(client, customer, make_product, fill_cart):
    product = make_product(price_fils=500, stock=10)
    resp, headers = _paid_order(client, fill_cart, customer, product)

    assert resp.status_code == 201
    assert resp.get_json()["loyalty_transaction"] is None
    assert client.get("/api/loyalty", headers=headers).get_json()["balance"] == 0


def test_redeem_locks_the_user_before_reading_the_balance(memory, monkeypatch):
    loyalty = memory.services.loyalty
    user_id = memory.customer.user_id
    loyalty.credit(user_id, 1, 5)
    seen = []

    real_lock, real_balance = memory.repo.lock_user, memory.repo.loyalty_balance
    monkeypatch.setattr(memory.repo, "lock_user", lambda uid: seen.append(("lock", uid)) or real_lock(uid))
    monkeypatch.setattr(memory.repo, "loyalty_balance", lambda uid: seen.append(("balance", uid)) or real_balance(uid))

    loyalty.redeem(user_id, 2)

    assert seen[:2] == [("lock", user_id), ("balance", user_id)]


def test_redeem_endpoint(client, customer, make_product, fill_cart):
    product = make_product(price_fils=10_000, stock=10)
    _, headers = _paid_order(client, fill_cart, customer, product)

    resp = client.post("/api/loyalty/redeem", json={"points": 4}, headers=headers)
    assert resp.status_code == 201
    assert resp.get_json()["balance"] == 6

    resp = client.post("/api/loyalty/redeem", json={"points": 7}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["details"]["available"] == 6

    resp = client.post("/api/loyalty/redeem", json={"points": "lots"}, headers=headers)
    assert resp.status_code == 400
