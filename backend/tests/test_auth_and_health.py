"""
Bearer session and health endpoint tests.
"""

from datetime import timedelta

from bazaar.extensions import db
from bazaar.models import SessionToken
from bazaar.services import session_service
from bazaar.time_utils import utcnow


def test_missing_token(client, db_session):
    resp = client.get("/api/orders")
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "AUTHENTICATION_REQUIRED"


def test_unknown_token(client, db_session):
    resp = client.get("/api/orders", headers={"Authorization": "Bearer not-a-real-token"})
    assert resp.status_code == 401


def test_valid_token_sets_actor(client, seller, auth_headers):
    resp = client.get("/api/orders", headers=auth_headers(seller))
    assert resp.status_code == 200
    assert resp.get_json() == {"orders": []}


def test_token_is_stored_hashed(customer):
    session, token = session_service.create_session(customer.id)
    assert session.token_hash == session_service.hash_token(token)
    assert token not in session.token_hash


def test_revoked_token(client, customer):
    _, token = session_service.create_session(customer.id)
    assert session_service.revoke_session(token) is True
    assert session_service.revoke_session(token) is False

    resp = client.get("/api/cart", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_expired_token(client, customer):
    session, token = session_service.create_session(customer.id)
    session.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()

    resp = client.get("/api/cart", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_deactivated_user_loses_session(client, customer):
    session, token = session_service.create_session(customer.id)
    customer.is_active = False
    db.session.commit()

    resp = client.get("/api/cart", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401
    assert db.session.get(SessionToken, session.id).is_revoked is True


def test_admin_only_route(client, seller, auth_headers):
    resp = client.post("/api/payments/1/confirm", headers=auth_headers(seller))
    assert resp.status_code == 403
    assert resp.get_json()["details"]["required_roles"] == ["admin"]


def test_health(client, db_session):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "ok"
    assert data["checks"]["database"]["status"] == "healthy"
    assert data["checks"]["settlement"]["backend"] == "scripted"
    assert data["timestamp"].endswith("Z")
