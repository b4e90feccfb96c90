# backend/bazaar/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports which settlement backend is wired,
which is the first thing to look at when payments behave unexpectedly.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..container import get_services
from ..extensions import db
from bazaar.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "settlement": {"backend": get_services().gateway.name},
        },
    }
    return jsonify(body), 200 if healthy else 503
