# backend/bazaar/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bazaar.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bazaar.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Settlement boundary: "random" (reference simulator), "approve", "decline"
    SETTLEMENT_BACKEND = os.environ.get("SETTLEMENT_BACKEND", "random")
    SETTLEMENT_SUCCESS_RATE = float(os.environ.get("SETTLEMENT_SUCCESS_RATE", "0.9"))

    # 1 point per whole currency unit settled (1000 fils)
    LOYALTY_FILS_PER_POINT = int(os.environ.get("LOYALTY_FILS_PER_POINT", "1000"))

    # Default seller alert threshold; sellers may override per profile
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
