# backend/poscore/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/poscore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///poscore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Human-readable number prefixes
    CASH_TRANSACTION_PREFIX = os.environ.get("CASH_TRANSACTION_PREFIX", "CR")
    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "ORD")
    RETURN_NUMBER_PREFIX = os.environ.get("RETURN_NUMBER_PREFIX", "RET")

    # Tendered amount may not exceed total * multiplier (typo/fraud guard)
    OVERPAYMENT_MULTIPLIER = int(os.environ.get("OVERPAYMENT_MULTIPLIER", "2"))

    # 100 cents = 1 loyalty point
    LOYALTY_CENTS_PER_POINT = int(os.environ.get("LOYALTY_CENTS_PER_POINT", "100"))

    SHIFT_HISTORY_LIMIT = int(os.environ.get("SHIFT_HISTORY_LIMIT", "30"))
