# backend/komepos/config.py
from __future__ import annotations
import os


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip().lower() for part in value.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/komepos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///komepos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fallbacks when a company row does not carry its own values
    DEFAULT_TIMEZONE = os.environ.get("KOMEPOS_DEFAULT_TIMEZONE", "America/Panama")
    DEFAULT_TAX_RATE = os.environ.get("KOMEPOS_DEFAULT_TAX_RATE", "0.07")

    # Payment methods settled through the physical cash drawer
    CASH_PAYMENT_METHODS = _csv(os.environ.get("KOMEPOS_CASH_PAYMENT_METHODS", "cash"))
    PAYMENT_METHODS = _csv(os.environ.get("KOMEPOS_PAYMENT_METHODS", "cash,card,transfer"))

    ORDER_NUMBER_PREFIX = os.environ.get("KOMEPOS_ORDER_NUMBER_PREFIX", "ORD")
    REFUND_NUMBER_PREFIX = os.environ.get("KOMEPOS_REFUND_NUMBER_PREFIX", "REF")

    COMMIT_RETRY_ATTEMPTS = int(os.environ.get("KOMEPOS_COMMIT_RETRY_ATTEMPTS", "3"))
