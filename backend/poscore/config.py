# backend/poscore/config.py
from __future__ import annotations
import os
from decimal import Decimal


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///poscore.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Card payments (platform fee is round_half_up(total * percent) + fixed)
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "usd")
    PAYMENT_FEE_PERCENT = Decimal(os.environ.get("PAYMENT_FEE_PERCENT", "0.002"))
    PAYMENT_FEE_FIXED_CENTS = int(os.environ.get("PAYMENT_FEE_FIXED_CENTS", "5"))

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_API_BASE = os.environ.get("STRIPE_API_BASE", "https://api.stripe.com")
    STRIPE_TIMEOUT_SECONDS = float(os.environ.get("STRIPE_TIMEOUT_SECONDS", "30"))
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_WEBHOOK_TOLERANCE_SECONDS = int(os.environ.get("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))

    # Voids are only allowed shortly after the sale; older sales must be refunded
    VOID_WINDOW_HOURS = int(os.environ.get("VOID_WINDOW_HOURS", "24"))

    DEFAULT_BUSINESS_TIMEZONE = os.environ.get("DEFAULT_BUSINESS_TIMEZONE", "UTC")
    DAILY_SUMMARY_ENABLED = _env_bool("DAILY_SUMMARY_ENABLED", True)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_test"
