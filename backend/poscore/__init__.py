# backend/poscore/__init__.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from flask import Flask, current_app, request

from .config import Config
from .extensions import db, migrate
from .time_utils import utcnow


@dataclass
class PosServices:
    """Collaborators shared by every request of one app instance."""
    catalog: object
    gateway: object
    notifier: object
    ledger: object
    checkout: object
    shifts: object
    clock: Callable = utcnow


def build_services(app: Flask, *, catalog=None, gateway=None, notifier=None, clock=None) -> PosServices:
    """
    Wire the checkout core from app config.

    Any collaborator passed in replaces the default (tests inject fakes here).
    """
    from .services.catalog_service import SqlCatalog
    from .services.checkout_service import CheckoutOrchestrator
    from .services.ledger_service import TransactionLedger
    from .services.notification_service import LoggingNotifier
    from .services.payment_gateway import StripeGateway
    from .services.shift_service import ShiftService

    config = app.config
    clock = clock or utcnow
    catalog = catalog or SqlCatalog()
    notifier = notifier or LoggingNotifier()
    if gateway is None:
        gateway = StripeGateway(
            config["STRIPE_SECRET_KEY"],
            api_base=config["STRIPE_API_BASE"],
            timeout=config["STRIPE_TIMEOUT_SECONDS"],
            webhook_secret=config["STRIPE_WEBHOOK_SECRET"],
            webhook_tolerance=config["STRIPE_WEBHOOK_TOLERANCE_SECONDS"],
        )

    ledger = TransactionLedger(
        gateway,
        clock=clock,
        void_window=timedelta(hours=config["VOID_WINDOW_HOURS"]),
    )
    checkout = CheckoutOrchestrator(
        catalog,
        gateway,
        ledger,
        clock=clock,
        currency=config["PAYMENT_CURRENCY"],
        fee_percent=config["PAYMENT_FEE_PERCENT"],
        fee_fixed=config["PAYMENT_FEE_FIXED_CENTS"],
        default_timezone=config["DEFAULT_BUSINESS_TIMEZONE"],
    )
    shifts = ShiftService(
        ledger,
        notifier,
        clock=clock,
        summary_enabled=config["DAILY_SUMMARY_ENABLED"],
        default_timezone=config["DEFAULT_BUSINESS_TIMEZONE"],
    )
    return PosServices(
        catalog=catalog,
        gateway=gateway,
        notifier=notifier,
        ledger=ledger,
        checkout=checkout,
        shifts=shifts,
        clock=clock,
    )


def get_services() -> PosServices:
    return current_app.extensions["poscore"]


def create_app(config_object=None, **overrides) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    app.extensions["poscore"] = build_services(app, **overrides)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.checkout import checkout_bp
    from .routes.transactions import transactions_bp
    from .routes.cash import cash_bp
    from .routes.webhooks import webhooks_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(cash_bp)
    app.register_blueprint(webhooks_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "X-Business-Id, X-Cashier-Id, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
