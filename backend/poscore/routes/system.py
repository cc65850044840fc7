# backend/poscore/routes/system.py
"""
System health endpoint.

Reports database reachability and whether card payments are configured.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Business, Transaction
from poscore.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        business_count = db.session.query(Business).count()
        transaction_count = db.session.query(Transaction).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "businesses": business_count,
                "transactions": transaction_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_payment_config() -> dict:
    # Configuration only; the payment platform itself is not called
    configured = bool(current_app.config.get("STRIPE_SECRET_KEY"))
    webhooks = bool(current_app.config.get("STRIPE_WEBHOOK_SECRET"))
    if configured and webhooks:
        return {"status": "healthy"}
    return {
        "status": "degraded",
        "warning": "Card payments disabled" if not configured else "Webhook secret not configured",
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: Database reachable (payment config may be degraded)
    - 503: Database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    payment_health = check_payment_config()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif payment_health["status"] == "degraded":
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "payments": payment_health,
        }
    }

    return response, http_status
