# Overview: Payment platform webhook receiver.

# backend/poscore/routes/webhooks.py
"""
Payment Webhook Route

The payment platform posts signed events here. The signature is verified
against the raw request body before anything is parsed or applied.
"""

from flask import Blueprint, request, jsonify, current_app

from .. import get_services
from ..validation import PosError, ValidationError
from . import error_response, internal_error


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.post("/payments")
def payment_webhook_route():
    services = get_services()
    try:
        event = services.gateway.parse_event(request.get_data(), request.headers.get("Stripe-Signature"))
    except ValidationError as e:
        current_app.logger.warning("Rejected payment webhook: %s", e.message)
        return error_response(e)

    try:
        result = services.ledger.apply_payment_event(event)
        return jsonify({"received": True, **result})
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to apply payment webhook")
