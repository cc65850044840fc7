# Overview: Flask API routes for register checkout; parses input and returns JSON responses.

# backend/poscore/routes/checkout.py
"""
Checkout API Routes

WHY: The register terminal drives a sale through these endpoints: start a
session, scan or key items, verify age, then pay.

DESIGN:
- Carts live on the terminal; /payment re-prices every line server side
- Cash sales complete in one call and return change due
- Card sales return a payment intent; the terminal collects the card and then
  calls /confirm-card-payment (the payment webhook may complete it first)
"""

from flask import Blueprint, request, jsonify, g

from .. import get_services
from ..decorators import require_cashier
from ..schemas import CartLineRequest, ConfirmCardPaymentRequest, PaymentRequest, VerifyAgeRequest
from ..validation import PosError
from . import error_response, internal_error


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("/start")
@require_cashier
def start_checkout_route():
    """Open a checkout session for the calling cashier. Nothing is persisted."""
    try:
        session = get_services().checkout.start_checkout(g.cashier)
        return jsonify(session.to_dict())
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to start checkout")


@checkout_bp.post("/add-item")
@require_cashier
def add_item_route():
    """
    Price one line.

    Request body (catalog item):
    {
        "upc": "012345678905",
        "quantity": 2  (optional, default: 1)
    }

    Request body (manual entry):
    {
        "department_id": 3,
        "price": 499,
        "quantity": 1
    }

    Returns:
        200: Priced line with requires_age_check
        403: Department is time-restricted right now
        404: Unknown UPC or department
    """
    try:
        line = CartLineRequest.from_json(request.get_json(silent=True))
        priced = get_services().checkout.add_item(g.business, line)
        return jsonify({"item": priced.to_dict()})
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to add item")


@checkout_bp.post("/verify-age")
@require_cashier
def verify_age_route():
    try:
        req = VerifyAgeRequest.from_json(request.get_json(silent=True))
        return jsonify(get_services().checkout.verify_age(req.confirmed, req.customer_age))
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to verify age")


@checkout_bp.post("/payment")
@require_cashier
def payment_route():
    """
    Record the sale and take payment.

    Request body:
    {
        "items": [{"upc": "012345678905", "quantity": 2}, {"department_id": 3, "price": 499}],
        "payment_method": "cash" | "card",
        "cash_received": 2000,  (required for cash)
        "customer_age_verified": true,  (optional)
        "verified_age": 30  (optional)
    }

    Returns:
        201: Transaction plus payment details (change, or payment intent)
        403: Age verification missing or a time restriction applies
        422: Insufficient cash or card payments not configured
        502: Payment platform error (no sale is recorded)
    """
    try:
        req = PaymentRequest.from_json(request.get_json(silent=True))
        checkout = get_services().checkout
        cart = checkout.build_cart(g.business, req.items, req.customer_age_verified, req.verified_age)
        result = checkout.process_payment(g.business, g.cashier, cart, req.payment_method, req.cash_received)
        return jsonify(result.to_dict()), 201
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to process payment")


@checkout_bp.post("/confirm-card-payment")
@require_cashier
def confirm_card_payment_route():
    """
    Confirm a pending card sale after the terminal collected the card.

    Returns:
        200: Completed transaction (idempotent for already completed sales)
        400: Payment not completed; body carries the gateway status
        404: Transaction / payment intent mismatch
    """
    try:
        req = ConfirmCardPaymentRequest.from_json(request.get_json(silent=True))
        transaction = get_services().checkout.confirm_card_payment(
            g.business, req.transaction_id, req.payment_intent_id
        )
        return jsonify({"success": True, "transaction": transaction.to_dict(include_items=True)})
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to confirm card payment")
