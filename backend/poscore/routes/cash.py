# Overview: Flask API routes for shift open/close and drawer cash movements.

# backend/poscore/routes/cash.py
"""
Cash Management API Routes

WHY: Cashier accountability. A shift starts with a counted drawer and ends
with a counted drawer; the difference from the ledger's expected cash is
recorded as over / short.
"""

from flask import Blueprint, request, jsonify, g

from .. import get_services
from ..decorators import require_cashier
from ..schemas import CashMovementRequest, EndDayRequest, StartDayRequest
from ..validation import PosError
from . import error_response, internal_error


cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash")


@cash_bp.post("/start-day")
@require_cashier
def start_day_route():
    """
    Request body:
    {
        "cash_counts": {"twenties": 5, "ones": 20, "quarters": 40}
    }

    Returns:
        201: Shift opened
        409: Cashier already has an open shift
    """
    try:
        req = StartDayRequest.from_json(request.get_json(silent=True))
        shift = get_services().shifts.start_day(g.business, g.cashier, req.cash_counts)
        return jsonify({
            "message": "Day started successfully",
            "shift": shift.to_dict(),
            "starting_cash": shift.starting_cash,
        }), 201
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to start day")


@cash_bp.post("/end-day")
@require_cashier
def end_day_route():
    """
    Request body:
    {
        "cash_counts": {"twenties": 7, "ones": 22},
        "skip_email_summary": false  (optional)
    }

    Returns:
        200: Closed shift with expected / actual / difference
        409: No open shift
    """
    try:
        req = EndDayRequest.from_json(request.get_json(silent=True))
        closure = get_services().shifts.end_day(
            g.business, g.cashier, req.cash_counts, skip_email_summary=req.skip_email_summary
        )
        return jsonify({"message": "Day ended successfully", **closure.to_dict()})
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to end day")


@cash_bp.post("/pay-in")
@require_cashier
def pay_in_route():
    try:
        req = CashMovementRequest.from_json(request.get_json(silent=True))
        transaction = get_services().shifts.pay_in(g.business, g.cashier, req.amount, req.note)
        return jsonify({"message": "Pay in recorded successfully", "transaction": transaction.to_dict()}), 201
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record pay in")


@cash_bp.post("/pay-out")
@require_cashier
def pay_out_route():
    try:
        req = CashMovementRequest.from_json(request.get_json(silent=True))
        transaction = get_services().shifts.pay_out(g.business, g.cashier, req.amount, req.note)
        return jsonify({"message": "Pay out recorded successfully", "transaction": transaction.to_dict()}), 201
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record pay out")


@cash_bp.get("/shift")
@require_cashier
def current_shift_route():
    """Current open shift of the calling cashier, or null."""
    shift = get_services().shifts.get_active_shift(g.business.id, g.cashier.id)
    return jsonify({"shift": shift.to_dict() if shift else None})
