# Overview: Flask API routes for transaction history, receipts, refunds and voids.

# backend/poscore/routes/transactions.py
"""
Transaction API Routes

SECURITY:
- Any cashier of the business can list transactions and print receipts
- Refunds and voids require an owner or manager
"""

from flask import Blueprint, request, jsonify, g

from .. import get_services
from ..decorators import require_cashier, require_role
from ..models.business import ROLE_MANAGER, ROLE_OWNER
from ..schemas import RefundRequest, TransactionQuery, VoidRequest
from ..services.ledger_service import RefundLine
from ..validation import PosError
from . import error_response, internal_error


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@transactions_bp.get("/")
@require_cashier
def list_transactions_route():
    """
    List transactions, newest first.

    Query params: start_date, end_date (ISO-8601), type, payment_method,
    cashier_id, status, limit (1-100, default 50), offset.
    """
    try:
        query = TransactionQuery.from_args(request.args)
        rows, total = get_services().ledger.list_transactions(
            g.business.id,
            start=query.start,
            end=query.end,
            type=query.type,
            payment_method=query.payment_method,
            cashier_id=query.cashier_id,
            status=query.status,
            limit=query.limit,
            offset=query.offset,
        )
        return jsonify({
            "transactions": [t.to_dict() for t in rows],
            "total": total,
            "limit": query.limit,
            "offset": query.offset,
        })
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list transactions")


@transactions_bp.get("/<transaction_id>")
@require_cashier
def get_transaction_route(transaction_id: str):
    try:
        transaction = get_services().ledger.get(g.business.id, transaction_id)
        return jsonify({"transaction": transaction.to_dict(include_items=True)})
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to get transaction")


@transactions_bp.get("/<transaction_id>/receipt")
@require_cashier
def receipt_route(transaction_id: str):
    try:
        return jsonify({"receipt": get_services().ledger.receipt(g.business, transaction_id)})
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to build receipt")


@transactions_bp.post("/<transaction_id>/refund")
@require_cashier
@require_role(ROLE_OWNER, ROLE_MANAGER)
def refund_route(transaction_id: str):
    """
    Refund a completed sale.

    Request body (omit items for a full refund):
    {
        "items": [{"item_id": 12, "quantity": 1}],
        "reason": "Damaged"
    }

    Returns:
        201: Refund transaction and amount
        409: Already refunded
        422: Not a completed sale, or quantity exceeds the original
        502: Card refund failed at the payment platform (nothing recorded)
    """
    try:
        req = RefundRequest.from_json(request.get_json(silent=True))
        lines = [RefundLine(item_id=i.item_id, quantity=i.quantity) for i in req.items] or None
        result = get_services().ledger.refund(g.business.id, g.cashier, transaction_id, lines, req.reason)
        return jsonify({"success": True, **result.to_dict()}), 201
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to refund transaction")


@transactions_bp.post("/<transaction_id>/void")
@require_cashier
@require_role(ROLE_OWNER, ROLE_MANAGER)
def void_route(transaction_id: str):
    try:
        req = VoidRequest.from_json(request.get_json(silent=True))
        transaction = get_services().ledger.void(g.business.id, g.cashier, transaction_id, req.reason)
        return jsonify({"success": True, "transaction": transaction.to_dict()})
    except PosError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to void transaction")
