# Overview: Request identity decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .extensions import db
from .models import Business, Cashier
from .validation import ValidationError, coerce_int


def _header_id(name: str) -> int | None:
    value = request.headers.get(name)
    if value is None or not value.strip():
        return None
    number = coerce_int(value, name)
    return number if number > 0 else None


def require_cashier(f):
    """
    Resolve the calling cashier and business.

    Authentication itself is handled upstream; the terminal forwards the
    resolved identity as X-Business-Id / X-Cashier-Id. Sets:
    - g.business: the Business the request acts on
    - g.cashier: the active Cashier of that business

    Returns 401 if either header is missing or does not resolve to an active
    cashier of that business.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            business_id = _header_id("X-Business-Id")
            cashier_id = _header_id("X-Cashier-Id")
        except ValidationError:
            return jsonify({"error": "Authentication required"}), 401

        if business_id is None or cashier_id is None:
            return jsonify({"error": "Authentication required"}), 401

        cashier = db.session.query(Cashier).filter_by(
            id=cashier_id,
            business_id=business_id,
            is_active=True,
        ).first()
        if not cashier:
            current_app.logger.warning(
                "Rejected request to %s for cashier %s of business %s", request.path, cashier_id, business_id
            )
            return jsonify({"error": "Invalid cashier"}), 401

        g.cashier = cashier
        g.business = db.session.get(Business, business_id)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require the resolved cashier to hold one of `roles`."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "cashier"):
                return jsonify({"error": "Authentication required"}), 401

            if g.cashier.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                    "message": f"Requires one of: {', '.join(roles)}"
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
