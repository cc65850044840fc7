# Overview: Shared JSON error rendering for API blueprints.

from flask import current_app, jsonify

from ..validation import PosError


def error_response(exc: PosError):
    """Render a core error with its own status code."""
    if exc.status_code >= 500:
        current_app.logger.warning("%s: %s", exc.code, exc.message)
    return jsonify(exc.to_dict()), exc.status_code


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500
