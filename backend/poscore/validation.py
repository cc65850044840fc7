from __future__ import annotations

from typing import Any


# Maximum amount: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999


class PosError(Exception):
    """
    Base class for every error the checkout core reports to callers.

    `code` is a stable machine-readable name, `status_code` the HTTP status the
    API layer renders, `retryable` whether the caller may simply try again.
    """
    status_code = 400
    code = "pos_error"
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


# =============================================================================
# TAXONOMY
# =============================================================================

class ValidationError(PosError):
    """400-level input problem."""
    status_code = 400
    code = "validation_error"


class PolicyViolation(PosError):
    """A business rule refused the operation. No state was changed."""
    status_code = 422
    code = "policy_violation"


class ConflictError(PosError):
    """409-level state conflict (already refunded, shift already open, ...)."""
    status_code = 409
    code = "conflict"


class ExternalServiceError(PosError):
    """Payment platform unreachable or declined; safe for the caller to retry."""
    status_code = 502
    code = "external_service_error"
    retryable = True


class NotFoundError(PosError):
    status_code = 404
    code = "not_found"


# =============================================================================
# CONCRETE ERRORS
# =============================================================================

class InvalidQuantity(ValidationError):
    code = "invalid_quantity"


class InvalidRefundItem(ValidationError):
    code = "invalid_refund_item"


class TimeRestricted(PolicyViolation):
    status_code = 403
    code = "time_restricted"


class AgeVerificationRequired(PolicyViolation):
    status_code = 403
    code = "age_verification_required"


class InsufficientPayment(PolicyViolation):
    code = "insufficient_payment"


class ExcessiveRefundQuantity(PolicyViolation):
    code = "excessive_refund_quantity"


class NotRefundable(PolicyViolation):
    code = "not_refundable"


class PaymentNotConfigured(PolicyViolation):
    code = "payment_not_configured"


class AlreadyRefunded(ConflictError):
    code = "already_refunded"


class NotVoidable(ConflictError):
    code = "not_voidable"


class VoidWindowExpired(ConflictError):
    code = "void_window_expired"


class ShiftAlreadyOpen(ConflictError):
    code = "shift_already_open"


class NoActiveShift(ConflictError):
    code = "no_active_shift"


class PaymentGatewayError(ExternalServiceError):
    code = "payment_gateway_error"


class PaymentNotCompleted(ExternalServiceError):
    """The gateway reports the payment has not (yet) succeeded."""
    status_code = 400
    code = "payment_not_completed"

    def __init__(self, status: str):
        super().__init__("Payment not completed", {"status": status})
        self.status = status


class TransactionNotFound(NotFoundError):
    code = "transaction_not_found"


class ProductNotFound(NotFoundError):
    code = "product_not_found"


class DepartmentNotFound(NotFoundError):
    code = "department_not_found"


# =============================================================================
# COERCION
# =============================================================================

def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for request payloads.

    Rejects floats, booleans, decimal strings and scientific notation so that
    money never passes through a float.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_int(data: dict, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    if data.get(field) is None:
        raise ValidationError(f"{field} is required")
    return optional_int(data, field, minimum=minimum, maximum=maximum)


def optional_int(
    data: dict,
    field: str,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
    default: int | None = None,
) -> int | None:
    value = data.get(field)
    if value is None:
        return default
    number = coerce_int(value, field)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return number


def require_cents(data: dict, field: str, *, minimum: int = 0) -> int:
    return require_int(data, field, minimum=minimum, maximum=MAX_AMOUNT_CENTS)


def optional_bool(data: dict, field: str, default: bool = False) -> bool:
    value = data.get(field)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(f"{field} must be a boolean")


def optional_text(data: dict, field: str, *, max_length: int | None = None) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def require_text(data: dict, field: str, *, max_length: int | None = None) -> str:
    text = optional_text(data, field, max_length=max_length)
    if text is None:
        raise ValidationError(f"{field} is required")
    return text
