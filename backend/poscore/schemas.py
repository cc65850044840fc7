"""
Request structures for the checkout, ledger and cash-management APIs.

Each `from_json` validates a raw JSON body at the boundary so that services
only ever see well-typed values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from poscore.time_utils import parse_iso_datetime
from .models.transactions import VALID_PAYMENT_METHODS, VALID_TYPES, STATUS_COMPLETED, STATUS_FAILED, STATUS_PENDING
from .validation import (
    ValidationError,
    optional_bool,
    optional_int,
    optional_text,
    require_cents,
    require_int,
    require_text,
)


MAX_NOTE_LENGTH = 200

DENOMINATIONS = {
    "pennies": 1,
    "nickels": 5,
    "dimes": 10,
    "quarters": 25,
    "ones": 100,
    "twos": 200,
    "fives": 500,
    "tens": 1000,
    "twenties": 2000,
    "fifties": 5000,
    "hundreds": 10000,
}


def _body(data: Any) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# =============================================================================
# CHECKOUT
# =============================================================================

@dataclass(frozen=True)
class CartLineRequest:
    """One line to price: a catalog UPC, or a manual department + price entry."""
    quantity: int = 1
    upc: Optional[str] = None
    department_id: Optional[int] = None
    price: Optional[int] = None

    @property
    def is_manual(self) -> bool:
        return self.upc is None

    @classmethod
    def from_json(cls, data: Any) -> "CartLineRequest":
        data = _body(data)
        quantity = optional_int(data, "quantity", minimum=1, default=1)
        upc = optional_text(data, "upc")
        if upc is not None:
            if not 8 <= len(upc) <= 14:
                raise ValidationError("Invalid UPC format")
            return cls(quantity=quantity, upc=upc)

        if data.get("department_id") is None or data.get("price") is None:
            raise ValidationError("Department and price required for manual entry")
        return cls(
            quantity=quantity,
            department_id=require_int(data, "department_id", minimum=1),
            price=require_cents(data, "price"),
        )


@dataclass(frozen=True)
class VerifyAgeRequest:
    confirmed: bool
    customer_age: Optional[int] = None

    @classmethod
    def from_json(cls, data: Any) -> "VerifyAgeRequest":
        data = _body(data)
        if data.get("confirmed") is None:
            raise ValidationError("confirmed is required")
        return cls(
            confirmed=optional_bool(data, "confirmed"),
            customer_age=optional_int(data, "customer_age", minimum=0, maximum=120),
        )


@dataclass(frozen=True)
class PaymentRequest:
    items: list[CartLineRequest]
    payment_method: str
    cash_received: Optional[int] = None
    customer_age_verified: bool = False
    verified_age: Optional[int] = None

    @classmethod
    def from_json(cls, data: Any) -> "PaymentRequest":
        data = _body(data)
        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("At least one item required")

        method = data.get("payment_method")
        if method not in VALID_PAYMENT_METHODS:
            raise ValidationError("Invalid payment method", {"allowed": VALID_PAYMENT_METHODS})

        cash_received = None
        if method == "cash":
            cash_received = require_cents(data, "cash_received")

        return cls(
            items=[CartLineRequest.from_json(item) for item in raw_items],
            payment_method=method,
            cash_received=cash_received,
            customer_age_verified=optional_bool(data, "customer_age_verified"),
            verified_age=optional_int(data, "verified_age", minimum=0, maximum=120),
        )


@dataclass(frozen=True)
class ConfirmCardPaymentRequest:
    transaction_id: str
    payment_intent_id: str

    @classmethod
    def from_json(cls, data: Any) -> "ConfirmCardPaymentRequest":
        data = _body(data)
        return cls(
            transaction_id=require_text(data, "transaction_id", max_length=36),
            payment_intent_id=require_text(data, "payment_intent_id", max_length=128),
        )


# =============================================================================
# LEDGER
# =============================================================================

@dataclass(frozen=True)
class RefundItemRequest:
    item_id: int
    quantity: int


@dataclass(frozen=True)
class RefundRequest:
    items: list[RefundItemRequest] = field(default_factory=list)
    reason: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "RefundRequest":
        data = _body(data)
        raw_items = data.get("items")
        if raw_items is None:
            raw_items = []
        if not isinstance(raw_items, list):
            raise ValidationError("Items must be an array")

        items = []
        for raw in raw_items:
            raw = _body(raw)
            items.append(RefundItemRequest(
                item_id=require_int(raw, "item_id", minimum=1),
                quantity=require_int(raw, "quantity", minimum=1),
            ))
        return cls(items=items, reason=optional_text(data, "reason", max_length=MAX_NOTE_LENGTH))


@dataclass(frozen=True)
class VoidRequest:
    reason: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "VoidRequest":
        data = _body(data)
        return cls(reason=optional_text(data, "reason", max_length=MAX_NOTE_LENGTH))


@dataclass(frozen=True)
class TransactionQuery:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    type: Optional[str] = None
    payment_method: Optional[str] = None
    cashier_id: Optional[int] = None
    status: Optional[str] = None
    limit: int = 50
    offset: int = 0

    @classmethod
    def from_args(cls, args) -> "TransactionQuery":
        args = dict(args.items()) if hasattr(args, "items") else dict(args)
        try:
            start = parse_iso_datetime(args.get("start_date"))
            end = parse_iso_datetime(args.get("end_date"))
        except ValueError:
            raise ValidationError("Invalid date; expected ISO-8601")

        type_ = args.get("type") or None
        if type_ is not None and type_ not in VALID_TYPES:
            raise ValidationError("Invalid transaction type", {"allowed": VALID_TYPES})
        method = args.get("payment_method") or None
        if method is not None and method not in VALID_PAYMENT_METHODS:
            raise ValidationError("Invalid payment method", {"allowed": VALID_PAYMENT_METHODS})
        status = args.get("status") or None
        if status is not None and status not in (STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED):
            raise ValidationError("Invalid status")

        return cls(
            start=start,
            end=end,
            type=type_,
            payment_method=method,
            cashier_id=optional_int(args, "cashier_id", minimum=1),
            status=status,
            limit=optional_int(args, "limit", minimum=1, maximum=100, default=50),
            offset=optional_int(args, "offset", minimum=0, default=0),
        )


# =============================================================================
# CASH MANAGEMENT
# =============================================================================

def parse_cash_counts(data: Any) -> dict[str, int]:
    """Validate a {denomination: count} map against the fixed denomination table."""
    if not isinstance(data, dict):
        raise ValidationError("Cash counts must be an object")
    counts = {}
    for denomination, count in data.items():
        if denomination not in DENOMINATIONS:
            raise ValidationError(f"Invalid denomination: {denomination}", {"allowed": list(DENOMINATIONS)})
        counts[denomination] = optional_int(data, denomination, minimum=0, default=0)
    return counts


def total_cash(counts: dict[str, int]) -> int:
    return sum(DENOMINATIONS[denomination] * count for denomination, count in counts.items())


@dataclass(frozen=True)
class StartDayRequest:
    cash_counts: dict

    @classmethod
    def from_json(cls, data: Any) -> "StartDayRequest":
        data = _body(data)
        return cls(cash_counts=parse_cash_counts(data.get("cash_counts")))


@dataclass(frozen=True)
class EndDayRequest:
    cash_counts: dict
    skip_email_summary: bool = False

    @classmethod
    def from_json(cls, data: Any) -> "EndDayRequest":
        data = _body(data)
        return cls(
            cash_counts=parse_cash_counts(data.get("cash_counts")),
            skip_email_summary=optional_bool(data, "skip_email_summary"),
        )


@dataclass(frozen=True)
class CashMovementRequest:
    amount: int
    note: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "CashMovementRequest":
        data = _body(data)
        return cls(
            amount=require_cents(data, "amount", minimum=1),
            note=optional_text(data, "note", max_length=MAX_NOTE_LENGTH),
        )
