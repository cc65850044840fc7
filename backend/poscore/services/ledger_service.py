# Overview: Transaction ledger; persists sales and drives refund, void and settlement transitions.

"""
Transaction Ledger

WHY: Every monetary event at the register (sale, refund, pay-in, pay-out) is a
Transaction row with immutable line items. Refunds and voids are transitions
on an existing sale, never edits.

DESIGN PRINCIPLES:
- A Transaction and its items are inserted in one database transaction
- "refunded" / "voided" flags are claimed with a single conditional UPDATE,
  so two concurrent refunds of one sale cannot both succeed
- No row lock or open database transaction is held across a gateway call
- A row whose payment step failed is deleted, never left half-written
- Nothing here retries gateway calls; the local transaction id is the
  idempotency key so callers can retry safely

STATE MACHINE:
- pending -> completed | failed (failed is terminal)
- completed -> refunded (partial or full) | voided (both terminal)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Business, Transaction, TransactionItem
from ..models.transactions import (
    METHOD_CARD,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    TYPE_REFUND,
    TYPE_SALE,
)
from .. import money
from poscore.time_utils import as_utc_naive, utcnow
from ..validation import (
    AlreadyRefunded,
    ExcessiveRefundQuantity,
    InvalidRefundItem,
    NotRefundable,
    NotVoidable,
    PaymentGatewayError,
    TransactionNotFound,
    VoidWindowExpired,
)
from .concurrency import compare_and_set, lock_for_update
from .payment_gateway import PaymentGateway, PaymentIntent


MAX_PAGE_SIZE = 100


@dataclass
class RefundLine:
    item_id: int
    quantity: int


@dataclass
class RefundResult:
    refund_transaction: Transaction
    refund_amount: int

    def to_dict(self) -> dict:
        return {
            "refund_transaction": self.refund_transaction.to_dict(include_items=True),
            "refund_amount": self.refund_amount,
        }


class TransactionLedger:
    def __init__(
        self,
        gateway: PaymentGateway,
        *,
        clock: Callable[[], datetime] = utcnow,
        void_window: timedelta = timedelta(hours=24),
    ):
        self.gateway = gateway
        self.clock = clock
        self.void_window = void_window

    # =========================================================================
    # WRITES
    # =========================================================================

    def create_transaction(
        self,
        *,
        business_id: int,
        cashier,
        type: str,
        payment_method: str | None,
        status: str,
        subtotal: int = 0,
        tax_amount: int = 0,
        total_amount: int = 0,
        items: Iterable[dict] = (),
        note: str | None = None,
        age_verified: bool = False,
        original_transaction_id: str | None = None,
    ) -> Transaction:
        """
        Insert a Transaction and its items atomically.

        Items are dicts with product_id, product_name, department_id, quantity,
        unit_price, tax_amount and total.
        """
        now = self.clock()
        transaction = Transaction(
            business_id=business_id,
            cashier_id=cashier.id if cashier else None,
            cashier_name=cashier.name if cashier else None,
            type=type,
            payment_method=payment_method,
            status=status,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_amount=total_amount,
            processing_fee=0,
            net_amount=total_amount,
            note=note,
            age_verified=age_verified,
            original_transaction_id=original_transaction_id,
            created_at=now,
            completed_at=now if status == STATUS_COMPLETED else None,
        )
        transaction.items = [TransactionItem(**item) for item in items]

        try:
            db.session.add(transaction)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return transaction

    def discard(self, transaction_id: str) -> None:
        """
        Delete a Transaction whose payment step failed.

        Only used as rollback of a row this process just created; completed
        history is never deleted.
        """
        transaction = db.session.get(Transaction, transaction_id)
        if transaction is None:
            return
        try:
            db.session.delete(transaction)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def attach_payment_intent(self, transaction: Transaction, intent: PaymentIntent, fee: int) -> Transaction:
        transaction.payment_intent_id = intent.id
        transaction.processing_fee = fee
        transaction.net_amount = transaction.total_amount - fee
        db.session.commit()
        return transaction

    def complete_card_payment(self, transaction: Transaction, settlement_ref: str | None) -> bool:
        """
        Move a pending card Transaction to completed.

        Returns False if it was not pending any more (already completed by a
        webhook or an earlier confirmation).
        """
        claimed = compare_and_set(
            Transaction,
            [Transaction.id == transaction.id, Transaction.status == STATUS_PENDING],
            {
                "status": STATUS_COMPLETED,
                "completed_at": self.clock(),
                "settlement_ref": settlement_ref,
            },
        )
        db.session.commit()
        if claimed:
            current_app.logger.info("Card transaction %s completed (charge %s)", transaction.id, settlement_ref)
        return claimed

    def fail_card_payment(self, transaction: Transaction, message: str | None) -> bool:
        claimed = compare_and_set(
            Transaction,
            [Transaction.id == transaction.id, Transaction.status == STATUS_PENDING],
            {"status": STATUS_FAILED, "failure_message": (message or "")[:255] or None},
        )
        db.session.commit()
        if claimed:
            current_app.logger.info("Card transaction %s failed: %s", transaction.id, message)
        return claimed

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, business_id: int, transaction_id: str) -> Transaction:
        transaction = db.session.query(Transaction).filter_by(
            id=transaction_id,
            business_id=business_id,
        ).first()
        if not transaction:
            raise TransactionNotFound("Transaction not found", {"transaction_id": transaction_id})
        return transaction

    def find_by_payment_intent(self, business_id: int, transaction_id: str, payment_intent_id: str) -> Transaction:
        transaction = db.session.query(Transaction).filter_by(
            id=transaction_id,
            business_id=business_id,
            payment_intent_id=payment_intent_id,
        ).first()
        if not transaction:
            raise TransactionNotFound("Transaction not found", {"transaction_id": transaction_id})
        return transaction

    def list_transactions(
        self,
        business_id: int,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        type: str | None = None,
        payment_method: str | None = None,
        cashier_id: int | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Transaction], int]:
        """Filtered, newest-first page of a business's transactions plus the total match count."""
        query = db.session.query(Transaction).filter(Transaction.business_id == business_id)

        if start is not None:
            query = query.filter(Transaction.created_at >= start)
        if end is not None:
            query = query.filter(Transaction.created_at <= end)
        if type:
            query = query.filter(Transaction.type == type)
        if payment_method:
            query = query.filter(Transaction.payment_method == payment_method)
        if cashier_id is not None:
            query = query.filter(Transaction.cashier_id == cashier_id)
        if status:
            query = query.filter(Transaction.status == status)

        total = query.with_entities(func.count(Transaction.id)).scalar() or 0
        rows = (
            query.order_by(Transaction.created_at.desc(), Transaction.id)
            .offset(offset)
            .limit(min(limit, MAX_PAGE_SIZE))
            .all()
        )
        return rows, total

    def transactions_since(self, business_id: int, since: datetime, types: Iterable[str]) -> list[Transaction]:
        return db.session.query(Transaction).filter(
            Transaction.business_id == business_id,
            Transaction.created_at >= since,
            Transaction.type.in_(list(types)),
        ).order_by(Transaction.created_at).all()

    def receipt(self, business: Business, transaction_id: str) -> dict:
        transaction = self.get(business.id, transaction_id)
        return {
            "business": {
                "name": business.name,
                "tax_rate": str(business.tax_rate),
            },
            "transaction": {
                "id": transaction.id,
                "date": transaction.to_dict()["created_at"],
                "cashier": transaction.cashier_name,
                "type": transaction.type,
                "payment_method": transaction.payment_method,
                "status": transaction.status,
            },
            "items": [item.to_dict() for item in transaction.items],
            "totals": {
                "subtotal": transaction.subtotal,
                "tax": transaction.tax_amount,
                "total": transaction.total_amount,
            },
            "refund": {
                "amount": transaction.refunded_amount,
                "date": transaction.to_dict()["refunded_at"],
            } if transaction.refunded else None,
            "voided": transaction.voided,
        }

    # =========================================================================
    # REFUND
    # =========================================================================

    def refund(
        self,
        business_id: int,
        cashier,
        transaction_id: str,
        lines: list[RefundLine] | None = None,
        reason: str | None = None,
    ) -> RefundResult:
        """
        Refund a completed sale, fully or by line.

        Partial refund amount per line is the original line total prorated by
        quantity, so tax and any rounding already baked into the line carry
        over exactly. A sale can be refunded once; a second attempt (even after
        a partial refund) fails with AlreadyRefunded.

        Card sales with a settlement reference are refunded through the gateway
        after the local rows commit; if the gateway fails, the refund row is
        deleted and the original's refunded flag released.
        """
        original = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id, business_id=business_id)
        ).first()
        if not original:
            raise TransactionNotFound("Transaction not found", {"transaction_id": transaction_id})

        if original.type != TYPE_SALE:
            raise NotRefundable("Only sales can be refunded", {"type": original.type})
        if original.refunded:
            raise AlreadyRefunded("Transaction already refunded", {"transaction_id": original.id})
        if original.status != STATUS_COMPLETED or original.voided:
            raise NotRefundable("Only completed, non-voided sales can be refunded", {"status": original.status})

        refund_items, refund_amount, refund_tax = self._refund_lines(original, lines)

        now = self.clock()
        uses_gateway = original.payment_method == METHOD_CARD and bool(original.settlement_ref)
        if original.payment_method == METHOD_CARD and not original.settlement_ref:
            current_app.logger.warning(
                "Card sale %s has no settlement reference; refund recorded locally only", original.id
            )

        try:
            claimed = compare_and_set(
                Transaction,
                [
                    Transaction.id == original.id,
                    Transaction.refunded.is_(False),
                    Transaction.voided.is_(False),
                ],
                {"refunded": True, "refunded_amount": refund_amount, "refunded_at": now},
            )
            if not claimed:
                raise AlreadyRefunded("Transaction already refunded", {"transaction_id": original.id})

            refund_txn = Transaction(
                business_id=business_id,
                cashier_id=cashier.id if cashier else None,
                cashier_name=cashier.name if cashier else None,
                type=TYPE_REFUND,
                payment_method=original.payment_method,
                status=STATUS_PENDING if uses_gateway else STATUS_COMPLETED,
                subtotal=-(refund_amount - refund_tax),
                tax_amount=-refund_tax,
                total_amount=-refund_amount,
                processing_fee=0,
                net_amount=-refund_amount,
                note=reason or "Customer refund",
                original_transaction_id=original.id,
                created_at=now,
                completed_at=None if uses_gateway else now,
            )
            refund_txn.items = [TransactionItem(**item) for item in refund_items]
            db.session.add(refund_txn)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        if uses_gateway:
            self._settle_card_refund(original, refund_txn, refund_amount)

        current_app.logger.info(
            "Refund %s issued for transaction %s: %s",
            refund_txn.id, original.id, money.format_cents(refund_amount),
        )
        return RefundResult(refund_transaction=refund_txn, refund_amount=refund_amount)

    def _refund_lines(self, original: Transaction, lines: list[RefundLine] | None) -> tuple[list[dict], int, int]:
        if not lines:
            items = [
                {
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "department_id": item.department_id,
                    "quantity": -item.quantity,
                    "unit_price": item.unit_price,
                    "tax_amount": -item.tax_amount,
                    "total": -item.total,
                }
                for item in original.items
            ]
            return items, original.total_amount, original.tax_amount

        by_id = {item.id: item for item in original.items}
        seen: set[int] = set()
        items = []
        amount = 0
        tax = 0
        for line in lines:
            item = by_id.get(line.item_id)
            if item is None or line.item_id in seen:
                raise InvalidRefundItem("Invalid item for refund", {"item_id": line.item_id})
            seen.add(line.item_id)
            if line.quantity < 1:
                raise ExcessiveRefundQuantity(
                    "Refund quantity must be at least 1",
                    {"item_id": item.id, "requested": line.quantity},
                )
            if line.quantity > item.quantity:
                raise ExcessiveRefundQuantity(
                    "Refund quantity exceeds original",
                    {"item_id": item.id, "requested": line.quantity, "original": item.quantity},
                )

            line_amount = money.prorate(item.total, item.quantity, line.quantity)
            line_tax = money.prorate(item.tax_amount, item.quantity, line.quantity)
            amount += line_amount
            tax += line_tax
            items.append({
                "product_id": item.product_id,
                "product_name": item.product_name,
                "department_id": item.department_id,
                "quantity": -line.quantity,
                "unit_price": item.unit_price,
                "tax_amount": -line_tax,
                "total": -line_amount,
            })
        return items, amount, tax

    def _settle_card_refund(self, original: Transaction, refund_txn: Transaction, amount: int) -> None:
        refund_id = refund_txn.id
        original_id = original.id
        try:
            refund = self.gateway.create_refund(
                original.settlement_ref,
                amount,
                idempotency_key=refund_id,
                metadata={"refund_transaction_id": refund_id, "original_transaction_id": original_id},
            )
        except Exception as exc:
            current_app.logger.warning("Gateway refund for %s failed; rolling back refund %s", original_id, refund_id)
            self._revert_refund(original_id, refund_id)
            if isinstance(exc, PaymentGatewayError):
                raise
            raise PaymentGatewayError("Payment gateway refund failed", {"reason": str(exc)}) from exc

        refund_txn.status = STATUS_COMPLETED
        refund_txn.refund_ref = refund.id
        refund_txn.completed_at = self.clock()
        db.session.commit()

    def _revert_refund(self, original_id: str, refund_id: str) -> None:
        try:
            refund_txn = db.session.get(Transaction, refund_id)
            if refund_txn is not None:
                db.session.delete(refund_txn)
            compare_and_set(
                Transaction,
                [Transaction.id == original_id, Transaction.refunded.is_(True)],
                {"refunded": False, "refunded_amount": None, "refunded_at": None},
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Failed to revert refund %s of %s", refund_id, original_id)
            raise

    # =========================================================================
    # VOID
    # =========================================================================

    def void(self, business_id: int, cashier, transaction_id: str, reason: str | None = None) -> Transaction:
        """
        Void a completed transaction within the void window.

        Local annotation only: no gateway call is made. Voids are meant for
        corrections before settlement; anything older must be refunded.
        """
        transaction = self.get(business_id, transaction_id)

        if transaction.status != STATUS_COMPLETED:
            raise NotVoidable("Only completed transactions can be voided", {"status": transaction.status})
        if transaction.voided or transaction.refunded:
            raise NotVoidable("Transaction already voided or refunded", {"transaction_id": transaction.id})

        now = self.clock()
        if now - as_utc_naive(transaction.created_at) > self.void_window:
            raise VoidWindowExpired(
                "Transaction too old to void. Please process as refund instead.",
                {"void_window_hours": int(self.void_window.total_seconds() // 3600)},
            )

        try:
            claimed = compare_and_set(
                Transaction,
                [
                    Transaction.id == transaction.id,
                    Transaction.status == STATUS_COMPLETED,
                    Transaction.voided.is_(False),
                    Transaction.refunded.is_(False),
                ],
                {
                    "voided": True,
                    "voided_at": now,
                    "voided_by": cashier.id if cashier else None,
                    "void_reason": reason or "Transaction voided",
                },
            )
            if not claimed:
                raise NotVoidable("Transaction already voided or refunded", {"transaction_id": transaction.id})
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        db.session.refresh(transaction)
        current_app.logger.info("Transaction %s voided: %s", transaction.id, transaction.void_reason)
        return transaction

    # =========================================================================
    # PAYMENT PLATFORM EVENTS
    # =========================================================================

    def apply_payment_event(self, event: dict) -> dict:
        """
        Apply a verified payment-platform webhook event.

        payment_intent.succeeded completes a pending card sale and
        payment_intent.payment_failed moves it to failed. charge.refunded
        marks the sale settled by that charge as refunded, so a refund issued
        on the payment platform directly cannot be repeated here. Other event
        types are acknowledged and ignored.
        """
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}

        if event_type == "charge.refunded":
            return self._apply_charge_refunded(obj)
        if event_type not in ("payment_intent.succeeded", "payment_intent.payment_failed"):
            return {"handled": False, "type": event_type}

        transaction = db.session.query(Transaction).filter_by(payment_intent_id=obj.get("id")).first()
        if transaction is None:
            current_app.logger.warning("Payment event %s for unknown intent %s", event_type, obj.get("id"))
            return {"handled": False, "type": event_type}

        if event_type == "payment_intent.succeeded":
            changed = self.complete_card_payment(transaction, obj.get("latest_charge"))
        else:
            error = obj.get("last_payment_error") or {}
            changed = self.fail_card_payment(transaction, error.get("message"))

        return {"handled": True, "type": event_type, "transaction_id": transaction.id, "changed": changed}

    def _apply_charge_refunded(self, charge: dict) -> dict:
        event_type = "charge.refunded"
        transaction = db.session.query(Transaction).filter_by(
            settlement_ref=charge.get("id"),
            type=TYPE_SALE,
        ).first() if charge.get("id") else None
        if transaction is None:
            current_app.logger.warning("Refund event for unknown charge %s", charge.get("id"))
            return {"handled": False, "type": event_type}

        try:
            changed = compare_and_set(
                Transaction,
                [
                    Transaction.id == transaction.id,
                    Transaction.settlement_ref == charge["id"],
                    Transaction.refunded.is_(False),
                ],
                {
                    "refunded": True,
                    "refunded_amount": charge.get("amount_refunded") or transaction.total_amount,
                    "refunded_at": self.clock(),
                },
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        if changed:
            current_app.logger.info(
                "Transaction %s refunded on the payment platform (charge %s)", transaction.id, charge["id"]
            )
        return {"handled": True, "type": event_type, "transaction_id": transaction.id, "changed": changed}

