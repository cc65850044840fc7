from __future__ import annotations

import uuid

from ..extensions import db
from poscore.time_utils import to_utc_z


# =============================================================================
# TRANSACTION TYPES / PAYMENT METHODS / STATUS
# =============================================================================

TYPE_SALE = "sale"
TYPE_REFUND = "refund"
TYPE_VOID = "void"
TYPE_PAY_IN = "pay_in"
TYPE_PAY_OUT = "pay_out"

VALID_TYPES = [TYPE_SALE, TYPE_REFUND, TYPE_VOID, TYPE_PAY_IN, TYPE_PAY_OUT]

METHOD_CASH = "cash"
METHOD_CARD = "card"

VALID_PAYMENT_METHODS = [METHOD_CASH, METHOD_CARD]

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


def _new_id() -> str:
    return str(uuid.uuid4())


class Transaction(db.Model):
    """
    A persisted monetary event: sale, refund, pay-in or pay-out.

    LIFECYCLE:
    - pending -> completed | failed (card sales awaiting settlement)
    - completed -> refunded (partial or full) | voided

    Rows are only changed through ledger transitions. The only physical delete
    is the rollback of a row whose payment step failed before it committed.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_business_created", "business_id", "created_at"),
        db.Index("ix_transactions_business_type_created", "business_id", "type", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("cashiers.id"), nullable=True, index=True)
    cashier_name = db.Column(db.String(120), nullable=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    payment_method = db.Column(db.String(8), nullable=True, index=True)  # cash, card
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    # Amounts (all in cents; negative for refunds)
    subtotal = db.Column(db.Integer, nullable=False, default=0)
    tax_amount = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False, default=0)
    processing_fee = db.Column(db.Integer, nullable=False, default=0)
    net_amount = db.Column(db.Integer, nullable=False, default=0)

    note = db.Column(db.String(255), nullable=True)

    # Payment platform references
    payment_intent_id = db.Column(db.String(128), nullable=True, index=True)
    settlement_ref = db.Column(db.String(128), nullable=True, index=True)
    refund_ref = db.Column(db.String(128), nullable=True)
    failure_message = db.Column(db.String(255), nullable=True)

    # Refund linkage
    original_transaction_id = db.Column(db.String(36), db.ForeignKey("transactions.id"), nullable=True, index=True)
    refunded = db.Column(db.Boolean, nullable=False, default=False)
    refunded_amount = db.Column(db.Integer, nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Void audit trail
    voided = db.Column(db.Boolean, nullable=False, default=False)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.Integer, db.ForeignKey("cashiers.id"), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    age_verified = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TransactionItem.id",
    )

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} type={self.type} status={self.status} total={self.total_amount}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "type": self.type,
            "payment_method": self.payment_method,
            "status": self.status,
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
            "processing_fee": self.processing_fee,
            "net_amount": self.net_amount,
            "note": self.note,
            "payment_intent_id": self.payment_intent_id,
            "settlement_ref": self.settlement_ref,
            "refund_ref": self.refund_ref,
            "failure_message": self.failure_message,
            "original_transaction_id": self.original_transaction_id,
            "refunded": self.refunded,
            "refunded_amount": self.refunded_amount,
            "refunded_at": to_utc_z(self.refunded_at),
            "voided": self.voided,
            "voided_at": to_utc_z(self.voided_at),
            "voided_by": self.voided_by,
            "void_reason": self.void_reason,
            "age_verified": self.age_verified,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransactionItem(db.Model):
    """Line of a Transaction. Immutable; quantity and amounts are negative on refunds."""
    __tablename__ = "transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.String(36),
        db.ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    tax_amount = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "department_id": self.department_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "tax_amount": self.tax_amount,
            "total": self.total,
        }
