from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z


class Shift(db.Model):
    """
    A cashier's working period, used for cash drawer reconciliation.

    LIFECYCLE:
    - OPEN: ended_at is NULL; at most one per (business, cashier)
    - CLOSED: ended_at set, aggregates and variance recorded

    IMMUTABLE: Once closed, a shift is never reopened or modified.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_open_per_cashier",
            "business_id",
            "cashier_id",
            unique=True,
            sqlite_where=db.text("ended_at IS NULL"),
            postgresql_where=db.text("ended_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("cashiers.id"), nullable=False, index=True)

    # Cash counts (all amounts in cents; denominations as {"twenties": 3, ...})
    starting_cash = db.Column(db.Integer, nullable=False, default=0)
    starting_cash_denominations = db.Column(db.JSON, nullable=False, default=dict)
    ending_cash = db.Column(db.Integer, nullable=True)
    ending_cash_denominations = db.Column(db.JSON, nullable=True)

    # Reconciliation (set on close)
    expected_cash = db.Column(db.Integer, nullable=True)
    cash_difference = db.Column(db.Integer, nullable=True)  # ending - expected
    total_cash_sales = db.Column(db.Integer, nullable=True)
    total_card_sales = db.Column(db.Integer, nullable=True)
    total_refunds = db.Column(db.Integer, nullable=True)
    pay_ins = db.Column(db.Integer, nullable=True)
    pay_outs = db.Column(db.Integer, nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    cashier = db.relationship("Cashier", backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "cashier_id": self.cashier_id,
            "status": "OPEN" if self.is_open else "CLOSED",
            "starting_cash": self.starting_cash,
            "starting_cash_denominations": self.starting_cash_denominations,
            "ending_cash": self.ending_cash,
            "ending_cash_denominations": self.ending_cash_denominations,
            "expected_cash": self.expected_cash,
            "cash_difference": self.cash_difference,
            "total_cash_sales": self.total_cash_sales,
            "total_card_sales": self.total_card_sales,
            "total_refunds": self.total_refunds,
            "pay_ins": self.pay_ins,
            "pay_outs": self.pay_outs,
            "started_at": to_utc_z(self.started_at),
            "ended_at": to_utc_z(self.ended_at),
            "version_id": self.version_id,
        }
