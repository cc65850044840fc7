from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from poscore.time_utils import to_utc_z


ROLE_OWNER = "owner"
ROLE_MANAGER = "manager"
ROLE_CASHIER = "cashier"


class Business(db.Model):
    """
    A merchant using the POS.

    Owned by the business-management side of the system; the checkout core only
    reads the tax rate, timezone and payment-platform account, and stamps the
    day-close fields.
    """
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)

    # Single flat rate, e.g. 0.08000 for 8%
    tax_rate = db.Column(db.Numeric(6, 5), nullable=False, default=Decimal("0"))
    timezone = db.Column(db.String(64), nullable=True)

    # Payment platform connected account (card payments are routed here)
    payment_account_id = db.Column(db.String(128), nullable=True)
    payment_account_active = db.Column(db.Boolean, nullable=False, default=False)

    last_day_closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    daily_summary_sent = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def accepts_cards(self) -> bool:
        return bool(self.payment_account_active and self.payment_account_id)

    def __repr__(self) -> str:
        return f"<Business id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_rate": str(self.tax_rate) if self.tax_rate is not None else None,
            "timezone": self.timezone,
            "accepts_cards": self.accepts_cards,
            "last_day_closed_at": to_utc_z(self.last_day_closed_at),
            "created_at": to_utc_z(self.created_at),
        }


class Cashier(db.Model):
    """
    A person operating a terminal.

    Credentials and sessions live with the authentication service; this row only
    carries what transactions and shifts record about who performed them.
    """
    __tablename__ = "cashiers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_CASHIER)  # owner, manager, cashier
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    business = db.relationship("Business", backref=db.backref("cashiers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
        }
