# Overview: Cashier shift lifecycle and cash drawer reconciliation.

"""
Shift and Cash Drawer Reconciliation

WHY: At the end of a shift the counted drawer must match what the ledger says
should be there. The difference (over / short) is recorded on the shift.

DESIGN PRINCIPLES:
- At most one open shift per (business, cashier), enforced by a partial
  unique index so two concurrent "start day" calls cannot both win
- A shift is closed exactly once; closed shifts are immutable
- Expected cash is derived from completed, non-voided ledger rows only
- Pay-ins and pay-outs are cash Transactions without items
- The daily summary is handed to the notifier; delivery failures never undo
  the close
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Callable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Business, Shift
from ..models.transactions import (
    METHOD_CARD,
    METHOD_CASH,
    STATUS_COMPLETED,
    TYPE_PAY_IN,
    TYPE_PAY_OUT,
    TYPE_REFUND,
    TYPE_SALE,
)
from .. import money
from ..schemas import total_cash
from poscore.time_utils import as_utc_naive, to_local, to_utc_z, utcnow
from ..validation import NoActiveShift, ShiftAlreadyOpen, ValidationError
from .concurrency import lock_for_update
from .ledger_service import TransactionLedger
from .notification_service import Notifier


RECONCILED_TYPES = (TYPE_SALE, TYPE_REFUND, TYPE_PAY_IN, TYPE_PAY_OUT)

TOP_PRODUCTS_LIMIT = 10


@dataclass
class ShiftClosure:
    shift: Shift
    expected: int
    actual: int
    difference: int

    @property
    def is_over(self) -> bool:
        return self.difference > 0

    @property
    def is_short(self) -> bool:
        return self.difference < 0

    def to_dict(self) -> dict:
        return {
            "shift": self.shift.to_dict(),
            "summary": {
                "expected_cash": self.expected,
                "actual_cash": self.actual,
                "difference": self.difference,
                "is_over": self.is_over,
                "is_short": self.is_short,
            },
        }


class ShiftService:
    def __init__(
        self,
        ledger: TransactionLedger,
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = utcnow,
        summary_enabled: bool = True,
        default_timezone: str = "UTC",
    ):
        self.ledger = ledger
        self.notifier = notifier
        self.clock = clock
        self.summary_enabled = summary_enabled
        self.default_timezone = default_timezone

    def get_active_shift(self, business_id: int, cashier_id: int) -> Shift | None:
        return db.session.query(Shift).filter(
            Shift.business_id == business_id,
            Shift.cashier_id == cashier_id,
            Shift.ended_at.is_(None),
        ).first()

    # =========================================================================
    # START / END DAY
    # =========================================================================

    def start_day(self, business: Business, cashier, counts: dict[str, int]) -> Shift:
        """
        Open a shift with the counted starting drawer.

        Raises:
            ShiftAlreadyOpen: the cashier already has an open shift
        """
        existing = self.get_active_shift(business.id, cashier.id)
        if existing:
            raise ShiftAlreadyOpen("Shift already open", {"shift_id": existing.id})

        shift = Shift(
            business_id=business.id,
            cashier_id=cashier.id,
            starting_cash=total_cash(counts),
            starting_cash_denominations=dict(counts),
            started_at=self.clock(),
        )
        try:
            db.session.add(shift)
            db.session.commit()
        except IntegrityError:
            # Lost the race against a concurrent start_day
            db.session.rollback()
            raise ShiftAlreadyOpen("Shift already open")

        current_app.logger.info(
            "Shift %s started by cashier %s with %s",
            shift.id, cashier.id, money.format_cents(shift.starting_cash),
        )
        return shift

    def end_day(
        self,
        business: Business,
        cashier,
        counts: dict[str, int],
        skip_email_summary: bool = False,
    ) -> ShiftClosure:
        """
        Close the cashier's open shift and reconcile the drawer.

        expected = starting cash + cash sales - cash refunds + pay-ins - pay-outs
        difference = counted - expected (positive is over, negative is short)
        """
        shift = lock_for_update(
            db.session.query(Shift).filter(
                Shift.business_id == business.id,
                Shift.cashier_id == cashier.id,
                Shift.ended_at.is_(None),
            )
        ).first()
        if not shift:
            raise NoActiveShift("No active shift found")

        ending_cash = total_cash(counts)
        totals = self._drawer_totals(business.id, shift.started_at)
        expected = (
            shift.starting_cash
            + totals["cash_sales"]
            - totals["cash_refunds"]
            + totals["pay_ins"]
            - totals["pay_outs"]
        )
        difference = ending_cash - expected
        now = self.clock()

        shift.ending_cash = ending_cash
        shift.ending_cash_denominations = dict(counts)
        shift.expected_cash = expected
        shift.cash_difference = difference
        shift.total_cash_sales = totals["cash_sales"]
        shift.total_card_sales = totals["card_sales"]
        shift.total_refunds = totals["cash_refunds"]
        shift.pay_ins = totals["pay_ins"]
        shift.pay_outs = totals["pay_outs"]
        shift.ended_at = now

        send_summary = self.summary_enabled and not skip_email_summary
        business.last_day_closed_at = now
        business.daily_summary_sent = send_summary

        try:
            db.session.commit()
        except StaleDataError:
            # Closed concurrently by another request
            db.session.rollback()
            raise NoActiveShift("No active shift found")
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            "Shift %s closed: expected %s, counted %s, difference %s",
            shift.id,
            money.format_cents(expected),
            money.format_cents(ending_cash),
            money.format_cents(difference),
        )

        if send_summary:
            self._send_daily_summary(business)

        return ShiftClosure(shift=shift, expected=expected, actual=ending_cash, difference=difference)

    def _drawer_totals(self, business_id: int, since: datetime) -> dict[str, int]:
        totals = {
            "cash_sales": 0,
            "cash_refunds": 0,
            "card_sales": 0,
            "pay_ins": 0,
            "pay_outs": 0,
        }
        for txn in self.ledger.transactions_since(business_id, since, RECONCILED_TYPES):
            if txn.status != STATUS_COMPLETED or txn.voided:
                continue
            if txn.type == TYPE_SALE and txn.payment_method == METHOD_CASH:
                totals["cash_sales"] += txn.total_amount
            elif txn.type == TYPE_SALE and txn.payment_method == METHOD_CARD:
                totals["card_sales"] += txn.total_amount
            elif txn.type == TYPE_REFUND and txn.payment_method == METHOD_CASH:
                totals["cash_refunds"] += abs(txn.total_amount)
            elif txn.type == TYPE_PAY_IN:
                totals["pay_ins"] += txn.total_amount
            elif txn.type == TYPE_PAY_OUT:
                totals["pay_outs"] += txn.total_amount
        return totals

    # =========================================================================
    # DAILY SUMMARY
    # =========================================================================

    def daily_summary(self, business: Business, day: Optional[datetime] = None) -> dict:
        """Sales summary for the business-local calendar day containing `day` (UTC)."""
        tz_name = business.timezone or self.default_timezone
        local = to_local(day or self.clock(), tz_name)
        local_start = datetime.combine(local.date(), time.min, tzinfo=local.tzinfo)
        start = local_start.astimezone(timezone.utc).replace(tzinfo=None)
        end = (local_start + timedelta(days=1)).astimezone(timezone.utc).replace(tzinfo=None)

        rows = [
            txn
            for txn in self.ledger.transactions_since(business.id, start, (TYPE_SALE, TYPE_REFUND))
            if as_utc_naive(txn.created_at) < end and txn.status == STATUS_COMPLETED and not txn.voided
        ]
        sales = [txn for txn in rows if txn.type == TYPE_SALE]
        refunds = [txn for txn in rows if txn.type == TYPE_REFUND]

        total_sales = sum(txn.total_amount for txn in sales)
        total_refunds = abs(sum(txn.total_amount for txn in refunds))
        card_sales = [txn for txn in sales if txn.payment_method == METHOD_CARD]
        total_fees = sum(txn.processing_fee or 0 for txn in card_sales)

        products = defaultdict(lambda: {"name": None, "quantity": 0, "revenue": 0})
        for txn in sales:
            for item in txn.items:
                entry = products[item.product_id or item.product_name]
                entry["name"] = item.product_name
                entry["quantity"] += item.quantity
                entry["revenue"] += item.total
        top_products = sorted(products.values(), key=lambda p: p["revenue"], reverse=True)[:TOP_PRODUCTS_LIMIT]

        return {
            "date": local.date().isoformat(),
            "generated_at": to_utc_z(self.clock()),
            "total_sales": total_sales,
            "total_refunds": total_refunds,
            "net_sales": total_sales - total_refunds,
            "cash_sales": sum(txn.total_amount for txn in sales if txn.payment_method == METHOD_CASH),
            "card_sales": sum(txn.total_amount for txn in card_sales),
            "transaction_count": len(sales),
            "total_fees": total_fees,
            "net_card_amount": sum(txn.total_amount for txn in card_sales) - total_fees,
            "average_transaction": money.round_half_up(money.to_rate(total_sales) / len(sales)) if sales else 0,
            "top_products": top_products,
        }

    def _send_daily_summary(self, business: Business) -> None:
        try:
            self.notifier.send_daily_summary(business, self.daily_summary(business))
        except Exception:
            current_app.logger.exception("Failed to send daily summary for business %s", business.id)

    # =========================================================================
    # PAY IN / PAY OUT
    # =========================================================================

    def pay_in(self, business: Business, cashier, amount: int, note: Optional[str] = None):
        """Record cash added to the drawer outside a sale."""
        return self._cash_movement(business, cashier, TYPE_PAY_IN, amount, note or "Cash added to register")

    def pay_out(self, business: Business, cashier, amount: int, note: Optional[str] = None):
        """Record cash removed from the drawer outside a sale."""
        return self._cash_movement(business, cashier, TYPE_PAY_OUT, amount, note or "Cash removed from register")

    def _cash_movement(self, business: Business, cashier, type: str, amount: int, note: str):
        if amount <= 0:
            raise ValidationError("amount must be greater than 0", {"amount": amount})

        transaction = self.ledger.create_transaction(
            business_id=business.id,
            cashier=cashier,
            type=type,
            payment_method=METHOD_CASH,
            status=STATUS_COMPLETED,
            total_amount=amount,
            note=note,
        )
        current_app.logger.info("%s %s recorded: %s", type, transaction.id, money.format_cents(amount))
        return transaction
