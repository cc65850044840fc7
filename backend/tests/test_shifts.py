"""
Shift lifecycle, drawer reconciliation, cash movements and daily summary.
"""

import pytest

from poscore.extensions import db
from poscore.models import Shift, Transaction
from poscore.schemas import CartLineRequest, parse_cash_counts, total_cash
from poscore.validation import NoActiveShift, ShiftAlreadyOpen, ValidationError


SODA = "000000000017"
BREAD = "000000000024"


def cash_sale(services, business, cashier, upc, quantity=1):
    cart = services.checkout.build_cart(business, [CartLineRequest(upc=upc, quantity=quantity)])
    return services.checkout.process_payment(business, cashier, cart, "cash", cart.total).transaction


def test_start_day_records_starting_drawer(services, business, cashier):
    shift = services.shifts.start_day(business, cashier, {"twenties": 5, "quarters": 4})

    assert shift.is_open
    assert shift.starting_cash == 10100
    assert shift.starting_cash_denominations == {"twenties": 5, "quarters": 4}
    assert services.shifts.get_active_shift(business.id, cashier.id).id == shift.id


def test_second_open_shift_rejected(services, business, cashier):
    services.shifts.start_day(business, cashier, {"ones": 10})

    with pytest.raises(ShiftAlreadyOpen):
        services.shifts.start_day(business, cashier, {"ones": 10})
    assert db.session.query(Shift).count() == 1


def test_open_shift_unique_index_catches_race(services, business, cashier, monkeypatch):
    services.shifts.start_day(business, cashier, {"ones": 10})

    # Simulate a concurrent request that passed the existence check
    monkeypatch.setattr(services.shifts, "get_active_shift", lambda business_id, cashier_id: None)

    with pytest.raises(ShiftAlreadyOpen):
        services.shifts.start_day(business, cashier, {"ones": 10})
    assert db.session.query(Shift).count() == 1


def test_shifts_are_per_cashier(services, business, cashier, manager):
    services.shifts.start_day(business, cashier, {"ones": 10})
    services.shifts.start_day(business, manager, {"ones": 20})
    assert db.session.query(Shift).count() == 2


def test_end_day_without_open_shift(services, business, cashier):
    with pytest.raises(NoActiveShift):
        services.shifts.end_day(business, cashier, {"ones": 10})


def test_end_day_reconciles_drawer(services, business, cashier, manager, products, gateway, notifier):
    services.shifts.start_day(business, cashier, {"twenties": 5})

    cash_sale(services, business, cashier, SODA, 2)                 # +1080
    refunded = cash_sale(services, business, cashier, BREAD)        # +349
    services.ledger.refund(business.id, manager, refunded.id)       # -349
    voided = cash_sale(services, business, cashier, SODA)           # voided, ignored
    services.ledger.void(business.id, manager, voided.id)
    services.shifts.pay_in(business, cashier, 500)                  # +500
    services.shifts.pay_out(business, cashier, 200, note="Ice")     # -200

    card_cart = services.checkout.build_cart(business, [CartLineRequest(upc=SODA, quantity=2)])
    card = services.checkout.process_payment(business, cashier, card_cart, "card").transaction
    gateway.succeed(card.payment_intent_id)
    services.checkout.confirm_card_payment(business, card.id, card.payment_intent_id)

    # A pending card sale never touches the drawer
    pending_cart = services.checkout.build_cart(business, [CartLineRequest(upc=BREAD)])
    services.checkout.process_payment(business, cashier, pending_cart, "card")

    closure = services.shifts.end_day(business, cashier, {"twenties": 5, "ones": 13, "quarters": 3})

    # 10000 + 1429 - 349 + 500 - 200
    assert closure.expected == 11380
    assert closure.actual == 11375
    assert closure.difference == -5
    assert closure.is_short and not closure.is_over

    shift = closure.shift
    assert not shift.is_open
    assert shift.total_cash_sales == 1429
    assert shift.total_card_sales == 1080
    assert shift.total_refunds == 349
    assert shift.pay_ins == 500
    assert shift.pay_outs == 200
    assert shift.expected_cash == 11380
    assert shift.cash_difference == -5

    summary = closure.to_dict()["summary"]
    assert summary == {
        "expected_cash": 11380,
        "actual_cash": 11375,
        "difference": -5,
        "is_over": False,
        "is_short": True,
    }

    assert business.last_day_closed_at is not None
    assert business.daily_summary_sent is True
    assert len(notifier.sent) == 1
    business_id, daily = notifier.sent[0]
    assert business_id == business.id
    assert daily["total_sales"] == 1429 + 1080
    assert daily["total_refunds"] == 349
    assert daily["net_sales"] == 1429 + 1080 - 349
    assert daily["transaction_count"] == 3
    assert daily["total_fees"] == 7
    assert daily["top_products"][0]["name"] == "Soda"
    assert daily["top_products"][0]["quantity"] == 4


def test_closed_shift_cannot_be_closed_again(services, business, cashier):
    services.shifts.start_day(business, cashier, {"ones": 10})
    services.shifts.end_day(business, cashier, {"ones": 10})

    with pytest.raises(NoActiveShift):
        services.shifts.end_day(business, cashier, {"ones": 10})

    # A new day may start once the previous one is closed
    assert services.shifts.start_day(business, cashier, {"ones": 5}).is_open


def test_end_day_over(services, business, cashier):
    services.shifts.start_day(business, cashier, {"ones": 10})
    closure = services.shifts.end_day(business, cashier, {"ones": 11}, skip_email_summary=True)

    assert closure.difference == 100
    assert closure.is_over


def test_skip_email_summary(services, business, cashier, notifier):
    services.shifts.start_day(business, cashier, {"ones": 10})
    services.shifts.end_day(business, cashier, {"ones": 10}, skip_email_summary=True)

    assert notifier.sent == []
    assert business.daily_summary_sent is False


def test_notifier_failure_does_not_undo_close(services, business, cashier, notifier):
    notifier.fail = True
    services.shifts.start_day(business, cashier, {"ones": 10})

    closure = services.shifts.end_day(business, cashier, {"ones": 10})

    assert not closure.shift.is_open
    assert services.shifts.get_active_shift(business.id, cashier.id) is None


def test_daily_summary_uses_business_local_day(services, business, cashier, products, clock):
    business.timezone = "Pacific/Auckland"
    db.session.commit()

    # 15:00 UTC on 2026-03-14 is 04:00 on 2026-03-15 in Auckland (NZDT)
    late = cash_sale(services, business, cashier, SODA)
    clock.set_hour(10)
    # 10:00 UTC is 23:00 on 2026-03-14 in Auckland
    early = cash_sale(services, business, cashier, BREAD)

    today = services.shifts.daily_summary(business)
    assert today["date"] == "2026-03-14"
    assert today["total_sales"] == early.total_amount
    assert today["transaction_count"] == 1

    clock.set_hour(15)
    tomorrow = services.shifts.daily_summary(business)
    assert tomorrow["date"] == "2026-03-15"
    assert tomorrow["total_sales"] == late.total_amount
    assert tomorrow["average_transaction"] == late.total_amount


# =============================================================================
# PAY IN / PAY OUT
# =============================================================================

def test_pay_in_and_out_are_itemless_cash_transactions(services, business, cashier):
    pay_in = services.shifts.pay_in(business, cashier, 2500)
    pay_out = services.shifts.pay_out(business, cashier, 1000, note="Window cleaner")

    assert (pay_in.type, pay_in.payment_method, pay_in.status) == ("pay_in", "cash", "completed")
    assert pay_in.total_amount == 2500
    assert pay_in.note == "Cash added to register"
    assert pay_in.items == []

    assert pay_out.type == "pay_out"
    assert pay_out.total_amount == 1000
    assert pay_out.note == "Window cleaner"


@pytest.mark.parametrize("amount", [0, -100])
def test_cash_movement_requires_positive_amount(services, business, cashier, amount):
    with pytest.raises(ValidationError):
        services.shifts.pay_in(business, cashier, amount)
    assert db.session.query(Transaction).count() == 0


# =============================================================================
# DENOMINATIONS
# =============================================================================

def test_total_cash():
    counts = parse_cash_counts({"hundreds": 1, "twenties": 2, "dimes": 3, "pennies": 4})
    assert total_cash(counts) == 10000 + 4000 + 30 + 4


@pytest.mark.parametrize(
    "counts",
    [
        {"doubloons": 1},
        {"ones": -1},
        {"ones": "ten"},
        {"ones": 1.5},
        ["ones"],
    ],
)
def test_invalid_cash_counts_rejected(counts):
    with pytest.raises(ValidationError):
        parse_cash_counts(counts)
