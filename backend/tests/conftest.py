"""
Pytest fixtures for poscore backend tests.

Provides an app per test on in-memory SQLite with a fake payment gateway, a
recording notifier and a fixed clock injected through the services container.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from poscore import create_app, get_services
from poscore.config import TestConfig
from poscore.extensions import db
from poscore.models import Business, Cashier, Department, Product
from poscore.models.business import ROLE_CASHIER, ROLE_MANAGER, ROLE_OWNER
from poscore.services.notification_service import Notifier
from poscore.services.payment_gateway import (
    INTENT_REQUIRES_PAYMENT_METHOD,
    INTENT_SUCCEEDED,
    PaymentGateway,
    PaymentIntent,
    Refund,
    verify_event,
)
from poscore.validation import PaymentGatewayError


# 3 PM UTC: outside the demo alcohol restriction window
NOW = datetime(2026, 3, 14, 15, 0, 0)


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set_hour(self, hour: int) -> None:
        self.now = self.now.replace(hour=hour)


class FakeGateway(PaymentGateway):
    """In-memory payment platform. Intents succeed only when told to."""

    webhook_secret = TestConfig.STRIPE_WEBHOOK_SECRET

    def __init__(self):
        self.intents: dict[str, PaymentIntent] = {}
        self.intent_calls: list[dict] = []
        self.refund_calls: list[dict] = []
        self.fail_create = False
        self.fail_refund = False

    def create_payment_intent(self, amount, currency, fee_amount, destination_account, idempotency_key, metadata=None):
        self.intent_calls.append({
            "amount": amount,
            "currency": currency,
            "fee_amount": fee_amount,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
            "metadata": metadata,
        })
        if self.fail_create:
            raise PaymentGatewayError("card_declined")
        intent_id = f"pi_{len(self.intents) + 1}"
        intent = PaymentIntent(
            id=intent_id,
            status=INTENT_REQUIRES_PAYMENT_METHOD,
            amount=amount,
            client_secret=f"{intent_id}_secret",
        )
        self.intents[intent_id] = intent
        return intent

    def retrieve_payment_intent(self, intent_id):
        if intent_id not in self.intents:
            raise PaymentGatewayError("No such payment_intent")
        return self.intents[intent_id]

    def succeed(self, intent_id, charge="ch_1"):
        self.intents[intent_id].status = INTENT_SUCCEEDED
        self.intents[intent_id].latest_charge = charge

    def create_refund(self, charge_ref, amount, idempotency_key, metadata=None):
        self.refund_calls.append({
            "charge_ref": charge_ref,
            "amount": amount,
            "idempotency_key": idempotency_key,
        })
        if self.fail_refund:
            raise PaymentGatewayError("Payment gateway unreachable")
        return Refund(id=f"re_{len(self.refund_calls)}", status="succeeded", amount=amount)

    def parse_event(self, payload, signature):
        return verify_event(payload, signature, self.webhook_secret)


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []
        self.fail = False

    def send_daily_summary(self, business, summary):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((business.id, summary))


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(clock, gateway, notifier):
    """Create application for testing."""
    app = create_app(TestConfig, gateway=gateway, notifier=notifier, clock=clock)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def services(app):
    return get_services()


@pytest.fixture
def business(app):
    business = Business(
        name="Corner Market",
        tax_rate=Decimal("0.08"),
        timezone="UTC",
        payment_account_id="acct_123",
        payment_account_active=True,
    )
    db.session.add(business)
    db.session.commit()
    return business


@pytest.fixture
def other_business(app):
    business = Business(name="Other Shop", tax_rate=Decimal("0.05"), timezone="UTC")
    db.session.add(business)
    db.session.commit()
    return business


@pytest.fixture
def departments(business):
    taxable = Department(business_id=business.id, name="Taxable", taxable=True)
    grocery = Department(business_id=business.id, name="Grocery", taxable=False)
    alcohol = Department(
        business_id=business.id,
        name="Alcohol",
        taxable=True,
        age_restriction=21,
        time_restriction_start=2,
        time_restriction_end=6,
    )
    db.session.add_all([taxable, grocery, alcohol])
    db.session.commit()
    return {"taxable": taxable, "grocery": grocery, "alcohol": alcohol}


@pytest.fixture
def products(business, departments):
    soda = Product(business_id=business.id, department_id=departments["taxable"].id, name="Soda", upc="000000000017", price_cents=500)
    bread = Product(business_id=business.id, department_id=departments["grocery"].id, name="Bread", upc="000000000024", price_cents=349)
    beer = Product(business_id=business.id, department_id=departments["alcohol"].id, name="Lager 6-pack", upc="000000000048", price_cents=999)
    retired = Product(business_id=business.id, department_id=departments["taxable"].id, name="Old Gum", upc="000000000055", price_cents=99, active=False)
    db.session.add_all([soda, bread, beer, retired])
    db.session.commit()
    return {"soda": soda, "bread": bread, "beer": beer, "retired": retired}


@pytest.fixture
def owner(business):
    cashier = Cashier(business_id=business.id, name="Olive Owner", role=ROLE_OWNER)
    db.session.add(cashier)
    db.session.commit()
    return cashier


@pytest.fixture
def manager(business):
    cashier = Cashier(business_id=business.id, name="Max Manager", role=ROLE_MANAGER)
    db.session.add(cashier)
    db.session.commit()
    return cashier


@pytest.fixture
def cashier(business):
    cashier = Cashier(business_id=business.id, name="Casey", role=ROLE_CASHIER)
    db.session.add(cashier)
    db.session.commit()
    return cashier


@pytest.fixture
def auth_headers():
    """Identity headers the terminal forwards for `cashier`."""
    def build(cashier):
        return {"X-Business-Id": str(cashier.business_id), "X-Cashier-Id": str(cashier.id)}
    return build
