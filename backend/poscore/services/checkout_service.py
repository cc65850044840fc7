# Overview: Checkout orchestration; turns a priced cart and payment method into a persisted Transaction.

"""
Checkout Orchestrator

WHY: A register sale touches the catalog, the restriction rules, the ledger
and (for cards) the payment platform. This service sequences those steps so a
sale either completes or leaves nothing behind.

DESIGN PRINCIPLES:
- The server re-prices every line from the catalog; client totals are ignored
- Restrictions are evaluated against the business's local wall clock
- Age is checked before any row is written or any gateway call is made
- Card sales are written as pending, then confirmed against the gateway
- A failed payment step deletes the row it just wrote

STATE MACHINE (per checkout session, held by the client):
Started -> ItemsAdded -> (AgeVerified | NoAgeNeeded) -> PaymentSelected
-> CashCompleted | CardPending -> CardCompleted, or Failed
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from flask import current_app

from ..cart import Cart, CartItem
from .. import money
from ..models.transactions import METHOD_CARD, METHOD_CASH, STATUS_COMPLETED, STATUS_FAILED, STATUS_PENDING, TYPE_SALE
from ..restrictions import check_sale_allowed
from ..schemas import CartLineRequest
from poscore.time_utils import to_local, to_utc_z, utcnow
from ..validation import (
    AgeVerificationRequired,
    DepartmentNotFound,
    InsufficientPayment,
    PaymentGatewayError,
    PaymentNotCompleted,
    PaymentNotConfigured,
    ProductNotFound,
    ValidationError,
)
from .catalog_service import CatalogService
from .ledger_service import TransactionLedger
from .payment_gateway import INTENT_SUCCEEDED, PaymentGateway


@dataclass
class CheckoutSession:
    session_id: str
    cashier_name: str
    business_id: int
    started_at: datetime

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "cashier_name": self.cashier_name,
            "business_id": self.business_id,
            "started_at": to_utc_z(self.started_at),
        }


@dataclass
class PricedItem:
    item: CartItem
    requires_age_check: bool

    def to_dict(self) -> dict:
        data = self.item.to_dict()
        data["requires_age_check"] = self.requires_age_check
        return data


@dataclass
class CheckoutResult:
    transaction: object
    payment: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "transaction": self.transaction.to_dict(include_items=True),
            "payment": self.payment,
        }


class CheckoutOrchestrator:
    def __init__(
        self,
        catalog: CatalogService,
        gateway: PaymentGateway,
        ledger: TransactionLedger,
        *,
        clock: Callable[[], datetime] = utcnow,
        currency: str = "usd",
        fee_percent: money.Rate = Decimal("0.002"),
        fee_fixed: int = 5,
        default_timezone: str = "UTC",
    ):
        self.catalog = catalog
        self.gateway = gateway
        self.ledger = ledger
        self.clock = clock
        self.currency = currency
        self.fee_percent = fee_percent
        self.fee_fixed = fee_fixed
        self.default_timezone = default_timezone

    def local_now(self, business) -> datetime:
        return to_local(self.clock(), business.timezone or self.default_timezone)

    # =========================================================================
    # SESSION AND PRICING
    # =========================================================================

    def start_checkout(self, cashier) -> CheckoutSession:
        """Open a client-held checkout session. Nothing is persisted."""
        now = self.clock()
        return CheckoutSession(
            session_id=f"checkout_{int(now.replace(tzinfo=timezone.utc).timestamp() * 1000)}_{secrets.token_hex(4)}",
            cashier_name=cashier.name,
            business_id=cashier.business_id,
            started_at=now,
        )

    def _add_line(self, business, cart: Cart, line: CartLineRequest, now: datetime) -> CartItem:
        if line.is_manual:
            department = self.catalog.get_department(business.id, line.department_id)
            if department is None:
                raise DepartmentNotFound("Department not found", {"department_id": line.department_id})
            check_sale_allowed(department, now)
            return cart.add_manual_item(department, line.price, line.quantity, business.tax_rate)

        product = self.catalog.get_product_by_upc(business.id, line.upc)
        if product is None:
            raise ProductNotFound("Product not found", {"upc": line.upc})
        check_sale_allowed(product.department, now)
        return cart.add_item(product, line.quantity, business.tax_rate)

    def add_item(self, business, request: CartLineRequest) -> PricedItem:
        """Price one scanned or manually entered line and flag age-restricted items."""
        item = self._add_line(business, Cart(), request, self.local_now(business))
        return PricedItem(item=item, requires_age_check=item.age_restriction is not None)

    def verify_age(self, confirmed: bool, customer_age: Optional[int] = None) -> dict:
        if not confirmed:
            raise AgeVerificationRequired("Age verification required")
        return {
            "verified": True,
            "customer_age": customer_age,
            "timestamp": to_utc_z(self.clock()),
        }

    def build_cart(
        self,
        business,
        lines: list[CartLineRequest],
        age_verified: bool = False,
        verified_age: Optional[int] = None,
    ) -> Cart:
        """Rebuild the cart server side from the requested lines."""
        if not lines:
            raise ValidationError("At least one item required")
        now = self.local_now(business)
        cart = Cart()
        for line in lines:
            self._add_line(business, cart, line, now)
        if age_verified:
            cart.customer_age_verified = True
            cart.verified_age = verified_age
        return cart

    # =========================================================================
    # PAYMENT
    # =========================================================================

    def process_payment(
        self,
        business,
        cashier,
        cart: Cart,
        payment_method: str,
        cash_received: Optional[int] = None,
    ) -> CheckoutResult:
        """
        Record a sale for `cart` and take payment.

        Cash sales complete immediately and return the change due. Card sales
        are recorded as pending and return the payment intent the terminal
        collects against; they complete through confirm_card_payment or the
        payment webhook.

        Raises:
            AgeVerificationRequired: cart has age-restricted items and the
                verified age is missing or too low
            PaymentNotConfigured: card payment for a business without an
                active payment account
            InsufficientPayment: cash received is less than the total
            PaymentGatewayError: the payment intent could not be created
        """
        if payment_method not in (METHOD_CASH, METHOD_CARD):
            raise ValidationError("Invalid payment method", {"payment_method": payment_method})
        if not cart.items:
            raise ValidationError("At least one item required")

        if cart.requires_age_verification and not cart.is_age_verified():
            raise AgeVerificationRequired(
                "Age verification required for restricted items",
                {"required_age": cart.highest_age_requirement, "verified_age": cart.verified_age},
            )

        if payment_method == METHOD_CARD and not business.accepts_cards:
            raise PaymentNotConfigured("Card payments are not set up for this business")
        if payment_method == METHOD_CASH and cash_received is None:
            raise ValidationError("cash_received is required")

        transaction = self.ledger.create_transaction(
            business_id=business.id,
            cashier=cashier,
            type=TYPE_SALE,
            payment_method=payment_method,
            status=STATUS_COMPLETED if payment_method == METHOD_CASH else STATUS_PENDING,
            subtotal=cart.subtotal,
            tax_amount=cart.tax_amount,
            total_amount=cart.total,
            items=[
                {
                    "product_id": item.product_id,
                    "product_name": item.name,
                    "department_id": item.department_id,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "tax_amount": item.tax_amount,
                    "total": item.line_total,
                }
                for item in cart.items
            ],
            age_verified=cart.customer_age_verified,
        )

        if payment_method == METHOD_CASH:
            return self._settle_cash(transaction, cash_received)
        return self._start_card_payment(business, transaction)

    def _settle_cash(self, transaction, cash_received: int) -> CheckoutResult:
        total = transaction.total_amount
        change = cash_received - total
        if change < 0:
            self.ledger.discard(transaction.id)
            raise InsufficientPayment(
                f"Insufficient payment. Need {money.format_cents(-change)} more.",
                {"total": total, "received": cash_received, "shortfall": -change},
            )

        current_app.logger.info(
            "Cash sale %s completed: %s", transaction.id, money.format_cents(transaction.total_amount)
        )
        return CheckoutResult(
            transaction=transaction,
            payment={
                "method": METHOD_CASH,
                "received": cash_received,
                "change": change,
                "status": STATUS_COMPLETED,
            },
        )

    def _start_card_payment(self, business, transaction) -> CheckoutResult:
        transaction_id = transaction.id
        total = transaction.total_amount
        fee = money.processing_fee(total, self.fee_percent, self.fee_fixed)

        try:
            intent = self.gateway.create_payment_intent(
                amount=total,
                currency=self.currency,
                fee_amount=fee,
                destination_account=business.payment_account_id,
                idempotency_key=transaction_id,
                metadata={"transaction_id": transaction_id, "business_id": str(business.id)},
            )
        except Exception as exc:
            current_app.logger.warning("Payment intent for transaction %s failed; discarding sale", transaction_id)
            self.ledger.discard(transaction_id)
            if isinstance(exc, PaymentGatewayError):
                raise
            raise PaymentGatewayError("Payment processing failed", {"reason": str(exc)}) from exc

        self.ledger.attach_payment_intent(transaction, intent, fee)
        return CheckoutResult(
            transaction=transaction,
            payment={
                "method": METHOD_CARD,
                "client_secret": intent.client_secret,
                "payment_intent_id": intent.id,
                "status": intent.status,
            },
        )

    def confirm_card_payment(self, business, transaction_id: str, payment_intent_id: str):
        """
        Confirm a pending card sale against the gateway.

        Already-completed sales are returned as-is. Any status other than
        succeeded raises PaymentNotCompleted and leaves the sale pending. A
        sale failed by a webhook while the gateway was being read also raises
        PaymentNotCompleted("failed").
        """
        transaction = self.ledger.find_by_payment_intent(business.id, transaction_id, payment_intent_id)
        if transaction.status == STATUS_COMPLETED:
            return transaction
        if transaction.status == STATUS_FAILED:
            raise PaymentNotCompleted(STATUS_FAILED)

        intent = self.gateway.retrieve_payment_intent(payment_intent_id)
        if intent.status != INTENT_SUCCEEDED:
            raise PaymentNotCompleted(intent.status)

        self.ledger.complete_card_payment(transaction, intent.latest_charge)
        transaction = self.ledger.get(business.id, transaction_id)
        # A payment_failed webhook may have won the pending -> failed race
        if transaction.status != STATUS_COMPLETED:
            raise PaymentNotCompleted(transaction.status)
        return transaction
