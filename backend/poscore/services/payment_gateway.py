"""Payment platform client (Stripe-compatible REST API over httpx)."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlencode

import httpx

from ..validation import PaymentGatewayError, ValidationError

logger = logging.getLogger(__name__)


INTENT_SUCCEEDED = "succeeded"
INTENT_REQUIRES_PAYMENT_METHOD = "requires_payment_method"


@dataclass
class PaymentIntent:
    id: str
    status: str
    amount: int = 0
    client_secret: Optional[str] = None
    latest_charge: Optional[str] = None
    last_error: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict) -> "PaymentIntent":
        error = data.get("last_payment_error") or {}
        return cls(
            id=data["id"],
            status=data.get("status", ""),
            amount=data.get("amount", 0),
            client_secret=data.get("client_secret"),
            latest_charge=data.get("latest_charge"),
            last_error=error.get("message"),
            metadata=data.get("metadata") or {},
        )


@dataclass
class Refund:
    id: str
    status: str
    amount: int = 0


class PaymentGateway:
    """
    Interface to the card payment platform.

    Implementations must not retry calls that move money unless the request
    carries an idempotency key; callers pass the local transaction id as that
    key.
    """

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        fee_amount: int,
        destination_account: str,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> PaymentIntent:
        raise NotImplementedError

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        raise NotImplementedError

    def create_refund(
        self,
        charge_ref: str,
        amount: int,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> Refund:
        raise NotImplementedError

    def parse_event(self, payload: bytes, signature: str | None) -> dict:
        raise NotImplementedError


def _form_encode(params: dict, prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested dicts into Stripe's bracket form encoding."""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else key
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(_form_encode(value, name))
        elif isinstance(value, (list, tuple)):
            for item in value:
                pairs.append((f"{name}[]", str(item)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


class StripeGateway(PaymentGateway):
    """Client for the Stripe REST API (card-present payments via Connect)."""

    def __init__(
        self,
        secret_key: str,
        *,
        api_base: str = "https://api.stripe.com",
        timeout: float = 30.0,
        webhook_secret: str = "",
        webhook_tolerance: int = 300,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the Stripe client.

        Args:
            secret_key: Platform secret API key
            api_base: API root (overridable for test doubles)
            timeout: Per-request timeout in seconds
            webhook_secret: Endpoint secret used to verify webhook signatures
            webhook_tolerance: Maximum webhook timestamp age in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.webhook_secret = webhook_secret
        self.webhook_tolerance = webhook_tolerance
        self.client = httpx.Client(
            base_url=api_base,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, path: str, *, data: dict | None = None, idempotency_key: str | None = None) -> dict:
        headers = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            response = self.client.request(
                method,
                path,
                content=urlencode(_form_encode(data)) if data else None,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("Payment gateway %s %s failed: %s", method, path, exc)
            raise PaymentGatewayError("Payment gateway unreachable", {"reason": str(exc)}) from exc

        if response.status_code >= 400:
            try:
                error = response.json().get("error") or {}
            except ValueError:
                error = {}
            logger.warning(
                "Payment gateway %s %s returned %s: %s",
                method, path, response.status_code, error.get("message"),
            )
            raise PaymentGatewayError(
                error.get("message") or f"Payment gateway error ({response.status_code})",
                {
                    "status_code": response.status_code,
                    "type": error.get("type"),
                    "code": error.get("code"),
                },
            )
        return response.json()

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        fee_amount: int,
        destination_account: str,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> PaymentIntent:
        data = self._request(
            "POST",
            "/v1/payment_intents",
            data={
                "amount": amount,
                "currency": currency,
                "application_fee_amount": fee_amount,
                "payment_method_types": ["card_present"],
                "capture_method": "automatic",
                "transfer_data": {"destination": destination_account},
                "metadata": metadata or {},
            },
            idempotency_key=idempotency_key,
        )
        return PaymentIntent.from_api(data)

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        return PaymentIntent.from_api(self._request("GET", f"/v1/payment_intents/{intent_id}"))

    def create_refund(
        self,
        charge_ref: str,
        amount: int,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> Refund:
        data = self._request(
            "POST",
            "/v1/refunds",
            data={
                "charge": charge_ref,
                "amount": amount,
                "reason": "requested_by_customer",
                "metadata": metadata or {},
            },
            idempotency_key=idempotency_key,
        )
        return Refund(id=data["id"], status=data.get("status", ""), amount=data.get("amount", amount))

    def parse_event(self, payload: bytes, signature: str | None) -> dict:
        return verify_event(payload, signature, self.webhook_secret, self.webhook_tolerance)


def sign_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a `Stripe-Signature` header value for `payload` (used by tests and local tooling)."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def verify_event(payload: bytes, signature: str | None, secret: str, tolerance: int = 300) -> dict:
    """
    Verify a webhook's `Stripe-Signature` header and return the decoded event.

    The header looks like `t=1700000000,v1=<hex hmac>`; the signed message is
    `"{t}.{raw body}"` under the endpoint secret.
    """
    if not secret:
        raise ValidationError("Webhook secret not configured")
    if not signature:
        raise ValidationError("Missing webhook signature")

    parts: dict[str, list[str]] = {}
    for item in signature.split(","):
        key, _, value = item.strip().partition("=")
        parts.setdefault(key, []).append(value)

    try:
        timestamp = int(parts.get("t", [""])[0])
    except ValueError:
        raise ValidationError("Malformed webhook signature")

    if abs(time.time() - timestamp) > tolerance:
        raise ValidationError("Webhook timestamp outside tolerance")

    signed = f"{timestamp}.".encode() + payload
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, candidate) for candidate in parts.get("v1", [])):
        raise ValidationError("Invalid webhook signature")

    try:
        return json.loads(payload)
    except ValueError:
        raise ValidationError("Webhook payload is not valid JSON")
