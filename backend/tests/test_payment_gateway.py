import json
import time
from urllib.parse import parse_qs

import httpx
import pytest

from poscore.services.payment_gateway import StripeGateway, sign_payload, verify_event
from poscore.validation import PaymentGatewayError, ValidationError


SECRET = "whsec_test"


def make_gateway(handler):
    return StripeGateway(
        "sk_test_123",
        api_base="https://payments.test",
        webhook_secret=SECRET,
        transport=httpx.MockTransport(handler),
    )


def test_create_payment_intent_sends_form_and_idempotency_key():
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(200, json={
            "id": "pi_42",
            "status": "requires_payment_method",
            "amount": 1080,
            "client_secret": "pi_42_secret_x",
        })

    gateway = make_gateway(handler)
    intent = gateway.create_payment_intent(
        1080, "usd", 7, "acct_123", idempotency_key="txn-1", metadata={"transaction_id": "txn-1"},
    )

    assert intent.id == "pi_42"
    assert intent.client_secret == "pi_42_secret_x"

    request = seen["request"]
    assert request.method == "POST"
    assert request.url.path == "/v1/payment_intents"
    assert request.headers["Authorization"] == "Bearer sk_test_123"
    assert request.headers["Idempotency-Key"] == "txn-1"
    form = parse_qs(request.content.decode())
    assert form["amount"] == ["1080"]
    assert form["application_fee_amount"] == ["7"]
    assert form["transfer_data[destination]"] == ["acct_123"]
    assert form["payment_method_types[]"] == ["card_present"]
    assert form["metadata[transaction_id]"] == ["txn-1"]


def test_retrieve_payment_intent():
    def handler(request):
        assert request.method == "GET"
        assert request.url.path == "/v1/payment_intents/pi_42"
        return httpx.Response(200, json={"id": "pi_42", "status": "succeeded", "latest_charge": "ch_9"})

    intent = make_gateway(handler).retrieve_payment_intent("pi_42")
    assert intent.status == "succeeded"
    assert intent.latest_charge == "ch_9"


def test_create_refund():
    def handler(request):
        form = parse_qs(request.content.decode())
        assert request.url.path == "/v1/refunds"
        assert form["charge"] == ["ch_9"]
        assert form["amount"] == ["540"]
        assert request.headers["Idempotency-Key"] == "refund-1"
        return httpx.Response(200, json={"id": "re_7", "status": "succeeded", "amount": 540})

    refund = make_gateway(handler).create_refund("ch_9", 540, idempotency_key="refund-1")
    assert (refund.id, refund.status, refund.amount) == ("re_7", "succeeded", 540)


def test_api_error_becomes_gateway_error():
    def handler(request):
        return httpx.Response(402, json={
            "error": {"type": "card_error", "code": "card_declined", "message": "Your card was declined."},
        })

    with pytest.raises(PaymentGatewayError) as exc_info:
        make_gateway(handler).retrieve_payment_intent("pi_42")

    assert exc_info.value.message == "Your card was declined."
    assert exc_info.value.details["code"] == "card_declined"
    assert exc_info.value.retryable is True


def test_transport_error_becomes_gateway_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaymentGatewayError) as exc_info:
        make_gateway(handler).retrieve_payment_intent("pi_42")
    assert exc_info.value.message == "Payment gateway unreachable"


# =============================================================================
# WEBHOOK SIGNATURES
# =============================================================================

def test_verify_event_accepts_valid_signature():
    payload = json.dumps({"type": "payment_intent.succeeded"}).encode()
    event = verify_event(payload, sign_payload(payload, SECRET), SECRET)
    assert event["type"] == "payment_intent.succeeded"


def test_verify_event_rejects_tampered_payload():
    payload = b'{"type": "payment_intent.succeeded"}'
    signature = sign_payload(payload, SECRET)

    with pytest.raises(ValidationError):
        verify_event(b'{"type": "payment_intent.payment_failed"}', signature, SECRET)
    with pytest.raises(ValidationError):
        verify_event(payload, sign_payload(payload, "whsec_other"), SECRET)


def test_verify_event_rejects_stale_timestamp():
    payload = b"{}"
    signature = sign_payload(payload, SECRET, timestamp=int(time.time()) - 600)

    with pytest.raises(ValidationError) as exc_info:
        verify_event(payload, signature, SECRET)
    assert "tolerance" in exc_info.value.message


@pytest.mark.parametrize("signature", [None, "", "garbage", "t=abc,v1=00"])
def test_verify_event_rejects_missing_or_malformed_header(signature):
    with pytest.raises(ValidationError):
        verify_event(b"{}", signature, SECRET)


def test_verify_event_requires_secret():
    payload = b"{}"
    with pytest.raises(ValidationError):
        verify_event(payload, sign_payload(payload, SECRET), "")


def test_gateway_parse_event_uses_configured_secret():
    gateway = make_gateway(lambda request: httpx.Response(500))
    payload = b'{"type": "charge.refunded"}'
    assert gateway.parse_event(payload, sign_payload(payload, SECRET))["type"] == "charge.refunded"
