"""
HTTP API tests: identity headers, roles, JSON shapes and the payment webhook.
"""

import json

from poscore.extensions import db
from poscore.models import Transaction
from poscore.services.payment_gateway import sign_payload


SODA = "000000000017"
BEER = "000000000048"


def pay_cash(client, headers, items=None, cash_received=1500):
    return client.post("/api/checkout/payment", json={
        "items": items or [{"upc": SODA, "quantity": 2}],
        "payment_method": "cash",
        "cash_received": cash_received,
    }, headers=headers)


# =============================================================================
# IDENTITY / ROLES
# =============================================================================

def test_missing_identity_headers_rejected(client):
    response = client.post("/api/checkout/start")
    assert response.status_code == 401
    assert response.get_json()["error"] == "Authentication required"


def test_malformed_identity_headers_rejected(client, cashier):
    response = client.post("/api/checkout/start", headers={"X-Business-Id": "1.5", "X-Cashier-Id": "abc"})
    assert response.status_code == 401


def test_cashier_of_other_business_rejected(client, cashier, other_business):
    headers = {"X-Business-Id": str(other_business.id), "X-Cashier-Id": str(cashier.id)}
    response = client.post("/api/checkout/start", headers=headers)
    assert response.status_code == 401
    assert response.get_json()["error"] == "Invalid cashier"


def test_inactive_cashier_rejected(client, cashier, auth_headers):
    cashier.is_active = False
    db.session.commit()

    response = client.post("/api/checkout/start", headers=auth_headers(cashier))
    assert response.status_code == 401


def test_start_checkout(client, cashier, auth_headers):
    response = client.post("/api/checkout/start", headers=auth_headers(cashier))

    assert response.status_code == 200
    data = response.get_json()
    assert data["session_id"].startswith("checkout_")
    assert data["cashier_name"] == "Casey"


def test_cashier_cannot_refund_or_void(client, cashier, products, auth_headers):
    txn_id = pay_cash(client, auth_headers(cashier)).get_json()["transaction"]["id"]

    response = client.post(f"/api/transactions/{txn_id}/refund", json={}, headers=auth_headers(cashier))
    assert response.status_code == 403
    assert set(response.get_json()["required_roles"]) == {"owner", "manager"}

    response = client.post(f"/api/transactions/{txn_id}/void", json={}, headers=auth_headers(cashier))
    assert response.status_code == 403


# =============================================================================
# CHECKOUT
# =============================================================================

def test_add_item(client, cashier, products, auth_headers):
    response = client.post("/api/checkout/add-item", json={"upc": SODA, "quantity": 2}, headers=auth_headers(cashier))

    assert response.status_code == 200
    item = response.get_json()["item"]
    assert item["total"] == 1080
    assert item["requires_age_check"] is False


def test_add_item_errors(client, cashier, products, auth_headers):
    headers = auth_headers(cashier)

    response = client.post("/api/checkout/add-item", json={"upc": "123"}, headers=headers)
    assert response.status_code == 400
    assert response.get_json()["error"] == "validation_error"

    response = client.post("/api/checkout/add-item", json={"upc": "999999999999"}, headers=headers)
    assert response.status_code == 404

    response = client.post("/api/checkout/add-item", json={"upc": SODA, "quantity": 1.5}, headers=headers)
    assert response.status_code == 400


def test_verify_age_route(client, cashier, auth_headers):
    headers = auth_headers(cashier)

    response = client.post("/api/checkout/verify-age", json={"confirmed": True, "customer_age": 30}, headers=headers)
    assert response.status_code == 200
    assert response.get_json()["verified"] is True

    response = client.post("/api/checkout/verify-age", json={"confirmed": False}, headers=headers)
    assert response.status_code == 403


def test_cash_payment(client, cashier, products, auth_headers):
    response = pay_cash(client, auth_headers(cashier))

    assert response.status_code == 201
    data = response.get_json()
    assert data["payment"] == {"method": "cash", "received": 1500, "change": 420, "status": "completed"}
    assert data["transaction"]["total_amount"] == 1080
    assert data["transaction"]["status"] == "completed"
    assert len(data["transaction"]["items"]) == 1


def test_insufficient_payment_error_shape(client, cashier, products, auth_headers):
    response = pay_cash(client, auth_headers(cashier), cash_received=1000)

    assert response.status_code == 422
    assert response.get_json() == {
        "error": "insufficient_payment",
        "message": "Insufficient payment. Need $0.80 more.",
        "retryable": False,
        "details": {"total": 1080, "received": 1000, "shortfall": 80},
    }
    assert db.session.query(Transaction).count() == 0


def test_payment_request_validation(client, cashier, products, auth_headers):
    headers = auth_headers(cashier)

    response = client.post("/api/checkout/payment", json={"items": [], "payment_method": "cash"}, headers=headers)
    assert response.status_code == 400

    response = client.post(
        "/api/checkout/payment", json={"items": [{"upc": SODA}], "payment_method": "bitcoin"}, headers=headers
    )
    assert response.status_code == 400

    response = client.post(
        "/api/checkout/payment", json={"items": [{"upc": SODA}], "payment_method": "cash"}, headers=headers
    )
    assert response.status_code == 400


def test_age_restricted_payment_requires_verification(client, cashier, products, auth_headers):
    headers = auth_headers(cashier)
    items = [{"upc": BEER}]

    response = pay_cash(client, headers, items=items, cash_received=2000)
    assert response.status_code == 403
    assert response.get_json()["error"] == "age_verification_required"

    response = client.post("/api/checkout/payment", json={
        "items": items,
        "payment_method": "cash",
        "cash_received": 2000,
        "customer_age_verified": True,
        "verified_age": 30,
    }, headers=headers)
    assert response.status_code == 201


def test_card_payment_then_confirm(client, cashier, products, gateway, auth_headers):
    headers = auth_headers(cashier)
    response = client.post("/api/checkout/payment", json={
        "items": [{"upc": SODA, "quantity": 2}],
        "payment_method": "card",
    }, headers=headers)

    assert response.status_code == 201
    data = response.get_json()
    assert data["payment"]["client_secret"] == "pi_1_secret"
    txn_id = data["transaction"]["id"]
    body = {"transaction_id": txn_id, "payment_intent_id": "pi_1"}

    response = client.post("/api/checkout/confirm-card-payment", json=body, headers=headers)
    assert response.status_code == 400
    assert response.get_json()["details"] == {"status": "requires_payment_method"}

    gateway.succeed("pi_1", charge="ch_route")
    response = client.post("/api/checkout/confirm-card-payment", json=body, headers=headers)
    assert response.status_code == 200
    assert response.get_json()["success"] is True
    assert response.get_json()["transaction"]["settlement_ref"] == "ch_route"


def test_gateway_failure_is_retryable_502(client, cashier, products, gateway, auth_headers):
    gateway.fail_create = True
    response = client.post("/api/checkout/payment", json={
        "items": [{"upc": SODA}],
        "payment_method": "card",
    }, headers=auth_headers(cashier))

    assert response.status_code == 502
    assert response.get_json()["retryable"] is True


# =============================================================================
# TRANSACTIONS
# =============================================================================

def test_list_get_and_receipt(client, cashier, products, auth_headers):
    headers = auth_headers(cashier)
    txn_id = pay_cash(client, headers).get_json()["transaction"]["id"]

    response = client.get("/api/transactions?limit=10", headers=headers)
    assert response.status_code == 200
    data = response.get_json()
    assert data["total"] == 1
    assert data["limit"] == 10
    assert data["transactions"][0]["id"] == txn_id

    response = client.get(f"/api/transactions/{txn_id}", headers=headers)
    assert response.get_json()["transaction"]["items"][0]["product_name"] == "Soda"

    response = client.get(f"/api/transactions/{txn_id}/receipt", headers=headers)
    assert response.get_json()["receipt"]["totals"]["total"] == 1080

    assert client.get("/api/transactions/nope", headers=headers).status_code == 404
    assert client.get("/api/transactions?limit=500", headers=headers).status_code == 400
    assert client.get("/api/transactions?start_date=yesterday", headers=headers).status_code == 400


def test_transactions_scoped_to_business(client, cashier, other_business, products, auth_headers):
    from poscore.models import Cashier
    from poscore.models.business import ROLE_OWNER

    txn_id = pay_cash(client, auth_headers(cashier)).get_json()["transaction"]["id"]

    stranger = Cashier(business_id=other_business.id, name="Stranger", role=ROLE_OWNER)
    db.session.add(stranger)
    db.session.commit()

    response = client.get(f"/api/transactions/{txn_id}", headers=auth_headers(stranger))
    assert response.status_code == 404
    response = client.post(f"/api/transactions/{txn_id}/refund", json={}, headers=auth_headers(stranger))
    assert response.status_code == 404


def test_manager_refund_and_conflict(client, cashier, manager, products, auth_headers):
    txn = pay_cash(client, auth_headers(cashier)).get_json()["transaction"]
    item_id = txn["items"][0]["id"]

    response = client.post(f"/api/transactions/{txn['id']}/refund", json={
        "items": [{"item_id": item_id, "quantity": 1}],
        "reason": "Dented can",
    }, headers=auth_headers(manager))

    assert response.status_code == 201
    data = response.get_json()
    assert data["success"] is True
    assert data["refund_amount"] == 540
    assert data["refund_transaction"]["total_amount"] == -540
    assert data["refund_transaction"]["note"] == "Dented can"

    response = client.post(f"/api/transactions/{txn['id']}/refund", json={}, headers=auth_headers(manager))
    assert response.status_code == 409
    assert response.get_json()["error"] == "already_refunded"


def test_owner_void(client, cashier, owner, products, auth_headers):
    txn_id = pay_cash(client, auth_headers(cashier)).get_json()["transaction"]["id"]

    response = client.post(f"/api/transactions/{txn_id}/void", json={"reason": "Test sale"}, headers=auth_headers(owner))
    assert response.status_code == 200
    assert response.get_json()["transaction"]["voided"] is True

    response = client.post(f"/api/transactions/{txn_id}/void", json={}, headers=auth_headers(owner))
    assert response.status_code == 409


# =============================================================================
# CASH MANAGEMENT
# =============================================================================

def test_cash_day_flow(client, cashier, products, auth_headers, notifier):
    headers = auth_headers(cashier)

    assert client.get("/api/cash/shift", headers=headers).get_json() == {"shift": None}

    response = client.post("/api/cash/start-day", json={"cash_counts": {"twenties": 5}}, headers=headers)
    assert response.status_code == 201
    assert response.get_json()["starting_cash"] == 10000

    response = client.post("/api/cash/start-day", json={"cash_counts": {"twenties": 5}}, headers=headers)
    assert response.status_code == 409

    pay_cash(client, headers)
    response = client.post("/api/cash/pay-out", json={"amount": 80, "note": "Stamps"}, headers=headers)
    assert response.status_code == 201
    assert response.get_json()["transaction"]["type"] == "pay_out"

    assert client.get("/api/cash/shift", headers=headers).get_json()["shift"]["status"] == "OPEN"

    response = client.post("/api/cash/end-day", json={
        "cash_counts": {"twenties": 5, "tens": 1},
        "skip_email_summary": True,
    }, headers=headers)
    assert response.status_code == 200
    data = response.get_json()
    assert data["summary"]["expected_cash"] == 10000 + 1080 - 80
    assert data["summary"]["difference"] == 0
    assert data["shift"]["status"] == "CLOSED"
    assert notifier.sent == []


def test_cash_endpoint_validation(client, cashier, auth_headers):
    headers = auth_headers(cashier)

    response = client.post("/api/cash/start-day", json={"cash_counts": {"doubloons": 3}}, headers=headers)
    assert response.status_code == 400

    response = client.post("/api/cash/pay-in", json={"amount": 0}, headers=headers)
    assert response.status_code == 400

    response = client.post("/api/cash/end-day", json={"cash_counts": {}}, headers=headers)
    assert response.status_code == 409


# =============================================================================
# WEBHOOK / HEALTH
# =============================================================================

def test_webhook_rejects_bad_signature(client):
    payload = json.dumps({"type": "payment_intent.succeeded"}).encode()
    response = client.post(
        "/api/webhooks/payments",
        data=payload,
        headers={"Stripe-Signature": sign_payload(payload, "whsec_wrong"), "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.get_json()["message"] == "Invalid webhook signature"


def test_signed_webhook_completes_card_sale(client, cashier, products, auth_headers):
    response = client.post("/api/checkout/payment", json={
        "items": [{"upc": SODA}],
        "payment_method": "card",
    }, headers=auth_headers(cashier))
    txn_id = response.get_json()["transaction"]["id"]

    payload = json.dumps({
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_1", "latest_charge": "ch_hook"}},
    }).encode()
    response = client.post(
        "/api/webhooks/payments",
        data=payload,
        headers={"Stripe-Signature": sign_payload(payload, "whsec_test"), "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    data = response.get_json()
    assert data["received"] is True
    assert data["transaction_id"] == txn_id
    assert db.session.get(Transaction, txn_id).status == "completed"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "healthy"
    assert data["checks"]["database"]["status"] == "healthy"
    assert data["checks"]["payments"]["status"] == "healthy"


def test_signed_charge_refunded_webhook_blocks_register_refund(client, cashier, manager, products, gateway, auth_headers):
    response = client.post("/api/checkout/payment", json={
        "items": [{"upc": SODA}],
        "payment_method": "card",
    }, headers=auth_headers(cashier))
    txn_id = response.get_json()["transaction"]["id"]
    gateway.succeed("pi_1", charge="ch_dash")
    client.post(
        "/api/checkout/confirm-card-payment",
        json={"transaction_id": txn_id, "payment_intent_id": "pi_1"},
        headers=auth_headers(cashier),
    )

    payload = json.dumps({
        "type": "charge.refunded",
        "data": {"object": {"id": "ch_dash", "amount_refunded": 540}},
    }).encode()
    response = client.post(
        "/api/webhooks/payments",
        data=payload,
        headers={"Stripe-Signature": sign_payload(payload, "whsec_test"), "Content-Type": "application/json"},
    )
    assert response.status_code == 200
    assert response.get_json()["changed"] is True

    response = client.post(f"/api/transactions/{txn_id}/refund", json={}, headers=auth_headers(manager))
    assert response.status_code == 409
    assert gateway.refund_calls == []
