"""
Tests for payment intent creation and purchase verification.

The stripe SDK is monkeypatched; no request leaves the process.
"""

from types import SimpleNamespace

import pytest
import stripe

from djei.config import settings
from djei.dependencies import get_payments
from djei.main import app
from djei.services.payment_service import StripePayments
from tests.conftest import MEMBER_ID


@pytest.fixture
def stripe_calls(monkeypatch):
    calls = {"create": [], "retrieve": []}
    intents = {}

    def fake_create(**kwargs):
        calls["create"].append(kwargs)
        intent_id = f"pi_{len(calls['create'])}"
        intents[intent_id] = SimpleNamespace(
            id=intent_id,
            client_secret=f"{intent_id}_secret_abc",
            status="requires_payment_method",
            metadata=kwargs["metadata"],
        )
        return intents[intent_id]

    def fake_retrieve(intent_id, **kwargs):
        calls["retrieve"].append(intent_id)
        if intent_id not in intents:
            raise stripe.InvalidRequestError("No such payment_intent", param="id")
        return intents[intent_id]

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake_retrieve)
    calls["intents"] = intents
    return calls


@pytest.fixture
def configured_payments(member_client):
    payments = StripePayments(secret_key="sk_test_123", currency="usd")
    app.dependency_overrides[get_payments] = lambda: payments
    return payments


async def test_create_intent(member_client, configured_payments, stripe_calls):
    response = await member_client.post(
        "/payments/create-intent",
        json={"amount": 999, "tokenAmount": 100, "eventId": "evt_1", "description": "100 tokens"},
    )
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "clientSecret": "pi_1_secret_abc",
        "paymentIntentId": "pi_1",
    }

    sent = stripe_calls["create"][0]
    assert sent["amount"] == 999
    assert sent["currency"] == "usd"
    assert sent["api_key"] == "sk_test_123"
    assert sent["metadata"] == {"userId": MEMBER_ID, "tokenAmount": "100", "eventId": "evt_1"}


async def test_create_intent_minimum_amount(member_client, configured_payments, stripe_calls):
    response = await member_client.post("/payments/create-intent", json={"amount": 49})
    assert response.status_code == 400
    assert stripe_calls["create"] == []


async def test_create_intent_unconfigured(member_client):
    response = await member_client.post("/payments/create-intent", json={"amount": 500})
    assert response.status_code == 503
    assert response.json()["error"] == "Payment provider not configured"


async def test_provider_error_is_502(member_client, configured_payments, monkeypatch):
    def failing_create(**kwargs):
        raise stripe.APIConnectionError("Network down")

    monkeypatch.setattr(stripe.PaymentIntent, "create", failing_create)
    response = await member_client.post("/payments/create-intent", json={"amount": 500})
    assert response.status_code == 502


async def test_create_intent_requires_authentication(client):
    response = await client.post("/payments/create-intent", json={"amount": 500})
    assert response.status_code == 401


# ---------------------------------------------------------------------------
# Purchase verification (VERIFY_PAYMENT_INTENTS)
# ---------------------------------------------------------------------------

async def test_purchase_requires_succeeded_intent(member_client, configured_payments, stripe_calls, monkeypatch):
    monkeypatch.setattr(settings, "VERIFY_PAYMENT_INTENTS", True)
    await member_client.post("/payments/create-intent", json={"amount": 999, "tokenAmount": 100})

    body = {"amount": 100, "packageType": "100", "paymentIntentId": "pi_1"}
    response = await member_client.post("/tokens/purchase", json=body)
    assert response.status_code == 400
    assert response.json()["error"] == "Payment not completed"
    assert (await member_client.get("/tokens/balance")).json()["balance"] == 0

    stripe_calls["intents"]["pi_1"].status = "succeeded"
    response = await member_client.post("/tokens/purchase", json=body)
    assert response.status_code == 200
    assert response.json()["newBalance"] == 100


async def test_purchase_rejects_someone_elses_intent(
    member_client, second_member_client, configured_payments, stripe_calls, monkeypatch
):
    monkeypatch.setattr(settings, "VERIFY_PAYMENT_INTENTS", True)
    await member_client.post("/payments/create-intent", json={"amount": 999})
    stripe_calls["intents"]["pi_1"].status = "succeeded"

    response = await second_member_client.post(
        "/tokens/purchase",
        json={"amount": 100, "packageType": "100", "paymentIntentId": "pi_1"},
    )
    assert response.status_code == 400


async def test_purchase_with_unknown_intent_is_502(member_client, configured_payments, stripe_calls, monkeypatch):
    monkeypatch.setattr(settings, "VERIFY_PAYMENT_INTENTS", True)
    response = await member_client.post(
        "/tokens/purchase",
        json={"amount": 100, "packageType": "100", "paymentIntentId": "pi_unknown"},
    )
    assert response.status_code == 502


async def test_purchase_amount_must_match_intent(member_client, configured_payments, stripe_calls, monkeypatch):
    monkeypatch.setattr(settings, "VERIFY_PAYMENT_INTENTS", True)
    await member_client.post("/payments/create-intent", json={"amount": 499, "tokenAmount": 50})
    stripe_calls["intents"]["pi_1"].status = "succeeded"

    response = await member_client.post(
        "/tokens/purchase",
        json={"amount": 10000, "packageType": "500", "paymentIntentId": "pi_1"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Payment amount mismatch"
    assert response.json()["details"][0]["field"] == "amount"
    assert (await member_client.get("/tokens/balance")).json()["balance"] == 0

    # The intent is still redeemable for what was paid
    response = await member_client.post(
        "/tokens/purchase",
        json={"amount": 50, "packageType": "50", "paymentIntentId": "pi_1"},
    )
    assert response.status_code == 200
    assert response.json()["newBalance"] == 50


async def test_purchase_rejects_intent_without_token_amount(
    member_client, configured_payments, stripe_calls, monkeypatch
):
    monkeypatch.setattr(settings, "VERIFY_PAYMENT_INTENTS", True)
    await member_client.post("/payments/create-intent", json={"amount": 999})
    stripe_calls["intents"]["pi_1"].status = "succeeded"

    response = await member_client.post(
        "/tokens/purchase",
        json={"amount": 100, "packageType": "100", "paymentIntentId": "pi_1"},
    )
    assert response.status_code == 400
    assert (await member_client.get("/tokens/balance")).json()["balance"] == 0
