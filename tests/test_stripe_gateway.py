from __future__ import annotations

import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import pytest
import stripe

from vendorhub.modules.payments.gateway import (
    AuthenticationRequiredError,
    CardDeclinedError,
    GatewayAPIError,
    GatewayAuthError,
    StripePaymentGateway,
    WebhookSignatureError,
)

WEBHOOK_SECRET = "whsec_test_secret"


def make_gateway() -> StripePaymentGateway:
    return StripePaymentGateway(api_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.mark.asyncio
async def test_create_payment_intent_charges_off_session_with_explicit_key(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict] = []

    def _create(**params):
        calls.append(params)
        return stripe.PaymentIntent.construct_from(
            {"id": "pi_1", "object": "payment_intent", "status": "succeeded", "client_secret": "pi_1_secret"},
            "sk_test_123",
        )

    monkeypatch.setattr(stripe.PaymentIntent, "create", _create)

    intent = await make_gateway().create_payment_intent(
        amount=26696,
        currency="CAD",
        customer_id="cus_1",
        payment_method_id="pm_1",
        metadata={"booking_request_id": "b1"},
        idempotency_key="booking-request-b1-charge",
    )

    assert intent.id == "pi_1"
    assert intent.status == "succeeded"
    params = calls[0]
    assert params["api_key"] == "sk_test_123"
    assert params["currency"] == "cad"
    assert params["off_session"] is True
    assert params["confirm"] is True
    assert params["idempotency_key"] == "booking-request-b1-charge"


@pytest.mark.asyncio
async def test_card_decline_is_translated(monkeypatch: pytest.MonkeyPatch) -> None:
    def _create(**params):
        raise stripe.CardError(
            "Your card was declined.",
            None,
            "card_declined",
            json_body={"error": {"code": "card_declined", "decline_code": "insufficient_funds"}},
        )

    monkeypatch.setattr(stripe.PaymentIntent, "create", _create)

    with pytest.raises(CardDeclinedError) as exc:
        await make_gateway().create_payment_intent(100, "cad", "cus_1", "pm_1", {})

    assert exc.value.error_key == "CARD_DECLINED"
    assert exc.value.message == "Your card was declined."
    assert exc.value.decline_code == "insufficient_funds"


@pytest.mark.asyncio
async def test_authentication_required_carries_payment_intent_id(monkeypatch: pytest.MonkeyPatch) -> None:
    def _create(**params):
        raise stripe.CardError(
            "This payment requires authentication.",
            None,
            "authentication_required",
            json_body={
                "error": {
                    "code": "authentication_required",
                    "payment_intent": {"id": "pi_auth", "status": "requires_payment_method"},
                },
            },
        )

    monkeypatch.setattr(stripe.PaymentIntent, "create", _create)

    with pytest.raises(AuthenticationRequiredError) as exc:
        await make_gateway().create_payment_intent(100, "cad", "cus_1", "pm_1", {})

    assert exc.value.payment_intent_id == "pi_auth"


@pytest.mark.asyncio
async def test_auth_and_connectivity_errors_are_translated(monkeypatch: pytest.MonkeyPatch) -> None:
    def _bad_key(*args, **params):
        raise stripe.AuthenticationError("Invalid API Key provided")

    def _offline(*args, **params):
        raise stripe.APIConnectionError("Network unreachable")

    gateway = make_gateway()

    monkeypatch.setattr(stripe.SetupIntent, "create", _bad_key)
    with pytest.raises(GatewayAuthError) as auth_exc:
        await gateway.create_setup_intent("cus_1", {})

    monkeypatch.setattr(stripe.SetupIntent, "retrieve", _offline)
    with pytest.raises(GatewayAPIError) as api_exc:
        await gateway.retrieve_setup_intent("seti_1")

    assert auth_exc.value.error_key == "STRIPE_AUTH_ERROR"
    assert api_exc.value.error_key == "STRIPE_API_ERROR"


@pytest.mark.asyncio
async def test_retrieve_setup_intent_reads_payment_method(monkeypatch: pytest.MonkeyPatch) -> None:
    def _retrieve(setup_intent_id, **params):
        return stripe.SetupIntent.construct_from(
            {
                "id": setup_intent_id,
                "object": "setup_intent",
                "status": "succeeded",
                "client_secret": "seti_1_secret",
                "payment_method": {"id": "pm_9", "object": "payment_method", "type": "card"},
            },
            "sk_test_123",
        )

    monkeypatch.setattr(stripe.SetupIntent, "retrieve", _retrieve)

    intent = await make_gateway().retrieve_setup_intent("seti_1")

    assert intent.payment_method_id == "pm_9"


@pytest.mark.asyncio
async def test_missing_customer_is_reported_as_none(monkeypatch: pytest.MonkeyPatch) -> None:
    def _retrieve(customer_id, **params):
        raise stripe.InvalidRequestError("No such customer", "id", code="resource_missing")

    monkeypatch.setattr(stripe.Customer, "retrieve", _retrieve)

    assert await make_gateway().retrieve_customer("cus_gone") is None


@pytest.mark.asyncio
async def test_existing_customer_is_found_by_email(monkeypatch: pytest.MonkeyPatch) -> None:
    def _list(**params):
        customer = stripe.Customer.construct_from(
            {"id": "cus_known", "object": "customer", "email": params["email"]},
            "sk_test_123",
        )
        return SimpleNamespace(data=[customer])

    def _create(**params):
        raise AssertionError("customer must not be created")

    monkeypatch.setattr(stripe.Customer, "list", _list)
    monkeypatch.setattr(stripe.Customer, "create", _create)

    customer = await make_gateway().create_or_retrieve_customer(
        email="client@example.com",
        name="Sam Lee",
        metadata={"user_id": "u1", "user_role": "client"},
    )

    assert customer.id == "cus_known"


def test_construct_webhook_event_verifies_signature() -> None:
    payload = json.dumps(
        {"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}},
    ).encode("utf-8")

    event = make_gateway().construct_webhook_event(payload, sign(payload))

    assert event["type"] == "payment_intent.succeeded"
    assert event["data"]["object"]["id"] == "pi_1"


def test_construct_webhook_event_rejects_bad_or_missing_signature() -> None:
    payload = b'{"id": "evt_1", "type": "setup_intent.succeeded"}'
    gateway = make_gateway()

    with pytest.raises(WebhookSignatureError):
        gateway.construct_webhook_event(payload, sign(payload, secret="whsec_other"))
    with pytest.raises(WebhookSignatureError):
        gateway.construct_webhook_event(payload, None)
    with pytest.raises(WebhookSignatureError):
        gateway.construct_webhook_event(payload, sign(payload, timestamp=int(time.time()) - 3600))


@pytest.mark.asyncio
async def test_setup_intent_with_unexpanded_payment_method_and_no_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    def _create(**params):
        return stripe.SetupIntent.construct_from(
            {"id": "seti_2", "object": "setup_intent", "status": "succeeded", "payment_method": "pm_3"},
            "sk_test_123",
        )

    monkeypatch.setattr(stripe.SetupIntent, "create", _create)

    intent = await make_gateway().create_setup_intent("cus_1", {"booking_request_id": "b1"})

    assert intent.id == "seti_2"
    assert intent.client_secret is None
    assert intent.payment_method_id == "pm_3"


@pytest.mark.asyncio
async def test_deleted_customer_is_reported_as_none(monkeypatch: pytest.MonkeyPatch) -> None:
    def _retrieve(customer_id, **params):
        return stripe.Customer.construct_from(
            {"id": customer_id, "object": "customer", "deleted": True},
            "sk_test_123",
        )

    monkeypatch.setattr(stripe.Customer, "retrieve", _retrieve)

    assert await make_gateway().retrieve_customer("cus_deleted") is None
