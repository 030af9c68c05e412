from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

import vendorhub.main as main_module
from vendorhub.core.enums import RoleEnum
from vendorhub.modules.booking.schemas import BookingRequestCreated, PricingSnapshot, StripeSetup
from vendorhub.modules.booking.service import get_booking_request_service
from vendorhub.modules.identity.service import get_current_user
from vendorhub.modules.payments.gateway import WebhookSignatureError, get_payment_gateway
from vendorhub.modules.payments.webhooks import WebhookResult, get_webhook_reconciler
from vendorhub.shared.exceptions import ConflictException
from vendorhub.shared.outcome import ServiceOutcome

API = main_module.settings.api_prefix


class FakeWebhookGateway:
    def construct_webhook_event(self, payload: bytes, signature: str | None) -> dict:
        if signature != "valid":
            raise WebhookSignatureError("Invalid webhook signature")
        return {"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}}


class FakeReconciler:
    def __init__(self) -> None:
        self.events: list[dict] = []

    async def handle_event(self, event: dict) -> WebhookResult:
        self.events.append(event)
        return WebhookResult(event_type=event["type"], handled=True)


class FakeBookingService:
    def __init__(self, outcome: ServiceOutcome) -> None:
        self.outcome = outcome

    async def create_booking_request(self, client_id, payload) -> ServiceOutcome:
        return self.outcome


@pytest.fixture
def client():
    yield TestClient(main_module.app)
    main_module.app.dependency_overrides.clear()


def as_user(role: RoleEnum) -> None:
    user = SimpleNamespace(id=uuid4(), role=SimpleNamespace(name=role))
    main_module.app.dependency_overrides[get_current_user] = lambda: user


def test_stripe_webhook_applies_verified_event(client: TestClient) -> None:
    reconciler = FakeReconciler()
    main_module.app.dependency_overrides[get_payment_gateway] = FakeWebhookGateway
    main_module.app.dependency_overrides[get_webhook_reconciler] = lambda: reconciler

    response = client.post(
        f"{API}/webhooks/stripe",
        content=b'{"id": "evt_1"}',
        headers={"Stripe-Signature": "valid"},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert reconciler.events[0]["type"] == "payment_intent.succeeded"


def test_stripe_webhook_rejects_bad_signature(client: TestClient) -> None:
    reconciler = FakeReconciler()
    main_module.app.dependency_overrides[get_payment_gateway] = FakeWebhookGateway
    main_module.app.dependency_overrides[get_webhook_reconciler] = lambda: reconciler

    response = client.post(
        f"{API}/webhooks/stripe",
        content=b'{"id": "evt_1"}',
        headers={"Stripe-Signature": "forged"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["key"] == "INVALID_WEBHOOK_SIGNATURE"
    assert reconciler.events == []


def test_create_booking_request_returns_201_with_setup_secret(client: TestClient) -> None:
    as_user(RoleEnum.CLIENT)
    created = BookingRequestCreated(
        booking_request_id=uuid4(),
        stripe=StripeSetup(client_secret="seti_1_secret"),
        pricing=PricingSnapshot(subtotal=22500, platform_fee=1125, tax=3071, total=26696, currency="cad"),
    )
    main_module.app.dependency_overrides[get_booking_request_service] = lambda: FakeBookingService(
        ServiceOutcome.ok(created, status_code=201),
    )

    response = client.post(
        f"{API}/booking-requests",
        json={
            "service_id": str(uuid4()),
            "booking_start": "2026-03-05T14:00:00Z",
            "booking_end": "2026-03-05T16:10:00Z",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["stripe"]["client_secret"] == "seti_1_secret"
    assert body["pricing"]["total"] == 26696
    assert body["replayed"] is False


def test_failed_outcome_is_rendered_in_error_envelope(client: TestClient) -> None:
    as_user(RoleEnum.CLIENT)
    main_module.app.dependency_overrides[get_booking_request_service] = lambda: FakeBookingService(
        ServiceOutcome.from_exception(ConflictException()),
    )

    response = client.post(
        f"{API}/booking-requests",
        json={
            "service_id": str(uuid4()),
            "booking_start": "2026-03-05T14:00:00Z",
            "booking_end": "2026-03-05T16:10:00Z",
        },
    )

    assert response.status_code == 409
    assert response.json() == {
        "error": {
            "code": "conflict",
            "key": "BOOKING_CONFLICT",
            "message": "The requested time overlaps an existing booking",
        },
    }


def test_vendor_cannot_create_booking_request(client: TestClient) -> None:
    as_user(RoleEnum.VENDOR)
    service = FakeBookingService(ServiceOutcome.from_exception(ConflictException()))
    main_module.app.dependency_overrides[get_booking_request_service] = lambda: service

    response = client.post(
        f"{API}/booking-requests",
        json={
            "service_id": str(uuid4()),
            "booking_start": "2026-03-05T14:00:00Z",
            "booking_end": "2026-03-05T16:10:00Z",
        },
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "http_error"


class FailingReconciler:
    async def handle_event(self, event: dict) -> WebhookResult:
        raise ConnectionError("database unavailable")


def test_stripe_webhook_answers_500_when_reconciliation_fails() -> None:
    main_module.app.dependency_overrides[get_payment_gateway] = FakeWebhookGateway
    main_module.app.dependency_overrides[get_webhook_reconciler] = FailingReconciler
    try:
        response = TestClient(main_module.app, raise_server_exceptions=False).post(
            f"{API}/webhooks/stripe",
            content=b'{"id": "evt_1"}',
            headers={"Stripe-Signature": "valid"},
        )
    finally:
        main_module.app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() != {"received": True}


def test_current_user_profile_includes_role(client: TestClient) -> None:
    user = SimpleNamespace(
        id=uuid4(),
        email="vendor@example.com",
        first_name="Ana",
        last_name="Silva",
        is_active=True,
        role=SimpleNamespace(name=RoleEnum.VENDOR),
    )
    main_module.app.dependency_overrides[get_current_user] = lambda: user

    response = client.get(f"{API}/identity/users/me")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == str(user.id)
    assert body["role"] == "vendor"
    assert body["is_active"] is True
