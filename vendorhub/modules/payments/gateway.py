"""Stripe payment gateway adapter.

Wraps the customer, SetupIntent and PaymentIntent primitives used by the
delayed-capture booking flow. The adapter is constructed once with explicit
credentials and handed to its consumers; the Stripe SDK's module-level
``stripe.api_key`` is never touched. SDK calls are blocking and run in a
worker thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import partial
from typing import Any, Protocol, TypeVar

import stripe
from fastapi import Request

from vendorhub.core.config import Settings
from vendorhub.core.metrics import PAYMENT_GATEWAY_ERRORS_TOTAL

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaymentGatewayError(Exception):
    """Processor failure not covered by a more specific kind."""

    error_key = "PAYMENT_FAILED"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class CardDeclinedError(PaymentGatewayError):
    error_key = "CARD_DECLINED"

    def __init__(self, message: str, *, code: str | None = None, decline_code: str | None = None) -> None:
        super().__init__(message, code=code)
        self.decline_code = decline_code


class AuthenticationRequiredError(PaymentGatewayError):
    """Off-session charge needs the cardholder to authenticate."""

    error_key = "AUTHENTICATION_REQUIRED"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        payment_intent_id: str | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.payment_intent_id = payment_intent_id


class GatewayAPIError(PaymentGatewayError):
    error_key = "STRIPE_API_ERROR"


class GatewayAuthError(PaymentGatewayError):
    error_key = "STRIPE_AUTH_ERROR"


class WebhookSignatureError(Exception):
    """Webhook payload failed signature or format verification."""


@dataclass(frozen=True, slots=True)
class CustomerRef:
    id: str
    email: str | None = None


@dataclass(frozen=True, slots=True)
class SetupIntentRef:
    id: str
    status: str
    client_secret: str | None = None
    payment_method_id: str | None = None


@dataclass(frozen=True, slots=True)
class PaymentIntentRef:
    id: str
    status: str
    client_secret: str | None = None


class PaymentGateway(Protocol):
    """Processor operations the booking core depends on."""

    async def create_or_retrieve_customer(
        self,
        email: str,
        name: str,
        metadata: Mapping[str, str],
        address: Mapping[str, str | None] | None = None,
    ) -> CustomerRef: ...

    async def retrieve_customer(self, customer_id: str) -> CustomerRef | None: ...

    async def create_setup_intent(
        self,
        customer_id: str,
        metadata: Mapping[str, str],
        idempotency_key: str | None = None,
    ) -> SetupIntentRef: ...

    async def retrieve_setup_intent(self, setup_intent_id: str) -> SetupIntentRef: ...

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        metadata: Mapping[str, str],
        confirm: bool = True,
        idempotency_key: str | None = None,
    ) -> PaymentIntentRef: ...

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentRef: ...

    async def confirm_payment_intent(self, payment_intent_id: str) -> PaymentIntentRef: ...


def _field(obj: Any, name: str) -> Any:
    """Read a response field from a StripeObject or a plain mapping."""
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _object_id(value: Any) -> str | None:
    """Stripe fields may hold an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def _translate_error(exc: stripe.StripeError) -> PaymentGatewayError:
    message = exc.user_message or str(exc)
    code = getattr(exc, "code", None)
    if isinstance(exc, stripe.CardError):
        error = exc.error
        if code == "authentication_required":
            intent = getattr(error, "payment_intent", None) if error is not None else None
            return AuthenticationRequiredError(message, code=code, payment_intent_id=_object_id(intent))
        decline_code = getattr(error, "decline_code", None) if error is not None else None
        return CardDeclinedError(message, code=code, decline_code=decline_code)
    if isinstance(exc, stripe.AuthenticationError):
        return GatewayAuthError(message, code=code)
    if isinstance(exc, (stripe.APIError, stripe.APIConnectionError, stripe.RateLimitError)):
        return GatewayAPIError(message, code=code)
    return PaymentGatewayError(message, code=code)


def _setup_intent_ref(intent: Any) -> SetupIntentRef:
    return SetupIntentRef(
        id=intent.id,
        status=intent.status,
        client_secret=_field(intent, "client_secret"),
        payment_method_id=_object_id(_field(intent, "payment_method")),
    )


def _payment_intent_ref(intent: Any) -> PaymentIntentRef:
    return PaymentIntentRef(
        id=intent.id,
        status=intent.status,
        client_secret=_field(intent, "client_secret"),
    )


class StripePaymentGateway:
    """PaymentGateway backed by the Stripe API."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        webhook_tolerance_seconds: int = 300,
    ) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._webhook_tolerance_seconds = webhook_tolerance_seconds

    async def _call(self, operation: str, func: Callable[..., T], *args: Any, **params: Any) -> T:
        try:
            return await asyncio.to_thread(partial(func, *args, api_key=self._api_key, **params))
        except stripe.StripeError as exc:
            error = _translate_error(exc)
            PAYMENT_GATEWAY_ERRORS_TOTAL.labels(operation=operation, error_key=error.error_key).inc()
            logger.warning(
                "Stripe %s failed: %s (code=%s, request_id=%s)",
                operation,
                error.message,
                error.code,
                getattr(exc, "request_id", None),
            )
            raise error from exc

    async def create_or_retrieve_customer(
        self,
        email: str,
        name: str,
        metadata: Mapping[str, str],
        address: Mapping[str, str | None] | None = None,
    ) -> CustomerRef:
        existing = await self._call("customer.list", stripe.Customer.list, email=email, limit=1)
        if existing.data:
            customer = existing.data[0]
            return CustomerRef(id=customer.id, email=_field(customer, "email"))

        params: dict[str, Any] = {"email": email, "name": name, "metadata": dict(metadata)}
        if address:
            params["address"] = {key: value for key, value in address.items() if value}
        customer = await self._call("customer.create", stripe.Customer.create, **params)
        logger.info("Created Stripe customer %s", customer.id)
        return CustomerRef(id=customer.id, email=_field(customer, "email"))

    async def retrieve_customer(self, customer_id: str) -> CustomerRef | None:
        try:
            customer = await self._call("customer.retrieve", stripe.Customer.retrieve, customer_id)
        except PaymentGatewayError as exc:
            if exc.code == "resource_missing":
                return None
            raise
        if _field(customer, "deleted"):
            return None
        return CustomerRef(id=customer.id, email=_field(customer, "email"))

    async def create_setup_intent(
        self,
        customer_id: str,
        metadata: Mapping[str, str],
        idempotency_key: str | None = None,
    ) -> SetupIntentRef:
        params: dict[str, Any] = {
            "customer": customer_id,
            "usage": "off_session",
            "metadata": dict(metadata),
        }
        if idempotency_key is not None:
            params["idempotency_key"] = idempotency_key
        intent = await self._call("setup_intent.create", stripe.SetupIntent.create, **params)
        return _setup_intent_ref(intent)

    async def retrieve_setup_intent(self, setup_intent_id: str) -> SetupIntentRef:
        intent = await self._call("setup_intent.retrieve", stripe.SetupIntent.retrieve, setup_intent_id)
        return _setup_intent_ref(intent)

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        metadata: Mapping[str, str],
        confirm: bool = True,
        idempotency_key: str | None = None,
    ) -> PaymentIntentRef:
        params: dict[str, Any] = {
            "amount": amount,
            "currency": currency.lower(),
            "customer": customer_id,
            "payment_method": payment_method_id,
            "off_session": True,
            "confirm": confirm,
            "metadata": dict(metadata),
        }
        if idempotency_key is not None:
            params["idempotency_key"] = idempotency_key
        intent = await self._call("payment_intent.create", stripe.PaymentIntent.create, **params)
        return _payment_intent_ref(intent)

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentRef:
        intent = await self._call("payment_intent.retrieve", stripe.PaymentIntent.retrieve, payment_intent_id)
        return _payment_intent_ref(intent)

    async def confirm_payment_intent(self, payment_intent_id: str) -> PaymentIntentRef:
        intent = await self._call("payment_intent.confirm", stripe.PaymentIntent.confirm, payment_intent_id)
        return _payment_intent_ref(intent)

    def construct_webhook_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Verify the Stripe-Signature header and return the event as a plain dict."""
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        if not self._webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        try:
            stripe.Webhook.construct_event(
                payload,
                signature,
                self._webhook_secret,
                tolerance=self._webhook_tolerance_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError("Invalid webhook signature") from exc
        except ValueError as exc:
            raise WebhookSignatureError("Invalid webhook payload") from exc
        return json.loads(payload)


def build_payment_gateway(settings: Settings) -> StripePaymentGateway:
    """Create the process-wide gateway from settings."""
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY is empty; payment calls will fail")
    return StripePaymentGateway(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        webhook_tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
    )


def get_payment_gateway(request: Request) -> StripePaymentGateway:
    """Dependency provider returning the gateway built at startup."""
    return request.app.state.payment_gateway
