"""Reconcile booking requests with payment processor webhook events."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from vendorhub.core.database import get_db_session
from vendorhub.core.enums import BookingRequestStatusEnum
from vendorhub.core.metrics import WEBHOOK_EVENTS_TOTAL, record_booking_transition
from vendorhub.modules.booking.repository import BookingRequestRepository
from vendorhub.modules.booking.schemas import BookingRequestPatch

logger = logging.getLogger(__name__)

PAYMENT_INTENT_STATUSES: dict[str, BookingRequestStatusEnum] = {
    "payment_intent.succeeded": BookingRequestStatusEnum.PAID,
    "payment_intent.payment_failed": BookingRequestStatusEnum.PAYMENT_FAILED,
    "payment_intent.requires_action": BookingRequestStatusEnum.ACTION_REQUIRED,
}
STATUS_UPDATE_ATTEMPTS = 3


class BookingStore(Protocol):
    async def get_by_setup_intent_id(self, setup_intent_id: str) -> Any: ...

    async def get_by_payment_intent_id(self, payment_intent_id: str) -> Any: ...

    async def update_by_id(
        self,
        booking_id: UUID | str,
        patch: BookingRequestPatch,
        expected_status: BookingRequestStatusEnum | None = None,
    ) -> Any: ...


@dataclass(frozen=True, slots=True)
class WebhookResult:
    event_type: str
    handled: bool
    booking_id: UUID | None = None


def _object_id(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return value.get("id")
    return None


class WebhookReconciler:
    """Applies verified processor events to booking requests.

    Every branch is idempotent: replaying an event leaves the same state.
    Storage errors propagate so the processor retries delivery.
    """

    def __init__(self, repository: BookingStore) -> None:
        self.repository = repository

    async def handle_event(self, event: Mapping[str, Any]) -> WebhookResult:
        event_type = str(event.get("type") or "")
        data_object = (event.get("data") or {}).get("object") or {}
        logger.info("Stripe webhook %s received (%s)", event_type, event.get("id"))

        if event_type == "setup_intent.succeeded":
            result = await self._setup_intent_succeeded(data_object)
        elif event_type in PAYMENT_INTENT_STATUSES:
            result = await self._payment_intent_changed(event_type, data_object)
        else:
            logger.info("Unhandled Stripe event type %s", event_type)
            result = WebhookResult(event_type=event_type, handled=False)

        WEBHOOK_EVENTS_TOTAL.labels(
            event_type=event_type or "unknown",
            outcome="handled" if result.handled else "ignored",
        ).inc()
        return result

    async def _setup_intent_succeeded(self, setup_intent: Mapping[str, Any]) -> WebhookResult:
        event_type = "setup_intent.succeeded"
        setup_intent_id = setup_intent.get("id")
        payment_method_id = _object_id(setup_intent.get("payment_method"))
        if not setup_intent_id or not payment_method_id:
            logger.warning("setup_intent.succeeded without intent or payment method id")
            return WebhookResult(event_type=event_type, handled=False)

        booking = await self.repository.get_by_setup_intent_id(setup_intent_id)
        if booking is None:
            logger.info("No booking request for setup intent %s", setup_intent_id)
            return WebhookResult(event_type=event_type, handled=False)

        if booking.status != BookingRequestStatusEnum.PAYMENT_PENDING or booking.stripe_payment_method_id:
            return WebhookResult(event_type=event_type, handled=True, booking_id=booking.id)

        updated = await self.repository.update_by_id(
            booking.id,
            BookingRequestPatch(
                status=BookingRequestStatusEnum.PENDING_VENDOR,
                stripe_payment_method_id=payment_method_id,
            ),
            expected_status=BookingRequestStatusEnum.PAYMENT_PENDING,
        )
        if updated is not None:
            record_booking_transition(
                str(BookingRequestStatusEnum.PAYMENT_PENDING),
                str(BookingRequestStatusEnum.PENDING_VENDOR),
                "webhook",
            )
            logger.info("Booking request %s payment method stored from webhook", booking.id)
        return WebhookResult(event_type=event_type, handled=True, booking_id=booking.id)

    async def _payment_intent_changed(self, event_type: str, payment_intent: Mapping[str, Any]) -> WebhookResult:
        payment_intent_id = payment_intent.get("id")
        if not payment_intent_id:
            return WebhookResult(event_type=event_type, handled=False)

        new_status = PAYMENT_INTENT_STATUSES[event_type]
        for _ in range(STATUS_UPDATE_ATTEMPTS):
            booking = await self.repository.get_by_payment_intent_id(payment_intent_id)
            if booking is None:
                logger.info("No booking request for payment intent %s", payment_intent_id)
                return WebhookResult(event_type=event_type, handled=False)
            if booking.status == new_status:
                return WebhookResult(event_type=event_type, handled=True, booking_id=booking.id)
            if booking.status == BookingRequestStatusEnum.PAID:
                # Out-of-order delivery never downgrades a settled charge.
                logger.warning("Ignoring %s for paid booking request %s", event_type, booking.id)
                return WebhookResult(event_type=event_type, handled=True, booking_id=booking.id)

            previous_status = booking.status
            updated = await self.repository.update_by_id(
                booking.id,
                BookingRequestPatch(status=new_status),
                expected_status=previous_status,
            )
            if updated is not None:
                record_booking_transition(str(previous_status), str(new_status), "webhook")
                logger.info("Booking request %s moved %s -> %s (webhook)", booking.id, previous_status, new_status)
                return WebhookResult(event_type=event_type, handled=True, booking_id=booking.id)
            logger.info(
                "Booking request %s left %s while applying %s; re-reading",
                booking.id,
                previous_status,
                event_type,
            )

        raise RuntimeError(f"Booking request for {payment_intent_id} kept changing while applying {event_type}")


async def get_webhook_reconciler(
    session: AsyncSession = Depends(get_db_session),
) -> WebhookReconciler:
    """Dependency provider for webhook reconciler."""
    return WebhookReconciler(BookingRequestRepository(session))
