from __future__ import annotations

from dataclasses import dataclass, replace
from uuid import UUID, uuid4

import pytest

from vendorhub.core.enums import BookingRequestStatusEnum
from vendorhub.modules.booking.schemas import BookingRequestPatch
from vendorhub.modules.payments.webhooks import WebhookReconciler


@dataclass
class FakeBooking:
    id: UUID
    status: BookingRequestStatusEnum
    stripe_setup_intent_id: str | None = None
    stripe_payment_method_id: str | None = None
    stripe_payment_intent_id: str | None = None


class FakeBookingRepository:
    def __init__(self, bookings: list[FakeBooking]) -> None:
        self.bookings = {booking.id: booking for booking in bookings}
        self.updates = 0

    async def get_by_setup_intent_id(self, setup_intent_id: str) -> FakeBooking | None:
        return next(
            (item for item in self.bookings.values() if item.stripe_setup_intent_id == setup_intent_id),
            None,
        )

    async def get_by_payment_intent_id(self, payment_intent_id: str) -> FakeBooking | None:
        return next(
            (item for item in self.bookings.values() if item.stripe_payment_intent_id == payment_intent_id),
            None,
        )

    async def update_by_id(
        self,
        booking_id: UUID,
        patch: BookingRequestPatch,
        expected_status: BookingRequestStatusEnum | None = None,
    ) -> FakeBooking | None:
        booking = self.bookings[booking_id]
        if expected_status is not None and booking.status != expected_status:
            return None
        for key, value in patch.to_values().items():
            setattr(booking, key, value)
        self.updates += 1
        return booking


def make_event(event_type: str, data_object: dict) -> dict:
    return {"id": f"evt_{uuid4().hex[:8]}", "type": event_type, "data": {"object": data_object}}


@pytest.mark.asyncio
async def test_setup_intent_succeeded_stores_payment_method_once() -> None:
    booking = FakeBooking(
        id=uuid4(),
        status=BookingRequestStatusEnum.PAYMENT_PENDING,
        stripe_setup_intent_id="seti_1",
    )
    repository = FakeBookingRepository([booking])
    reconciler = WebhookReconciler(repository)
    event = make_event("setup_intent.succeeded", {"id": "seti_1", "payment_method": "pm_1"})

    first = await reconciler.handle_event(event)
    replay = await reconciler.handle_event(event)

    assert first.handled and replay.handled
    assert first.booking_id == booking.id
    assert booking.status == BookingRequestStatusEnum.PENDING_VENDOR
    assert booking.stripe_payment_method_id == "pm_1"
    assert repository.updates == 1


@pytest.mark.asyncio
async def test_setup_intent_succeeded_accepts_expanded_payment_method() -> None:
    booking = FakeBooking(
        id=uuid4(),
        status=BookingRequestStatusEnum.PAYMENT_PENDING,
        stripe_setup_intent_id="seti_2",
    )
    reconciler = WebhookReconciler(FakeBookingRepository([booking]))

    await reconciler.handle_event(
        make_event("setup_intent.succeeded", {"id": "seti_2", "payment_method": {"id": "pm_2", "type": "card"}}),
    )

    assert booking.stripe_payment_method_id == "pm_2"


@pytest.mark.asyncio
async def test_setup_intent_succeeded_leaves_advanced_booking_untouched() -> None:
    booking = FakeBooking(
        id=uuid4(),
        status=BookingRequestStatusEnum.REJECTED,
        stripe_setup_intent_id="seti_3",
        stripe_payment_method_id="pm_old",
    )
    repository = FakeBookingRepository([booking])

    await WebhookReconciler(repository).handle_event(
        make_event("setup_intent.succeeded", {"id": "seti_3", "payment_method": "pm_new"}),
    )

    assert booking.status == BookingRequestStatusEnum.REJECTED
    assert booking.stripe_payment_method_id == "pm_old"
    assert repository.updates == 0


@pytest.mark.parametrize(
    ("event_type", "expected_status"),
    [
        ("payment_intent.succeeded", BookingRequestStatusEnum.PAID),
        ("payment_intent.payment_failed", BookingRequestStatusEnum.PAYMENT_FAILED),
        ("payment_intent.requires_action", BookingRequestStatusEnum.ACTION_REQUIRED),
    ],
)
@pytest.mark.asyncio
async def test_payment_intent_events_set_status(
    event_type: str,
    expected_status: BookingRequestStatusEnum,
) -> None:
    booking = FakeBooking(
        id=uuid4(),
        status=BookingRequestStatusEnum.PENDING_VENDOR,
        stripe_payment_intent_id="pi_1",
    )
    repository = FakeBookingRepository([booking])
    reconciler = WebhookReconciler(repository)
    event = make_event(event_type, {"id": "pi_1"})

    await reconciler.handle_event(event)
    await reconciler.handle_event(event)

    assert booking.status == expected_status
    assert repository.updates == 1


@pytest.mark.asyncio
async def test_action_required_booking_becomes_paid_after_authentication() -> None:
    booking = FakeBooking(
        id=uuid4(),
        status=BookingRequestStatusEnum.ACTION_REQUIRED,
        stripe_payment_intent_id="pi_3ds",
    )

    await WebhookReconciler(FakeBookingRepository([booking])).handle_event(
        make_event("payment_intent.succeeded", {"id": "pi_3ds"}),
    )

    assert booking.status == BookingRequestStatusEnum.PAID


@pytest.mark.asyncio
async def test_late_failure_event_does_not_downgrade_paid_booking() -> None:
    booking = FakeBooking(
        id=uuid4(),
        status=BookingRequestStatusEnum.PAID,
        stripe_payment_intent_id="pi_done",
    )

    await WebhookReconciler(FakeBookingRepository([booking])).handle_event(
        make_event("payment_intent.payment_failed", {"id": "pi_done"}),
    )

    assert booking.status == BookingRequestStatusEnum.PAID


@pytest.mark.asyncio
async def test_unknown_event_and_unknown_intent_are_acknowledged_without_changes() -> None:
    repository = FakeBookingRepository([])
    reconciler = WebhookReconciler(repository)

    unknown_type = await reconciler.handle_event(make_event("charge.refunded", {"id": "ch_1"}))
    unknown_intent = await reconciler.handle_event(make_event("payment_intent.succeeded", {"id": "pi_missing"}))

    assert unknown_type.handled is False
    assert unknown_intent.handled is False
    assert repository.updates == 0


class StaleSnapshotRepository(FakeBookingRepository):
    """Lookup returns a copy that lags behind the stored row on the first read."""

    def __init__(self, booking: FakeBooking, stale_status: BookingRequestStatusEnum) -> None:
        super().__init__([booking])
        self.stale_status = stale_status
        self.reads = 0

    async def get_by_payment_intent_id(self, payment_intent_id: str) -> FakeBooking | None:
        booking = await super().get_by_payment_intent_id(payment_intent_id)
        self.reads += 1
        if booking is None or self.reads > 1:
            return booking
        return replace(booking, status=self.stale_status)


@pytest.mark.asyncio
async def test_failure_event_racing_a_payment_does_not_overwrite_paid() -> None:
    booking = FakeBooking(
        id=uuid4(),
        status=BookingRequestStatusEnum.PAID,
        stripe_payment_intent_id="pi_race",
    )
    repository = StaleSnapshotRepository(booking, BookingRequestStatusEnum.ACTION_REQUIRED)

    result = await WebhookReconciler(repository).handle_event(
        make_event("payment_intent.payment_failed", {"id": "pi_race"}),
    )

    assert result.handled is True
    assert booking.status == BookingRequestStatusEnum.PAID
    assert repository.updates == 0
    assert repository.reads == 2


@pytest.mark.asyncio
async def test_success_event_is_applied_after_a_concurrent_status_change() -> None:
    booking = FakeBooking(
        id=uuid4(),
        status=BookingRequestStatusEnum.PAYMENT_FAILED,
        stripe_payment_intent_id="pi_retry",
    )
    repository = StaleSnapshotRepository(booking, BookingRequestStatusEnum.ACTION_REQUIRED)

    await WebhookReconciler(repository).handle_event(
        make_event("payment_intent.succeeded", {"id": "pi_retry"}),
    )

    assert booking.status == BookingRequestStatusEnum.PAID
    assert repository.updates == 1


class BrokenStorageRepository(FakeBookingRepository):
    async def update_by_id(self, booking_id, patch, expected_status=None):
        raise ConnectionError("database unavailable")


@pytest.mark.asyncio
async def test_storage_failure_propagates_so_delivery_is_retried() -> None:
    booking = FakeBooking(
        id=uuid4(),
        status=BookingRequestStatusEnum.ACTION_REQUIRED,
        stripe_payment_intent_id="pi_down",
    )
    reconciler = WebhookReconciler(BrokenStorageRepository([booking]))

    with pytest.raises(ConnectionError):
        await reconciler.handle_event(make_event("payment_intent.succeeded", {"id": "pi_down"}))

    assert booking.status == BookingRequestStatusEnum.ACTION_REQUIRED
