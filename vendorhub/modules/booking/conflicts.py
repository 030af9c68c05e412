"""Booking window conflict detection."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol
from uuid import UUID

from vendorhub.core.enums import BookingRequestStatusEnum
from vendorhub.core.metrics import BOOKING_CONFLICTS_TOTAL

logger = logging.getLogger(__name__)

# Statuses that hold the service window while a booking is in progress or paid.
RESERVING_STATUSES: frozenset[BookingRequestStatusEnum] = frozenset(
    {
        BookingRequestStatusEnum.PAYMENT_PENDING,
        BookingRequestStatusEnum.PENDING_VENDOR,
        BookingRequestStatusEnum.ACCEPTED,
        BookingRequestStatusEnum.PAID,
    },
)


def windows_overlap(
    existing_start: datetime,
    existing_end: datetime,
    candidate_start: datetime,
    candidate_end: datetime,
) -> bool:
    """Half-open [start, end) overlap test."""
    return existing_start < candidate_end and existing_end > candidate_start


class ConflictStore(Protocol):
    async def has_conflict(
        self,
        service_id: UUID,
        start: datetime,
        end: datetime,
        exclude_booking_id: UUID | None = None,
    ) -> bool: ...


class BookingConflictDetector:
    """Checks a candidate window against reserving bookings of the same service.

    The answer reflects data committed at call time only; callers re-check
    before charging instead of relying on it as a lock.
    """

    def __init__(self, store: ConflictStore) -> None:
        self.store = store

    async def has_conflict(
        self,
        service_id: UUID,
        start: datetime,
        end: datetime,
        exclude_booking_id: UUID | None = None,
        *,
        stage: str = "create",
    ) -> bool:
        conflict = await self.store.has_conflict(service_id, start, end, exclude_booking_id)
        if conflict:
            BOOKING_CONFLICTS_TOTAL.labels(stage=stage).inc()
            logger.info(
                "Booking conflict on service %s for [%s, %s) at %s",
                service_id,
                start.isoformat(),
                end.isoformat(),
                stage,
            )
        return conflict
