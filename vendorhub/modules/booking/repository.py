"""Booking request repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vendorhub.core.enums import BookingRequestStatusEnum
from vendorhub.modules.booking.conflicts import RESERVING_STATUSES
from vendorhub.modules.booking.models import BookingRequest
from vendorhub.modules.booking.schemas import BookingRequestPatch, PricingSnapshot
from vendorhub.shared.utils import parse_uuid


def _with_projection(stmt: Select[tuple[BookingRequest]]) -> Select[tuple[BookingRequest]]:
    return stmt.options(
        selectinload(BookingRequest.service),
        selectinload(BookingRequest.vendor),
        selectinload(BookingRequest.client),
    )


class BookingRequestRepository:
    """DB operations for booking requests."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        *,
        service_id: UUID,
        vendor_id: UUID,
        client_id: UUID,
        booking_start: datetime,
        booking_end: datetime,
        notes: str,
        pricing: PricingSnapshot,
        stripe_customer_id: str,
        stripe_setup_intent_id: str,
    ) -> BookingRequest:
        booking = BookingRequest(
            service_id=service_id,
            vendor_id=vendor_id,
            client_id=client_id,
            booking_start=booking_start,
            booking_end=booking_end,
            notes=notes,
            subtotal=pricing.subtotal,
            platform_fee=pricing.platform_fee,
            tax=pricing.tax,
            total=pricing.total,
            currency=pricing.currency,
            status=BookingRequestStatusEnum.PAYMENT_PENDING,
            stripe_customer_id=stripe_customer_id,
            stripe_setup_intent_id=stripe_setup_intent_id,
        )
        self.session.add(booking)
        await self.session.flush()
        await self.session.refresh(booking, attribute_names=["service", "vendor", "client"])
        return booking

    async def get_by_id(self, booking_id: UUID | str) -> BookingRequest | None:
        parsed_id = parse_uuid(booking_id)
        if parsed_id is None:
            return None
        stmt = _with_projection(select(BookingRequest)).where(BookingRequest.id == parsed_id)
        return await self.session.scalar(stmt.execution_options(populate_existing=True))

    async def get_by_setup_intent_id(self, setup_intent_id: str) -> BookingRequest | None:
        stmt = select(BookingRequest).where(BookingRequest.stripe_setup_intent_id == setup_intent_id)
        return await self.session.scalar(stmt.execution_options(populate_existing=True))

    async def get_by_payment_intent_id(self, payment_intent_id: str) -> BookingRequest | None:
        stmt = select(BookingRequest).where(BookingRequest.stripe_payment_intent_id == payment_intent_id)
        return await self.session.scalar(stmt.execution_options(populate_existing=True))

    async def list_by_client(
        self,
        client_id: UUID,
        status: BookingRequestStatusEnum | None = None,
    ) -> list[BookingRequest]:
        stmt = _with_projection(select(BookingRequest)).where(BookingRequest.client_id == client_id)
        if status is not None:
            stmt = stmt.where(BookingRequest.status == status)
        stmt = stmt.order_by(BookingRequest.created_at.desc())
        return list((await self.session.scalars(stmt)).all())

    async def list_by_vendor(
        self,
        vendor_id: UUID,
        status: BookingRequestStatusEnum | None = None,
    ) -> list[BookingRequest]:
        stmt = _with_projection(select(BookingRequest)).where(BookingRequest.vendor_id == vendor_id)
        if status is not None:
            stmt = stmt.where(BookingRequest.status == status)
        stmt = stmt.order_by(BookingRequest.created_at.desc())
        return list((await self.session.scalars(stmt)).all())

    async def list_all(
        self,
        *,
        status: BookingRequestStatusEnum | None,
        service_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[BookingRequest], int]:
        base_stmt: Select[tuple[BookingRequest]] = select(BookingRequest)
        if status is not None:
            base_stmt = base_stmt.where(BookingRequest.status == status)
        if service_id is not None:
            base_stmt = base_stmt.where(BookingRequest.service_id == service_id)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = (
            _with_projection(base_stmt)
            .order_by(BookingRequest.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def update_by_id(
        self,
        booking_id: UUID | str,
        patch: BookingRequestPatch,
        expected_status: BookingRequestStatusEnum | None = None,
    ) -> BookingRequest | None:
        """Apply the whole patch in one UPDATE.

        With ``expected_status`` the row is only written while it still holds
        that status; None is returned when nothing matched.
        """
        parsed_id = parse_uuid(booking_id)
        if parsed_id is None:
            return None

        values = patch.to_values()
        if not values:
            return await self.get_by_id(parsed_id)

        stmt = update(BookingRequest).where(BookingRequest.id == parsed_id)
        if expected_status is not None:
            stmt = stmt.where(BookingRequest.status == expected_status)
        stmt = stmt.values(**values).returning(BookingRequest.id).execution_options(synchronize_session=False)

        updated_id = await self.session.scalar(stmt)
        if updated_id is None:
            return None
        return await self.get_by_id(updated_id)

    async def has_conflict(
        self,
        service_id: UUID,
        start: datetime,
        end: datetime,
        exclude_booking_id: UUID | None = None,
    ) -> bool:
        stmt = select(BookingRequest.id).where(
            BookingRequest.service_id == service_id,
            BookingRequest.status.in_(sorted(RESERVING_STATUSES)),
            BookingRequest.booking_start < end,
            BookingRequest.booking_end > start,
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(BookingRequest.id != exclude_booking_id)
        return (await self.session.scalar(stmt.limit(1))) is not None

    async def find_existing_pending(
        self,
        client_id: UUID,
        service_id: UUID,
        start: datetime,
        end: datetime,
    ) -> BookingRequest | None:
        stmt = _with_projection(select(BookingRequest)).where(
            BookingRequest.client_id == client_id,
            BookingRequest.service_id == service_id,
            BookingRequest.status == BookingRequestStatusEnum.PAYMENT_PENDING,
            BookingRequest.booking_start == start,
            BookingRequest.booking_end == end,
        )
        return await self.session.scalar(stmt.order_by(BookingRequest.created_at.desc()).limit(1))
