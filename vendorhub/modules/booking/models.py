"""Booking request ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Enum as SAEnum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vendorhub.core.database import Base, BaseModelMixin
from vendorhub.core.enums import BookingRequestStatusEnum
from vendorhub.modules.booking.schemas import PricingSnapshot

if TYPE_CHECKING:
    from vendorhub.modules.catalog.models import Service
    from vendorhub.modules.identity.models import User


class BookingRequest(BaseModelMixin, Base):
    """Client request to book a service window, with its payment trail."""

    __tablename__ = "booking_requests"
    __table_args__ = (
        CheckConstraint("booking_end > booking_start", name="booking_window_order"),
        CheckConstraint("total = subtotal + platform_fee + tax", name="pricing_total"),
        Index("ix_booking_requests_conflict", "service_id", "booking_start", "booking_end", "status"),
    )

    service_id: Mapped[UUID] = mapped_column(ForeignKey("services.id", ondelete="RESTRICT"), nullable=False, index=True)
    vendor_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    client_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    booking_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    booking_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    tax: Mapped[int] = mapped_column(Integer, nullable=False)
    total: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[BookingRequestStatusEnum] = mapped_column(
        SAEnum(BookingRequestStatusEnum, name="booking_request_status_enum", native_enum=False),
        default=BookingRequestStatusEnum.PAYMENT_PENDING,
        nullable=False,
        index=True,
    )

    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_setup_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    stripe_payment_method_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    service: Mapped["Service"] = relationship()
    vendor: Mapped["User"] = relationship(foreign_keys=[vendor_id])
    client: Mapped["User"] = relationship(foreign_keys=[client_id])

    @property
    def pricing_snapshot(self) -> PricingSnapshot:
        return PricingSnapshot(
            subtotal=self.subtotal,
            platform_fee=self.platform_fee,
            tax=self.tax,
            total=self.total,
            currency=self.currency,
        )
