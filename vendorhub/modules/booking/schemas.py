"""Booking request schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator

from vendorhub.core.enums import BookingRequestStatusEnum
from vendorhub.modules.catalog.schemas import ServiceSummary
from vendorhub.modules.identity.schemas import UserSummary

Notes = Annotated[str, StringConstraints(strip_whitespace=True, max_length=1000)]
RejectionReason = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]


class PricingSnapshot(BaseModel):
    """Price captured once when the booking request is created."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    subtotal: int = Field(ge=0)
    platform_fee: int = Field(ge=0)
    tax: int = Field(ge=0)
    total: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)

    @model_validator(mode="after")
    def check_total(self) -> "PricingSnapshot":
        if self.total != self.subtotal + self.platform_fee + self.tax:
            raise ValueError("total must equal subtotal + platform_fee + tax")
        return self


class BillingAddress(BaseModel):
    """Cardholder billing address."""

    line1: str | None = Field(default=None, max_length=200)
    line2: str | None = Field(default=None, max_length=200)
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    postal_code: str | None = Field(default=None, max_length=20)
    country: str | None = Field(default=None, max_length=2)


class BillingDetails(BaseModel):
    """Cardholder details forwarded to the processor customer."""

    name: str = Field(min_length=1, max_length=200)
    address: BillingAddress | None = None


class BookingRequestCreate(BaseModel):
    """Create booking request payload."""

    service_id: str = Field(min_length=1)
    pricing_option_id: str | None = None
    booking_start: datetime
    booking_end: datetime
    notes: Notes = ""
    billing_details: BillingDetails | None = None


class CompletePaymentMethodRequest(BaseModel):
    """Setup intent confirmed by the client."""

    setup_intent_id: str = Field(min_length=1, max_length=255)


class BookingRejectRequest(BaseModel):
    """Vendor rejection payload."""

    rejection_reason: RejectionReason | None = None


class BookingRequestPatch(BaseModel):
    """Mutable fields of a booking request; unset fields are left untouched."""

    model_config = ConfigDict(extra="forbid")

    status: BookingRequestStatusEnum | None = None
    stripe_payment_method_id: str | None = Field(default=None, max_length=255)
    stripe_payment_intent_id: str | None = Field(default=None, max_length=255)
    rejection_reason: RejectionReason | None = None

    def to_values(self) -> dict[str, object]:
        """Column values for the fields explicitly set on this patch."""
        return self.model_dump(exclude_unset=True)


class BookingRequestRead(BaseModel):
    """Booking request response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    service_id: UUID
    vendor_id: UUID
    client_id: UUID
    booking_start: datetime
    booking_end: datetime
    notes: str
    pricing_snapshot: PricingSnapshot
    status: BookingRequestStatusEnum
    stripe_payment_intent_id: str | None
    rejection_reason: str | None
    service: ServiceSummary | None = None
    vendor: UserSummary | None = None
    client: UserSummary | None = None
    created_at: datetime
    updated_at: datetime


class StripeSetup(BaseModel):
    """Client-side data needed to finish card entry."""

    client_secret: str | None


class BookingRequestCreated(BaseModel):
    """Result of a booking request submission."""

    booking_request_id: UUID
    stripe: StripeSetup
    pricing: PricingSnapshot
    replayed: bool = False


class BookingPaymentResult(BaseModel):
    """Booking request state after a charge attempt or payment sync."""

    booking_request: BookingRequestRead
    payment_status: str
    requires_action: bool
    client_secret: str | None = None


class BookingRequestList(BaseModel):
    """Unpaginated list of booking requests."""

    booking_requests: list[BookingRequestRead]
