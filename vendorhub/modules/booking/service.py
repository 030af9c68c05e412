"""Booking request business logic layer.

Drives the booking request state machine::

    payment_pending -> pending_vendor -> paid | action_required | payment_failed
                                      -> rejected

Public operations return a ServiceOutcome instead of raising; domain rules
are expressed internally as AppException subclasses and converted at the
operation boundary.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta
from typing import Any, TypeVar
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from vendorhub.core.config import get_settings
from vendorhub.core.database import get_db_session
from vendorhub.core.enums import BookingRequestStatusEnum, ListingTypeEnum, RoleEnum, ServiceStatusEnum
from vendorhub.core.metrics import record_booking_transition
from vendorhub.modules.booking.conflicts import BookingConflictDetector
from vendorhub.modules.booking.models import BookingRequest
from vendorhub.modules.booking.pricing import compute_fixed_price, compute_hourly_price
from vendorhub.modules.booking.repository import BookingRequestRepository
from vendorhub.modules.booking.schemas import (
    BillingDetails,
    BookingPaymentResult,
    BookingRequestCreate,
    BookingRequestCreated,
    BookingRequestPatch,
    BookingRequestRead,
    PricingSnapshot,
    StripeSetup,
)
from vendorhub.modules.catalog.models import Service
from vendorhub.modules.catalog.repository import CatalogRepository
from vendorhub.modules.identity.models import User
from vendorhub.modules.identity.repository import IdentityRepository
from vendorhub.modules.payments.gateway import (
    AuthenticationRequiredError,
    CustomerRef,
    PaymentGateway,
    PaymentGatewayError,
    get_payment_gateway,
)
from vendorhub.shared.exceptions import (
    AppException,
    ConflictException,
    ForbiddenException,
    InternalException,
    InvalidStateException,
    NotFoundException,
    PaymentFailureException,
    PaymentMethodException,
    ValidationException,
)
from vendorhub.shared.outcome import ServiceOutcome
from vendorhub.shared.utils import ensure_utc, parse_uuid, utc_now

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")

REJECTION_REASON_MAX_LENGTH = 500
SYNCABLE_STATUSES = frozenset(
    {BookingRequestStatusEnum.ACTION_REQUIRED, BookingRequestStatusEnum.PAYMENT_FAILED},
)


def validate_booking_window(
    start: datetime,
    end: datetime,
    now: datetime,
    min_days_ahead: int,
    max_days_ahead: int,
) -> list[str]:
    """Return every rule the requested window breaks (empty when valid).

    Advance limits work on whole UTC days: the earliest start is midnight
    ``min_days_ahead`` days from now, the latest is the last instant of the day
    ``max_days_ahead`` days from now.
    """
    errors: list[str] = []
    if end <= start:
        errors.append("Booking end time must be after start time")
    if start <= now:
        errors.append("Booking must be scheduled for a future date")

    earliest = datetime.combine((now + timedelta(days=min_days_ahead)).date(), time.min, tzinfo=now.tzinfo)
    if start < earliest:
        errors.append(f"Booking must be at least {min_days_ahead} day(s) in advance")

    latest = datetime.combine((now + timedelta(days=max_days_ahead)).date(), time.max, tzinfo=now.tzinfo)
    if start > latest:
        errors.append(f"Booking cannot be more than {max_days_ahead} days in advance")
    return errors


def map_payment_intent_status(intent_status: str) -> BookingRequestStatusEnum:
    """Booking status for a PaymentIntent status after a charge attempt."""
    if intent_status == "succeeded":
        return BookingRequestStatusEnum.PAID
    if intent_status == "requires_action":
        return BookingRequestStatusEnum.ACTION_REQUIRED
    return BookingRequestStatusEnum.PAYMENT_FAILED


class BookingRequestService:
    """Booking request orchestration: create, pay, accept, reject."""

    def __init__(
        self,
        booking_repository: BookingRequestRepository,
        catalog_repository: CatalogRepository,
        identity_repository: IdentityRepository,
        payment_gateway: PaymentGateway,
        conflict_detector: BookingConflictDetector | None = None,
    ) -> None:
        self.booking_repository = booking_repository
        self.catalog_repository = catalog_repository
        self.identity_repository = identity_repository
        self.payment_gateway = payment_gateway
        self.conflict_detector = conflict_detector or BookingConflictDetector(booking_repository)

    async def _run(
        self,
        operation: str,
        func: Callable[..., Awaitable[ServiceOutcome[T]]],
        *args: Any,
    ) -> ServiceOutcome[T]:
        try:
            return await func(*args)
        except AppException as exc:
            logger.info("%s refused: %s %s", operation, exc.error_key, exc.message)
            return ServiceOutcome.from_exception(exc)
        except Exception:
            logger.exception("%s failed unexpectedly", operation)
            return ServiceOutcome.from_exception(InternalException())

    async def _get_booking(self, booking_id: UUID | str) -> BookingRequest:
        booking = await self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(error_key="BOOKING_REQUEST_NOT_FOUND")
        return booking

    @staticmethod
    def _ensure_party(owner_id: UUID, actor_id: UUID | str) -> None:
        if parse_uuid(actor_id) != owner_id:
            raise ForbiddenException()

    @staticmethod
    def _ensure_status(booking: BookingRequest, expected: BookingRequestStatusEnum) -> None:
        if booking.status != expected:
            raise InvalidStateException(data={"current_status": str(booking.status)})

    async def _transition(
        self,
        booking: BookingRequest,
        patch: BookingRequestPatch,
        expected_status: BookingRequestStatusEnum,
        source: str,
    ) -> BookingRequest:
        updated = await self.booking_repository.update_by_id(booking.id, patch, expected_status=expected_status)
        if updated is None:
            current = await self.booking_repository.get_by_id(booking.id)
            raise InvalidStateException(
                data={"current_status": str(current.status) if current is not None else None},
            )
        if patch.status is not None and patch.status != expected_status:
            record_booking_transition(str(expected_status), str(patch.status), source)
            logger.info(
                "Booking request %s moved %s -> %s (%s)",
                booking.id,
                expected_status,
                patch.status,
                source,
            )
        return updated

    def _price(
        self,
        service: Service,
        pricing_option_id: str | None,
        start: datetime,
        end: datetime,
    ) -> PricingSnapshot:
        rates = {
            "platform_fee_rate": settings.platform_fee_rate,
            "tax_rate": settings.tax_rate,
            "currency": settings.default_currency,
        }
        if service.listing_type == ListingTypeEnum.HOURLY:
            if not service.price_per_hour or service.price_per_hour <= 0:
                raise ValidationException(error_key="INVALID_SERVICE_PRICING")
            return compute_hourly_price(service.price_per_hour, start, end, **rates)

        if service.listing_type == ListingTypeEnum.FIXED:
            options = list(service.pricing_options or [])
            if not options:
                raise ValidationException(error_key="INVALID_SERVICE_PRICING")
            if pricing_option_id:
                wanted = parse_uuid(pricing_option_id.strip())
                selected = next((option for option in options if option.id == wanted), None)
            else:
                selected = options[0]
            if selected is None or selected.price_per_session is None or selected.price_per_session < 0:
                raise ValidationException(error_key="INVALID_PRICING_OPTION")
            return compute_fixed_price(selected.price_per_session, **rates)

        raise ValidationException(error_key="INVALID_SERVICE_TYPE")

    async def _ensure_customer(self, client: User, billing_details: BillingDetails | None) -> CustomerRef:
        """Reuse the client's processor customer, creating and storing one if needed."""
        if client.stripe_customer_id:
            customer = await self.payment_gateway.retrieve_customer(client.stripe_customer_id)
            if customer is not None:
                return customer
            logger.warning(
                "Stored Stripe customer %s for user %s is gone, creating a new one",
                client.stripe_customer_id,
                client.id,
            )

        name = billing_details.name if billing_details is not None else (client.full_name or client.email)
        address = None
        if billing_details is not None and billing_details.address is not None:
            address = billing_details.address.model_dump()
        customer = await self.payment_gateway.create_or_retrieve_customer(
            email=client.email,
            name=name,
            metadata={"user_id": str(client.id), "user_role": str(RoleEnum.CLIENT)},
            address=address,
        )
        if customer.id != client.stripe_customer_id:
            await self.identity_repository.set_stripe_customer_id(client.id, customer.id)
        return customer

    async def create_booking_request(
        self,
        client_id: UUID | str,
        payload: BookingRequestCreate,
    ) -> ServiceOutcome[BookingRequestCreated]:
        """Validate, price and persist a booking request awaiting card setup."""
        return await self._run("create_booking_request", self._create_booking_request, client_id, payload)

    async def _create_booking_request(
        self,
        client_id: UUID | str,
        payload: BookingRequestCreate,
    ) -> ServiceOutcome[BookingRequestCreated]:
        service = await self.catalog_repository.get_service_by_id(payload.service_id)
        if service is None:
            raise NotFoundException(error_key="SERVICE_NOT_FOUND")
        if service.status != ServiceStatusEnum.ACTIVE or service.is_deleted:
            raise ValidationException(error_key="SERVICE_NOT_AVAILABLE")

        start = ensure_utc(payload.booking_start)
        end = ensure_utc(payload.booking_end)
        errors = validate_booking_window(
            start,
            end,
            utc_now(),
            settings.booking_min_days_ahead,
            settings.booking_max_days_ahead,
        )
        if errors:
            raise ValidationException(error_key="INVALID_BOOKING_TIME", data={"errors": errors})

        client = await self.identity_repository.get_user_by_id(client_id)
        if client is None:
            raise NotFoundException(error_key="CLIENT_NOT_FOUND")

        existing = await self.booking_repository.find_existing_pending(client.id, service.id, start, end)
        if existing is not None and existing.stripe_setup_intent_id:
            return await self._replay_pending(existing)

        if await self.conflict_detector.has_conflict(service.id, start, end, stage="create"):
            raise ConflictException()

        pricing = self._price(service, payload.pricing_option_id, start, end)

        try:
            customer = await self._ensure_customer(client, payload.billing_details)
            setup_intent = await self.payment_gateway.create_setup_intent(
                customer_id=customer.id,
                metadata={
                    "service_id": str(service.id),
                    "client_id": str(client.id),
                    "vendor_id": str(service.vendor_id),
                },
            )
        except PaymentGatewayError as exc:
            raise InternalException(exc.message, error_key=exc.error_key) from exc

        booking = await self.booking_repository.create(
            service_id=service.id,
            vendor_id=service.vendor_id,
            client_id=client.id,
            booking_start=start,
            booking_end=end,
            notes=payload.notes,
            pricing=pricing,
            stripe_customer_id=customer.id,
            stripe_setup_intent_id=setup_intent.id,
        )
        record_booking_transition("new", str(BookingRequestStatusEnum.PAYMENT_PENDING), "client")
        logger.info(
            "Booking request %s created for service %s, total %s %s",
            booking.id,
            service.id,
            pricing.total,
            pricing.currency,
        )
        return ServiceOutcome.ok(
            BookingRequestCreated(
                booking_request_id=booking.id,
                stripe=StripeSetup(client_secret=setup_intent.client_secret),
                pricing=pricing,
            ),
            status_code=201,
        )

    async def _replay_pending(self, booking: BookingRequest) -> ServiceOutcome[BookingRequestCreated]:
        """Same client resubmitting the same window gets the pending request back."""
        try:
            setup_intent = await self.payment_gateway.retrieve_setup_intent(booking.stripe_setup_intent_id)
        except PaymentGatewayError as exc:
            raise InternalException(exc.message, error_key=exc.error_key) from exc
        logger.info("Booking request %s replayed for duplicate submission", booking.id)
        return ServiceOutcome.ok(
            BookingRequestCreated(
                booking_request_id=booking.id,
                stripe=StripeSetup(client_secret=setup_intent.client_secret),
                pricing=booking.pricing_snapshot,
                replayed=True,
            ),
        )

    async def complete_payment_method(
        self,
        booking_id: UUID | str,
        client_id: UUID | str,
        setup_intent_id: str,
    ) -> ServiceOutcome[BookingRequestRead]:
        """Store the saved card once the client finished the SetupIntent."""
        return await self._run(
            "complete_payment_method",
            self._complete_payment_method,
            booking_id,
            client_id,
            setup_intent_id,
        )

    async def _complete_payment_method(
        self,
        booking_id: UUID | str,
        client_id: UUID | str,
        setup_intent_id: str,
    ) -> ServiceOutcome[BookingRequestRead]:
        booking = await self._get_booking(booking_id)
        self._ensure_party(booking.client_id, client_id)

        if setup_intent_id != booking.stripe_setup_intent_id:
            raise PaymentMethodException(error_key="INVALID_SETUP_INTENT")

        # The webhook may have stored the card first.
        if booking.status == BookingRequestStatusEnum.PENDING_VENDOR and booking.stripe_payment_method_id:
            return ServiceOutcome.ok(BookingRequestRead.model_validate(booking))
        self._ensure_status(booking, BookingRequestStatusEnum.PAYMENT_PENDING)

        try:
            setup_intent = await self.payment_gateway.retrieve_setup_intent(setup_intent_id)
        except PaymentGatewayError as exc:
            raise PaymentMethodException(exc.message, error_key="INVALID_SETUP_INTENT") from exc

        if setup_intent.id != booking.stripe_setup_intent_id:
            raise PaymentMethodException(error_key="INVALID_SETUP_INTENT")
        if setup_intent.status != "succeeded":
            raise PaymentMethodException(
                error_key="SETUP_INTENT_NOT_COMPLETED",
                data={"status": setup_intent.status},
            )
        if not setup_intent.payment_method_id:
            raise PaymentMethodException(error_key="PAYMENT_METHOD_NOT_FOUND")

        updated = await self._transition(
            booking,
            BookingRequestPatch(
                status=BookingRequestStatusEnum.PENDING_VENDOR,
                stripe_payment_method_id=setup_intent.payment_method_id,
            ),
            expected_status=BookingRequestStatusEnum.PAYMENT_PENDING,
            source="client",
        )
        return ServiceOutcome.ok(BookingRequestRead.model_validate(updated))

    async def accept_booking_request(
        self,
        booking_id: UUID | str,
        vendor_id: UUID | str,
    ) -> ServiceOutcome[BookingPaymentResult]:
        """Vendor accepts: re-check availability, then charge the saved card."""
        return await self._run("accept_booking_request", self._accept_booking_request, booking_id, vendor_id)

    async def _accept_booking_request(
        self,
        booking_id: UUID | str,
        vendor_id: UUID | str,
    ) -> ServiceOutcome[BookingPaymentResult]:
        booking = await self._get_booking(booking_id)
        self._ensure_party(booking.vendor_id, vendor_id)
        self._ensure_status(booking, BookingRequestStatusEnum.PENDING_VENDOR)

        if await self.conflict_detector.has_conflict(
            booking.service_id,
            booking.booking_start,
            booking.booking_end,
            exclude_booking_id=booking.id,
            stage="accept",
        ):
            raise ConflictException()

        if not booking.stripe_payment_method_id or not booking.stripe_customer_id:
            raise PaymentMethodException(error_key="PAYMENT_METHOD_NOT_FOUND")

        # Claim before charging; a concurrent reject then fails its status guard.
        booking = await self._transition(
            booking,
            BookingRequestPatch(status=BookingRequestStatusEnum.ACCEPTED),
            expected_status=BookingRequestStatusEnum.PENDING_VENDOR,
            source="vendor",
        )

        try:
            intent = await self.payment_gateway.create_payment_intent(
                amount=booking.total,
                currency=booking.currency,
                customer_id=booking.stripe_customer_id,
                payment_method_id=booking.stripe_payment_method_id,
                metadata={
                    "booking_request_id": str(booking.id),
                    "service_id": str(booking.service_id),
                    "client_id": str(booking.client_id),
                    "vendor_id": str(booking.vendor_id),
                },
                confirm=True,
                idempotency_key=f"booking-request-{booking.id}-charge",
            )
        except PaymentGatewayError as exc:
            await self._mark_charge_failed(booking, exc)
            raise PaymentFailureException(exc.message, error_key=exc.error_key) from exc

        updated = await self._transition(
            booking,
            BookingRequestPatch(
                status=map_payment_intent_status(intent.status),
                stripe_payment_intent_id=intent.id,
            ),
            expected_status=BookingRequestStatusEnum.ACCEPTED,
            source="vendor",
        )
        requires_action = intent.status == "requires_action"
        return ServiceOutcome.ok(
            BookingPaymentResult(
                booking_request=BookingRequestRead.model_validate(updated),
                payment_status=intent.status,
                requires_action=requires_action,
                client_secret=intent.client_secret if requires_action else None,
            ),
        )

    async def _mark_charge_failed(self, booking: BookingRequest, exc: PaymentGatewayError) -> None:
        """Move a claimed booking to payment_failed after the charge was refused."""
        patch = BookingRequestPatch(status=BookingRequestStatusEnum.PAYMENT_FAILED)
        if isinstance(exc, AuthenticationRequiredError) and exc.payment_intent_id:
            patch = BookingRequestPatch(
                status=BookingRequestStatusEnum.PAYMENT_FAILED,
                stripe_payment_intent_id=exc.payment_intent_id,
            )
        updated = await self.booking_repository.update_by_id(
            booking.id,
            patch,
            expected_status=BookingRequestStatusEnum.ACCEPTED,
        )
        if updated is None:
            logger.warning("Booking request %s changed status during a failed charge", booking.id)
            return
        record_booking_transition(
            str(BookingRequestStatusEnum.ACCEPTED),
            str(BookingRequestStatusEnum.PAYMENT_FAILED),
            "vendor",
        )
        logger.warning("Charge for booking request %s failed: %s", booking.id, exc.error_key)

    async def reject_booking_request(
        self,
        booking_id: UUID | str,
        vendor_id: UUID | str,
        rejection_reason: str | None = None,
    ) -> ServiceOutcome[BookingRequestRead]:
        """Vendor declines the request; no processor interaction."""
        return await self._run(
            "reject_booking_request",
            self._reject_booking_request,
            booking_id,
            vendor_id,
            rejection_reason,
        )

    async def _reject_booking_request(
        self,
        booking_id: UUID | str,
        vendor_id: UUID | str,
        rejection_reason: str | None,
    ) -> ServiceOutcome[BookingRequestRead]:
        booking = await self._get_booking(booking_id)
        self._ensure_party(booking.vendor_id, vendor_id)
        self._ensure_status(booking, BookingRequestStatusEnum.PENDING_VENDOR)

        reason = (rejection_reason or "").strip()
        if len(reason) > REJECTION_REASON_MAX_LENGTH:
            raise ValidationException(
                f"Rejection reason cannot exceed {REJECTION_REASON_MAX_LENGTH} characters",
            )

        updated = await self._transition(
            booking,
            BookingRequestPatch(status=BookingRequestStatusEnum.REJECTED, rejection_reason=reason),
            expected_status=BookingRequestStatusEnum.PENDING_VENDOR,
            source="vendor",
        )
        return ServiceOutcome.ok(BookingRequestRead.model_validate(updated))

    async def sync_payment_status(
        self,
        booking_id: UUID | str,
        requester_id: UUID | str,
    ) -> ServiceOutcome[BookingPaymentResult]:
        """Re-read the charge after the cardholder completed authentication."""
        return await self._run("sync_payment_status", self._sync_payment_status, booking_id, requester_id)

    async def _sync_payment_status(
        self,
        booking_id: UUID | str,
        requester_id: UUID | str,
    ) -> ServiceOutcome[BookingPaymentResult]:
        booking = await self._get_booking(booking_id)
        if parse_uuid(requester_id) not in (booking.client_id, booking.vendor_id):
            raise ForbiddenException()
        if booking.status not in SYNCABLE_STATUSES:
            raise InvalidStateException(data={"current_status": str(booking.status)})
        if not booking.stripe_payment_intent_id:
            raise InvalidStateException(error_key="PAYMENT_INTENT_NOT_FOUND")

        try:
            intent = await self.payment_gateway.retrieve_payment_intent(booking.stripe_payment_intent_id)
            if intent.status == "requires_confirmation":
                intent = await self.payment_gateway.confirm_payment_intent(intent.id)
        except PaymentGatewayError as exc:
            raise PaymentFailureException(exc.message, error_key=exc.error_key) from exc

        new_status = map_payment_intent_status(intent.status)
        updated = booking
        if new_status != booking.status:
            updated = await self._transition(
                booking,
                BookingRequestPatch(status=new_status),
                expected_status=booking.status,
                source="sync",
            )
        requires_action = intent.status == "requires_action"
        return ServiceOutcome.ok(
            BookingPaymentResult(
                booking_request=BookingRequestRead.model_validate(updated),
                payment_status=intent.status,
                requires_action=requires_action,
                client_secret=intent.client_secret if requires_action else None,
            ),
        )

    async def get_booking_request(
        self,
        booking_id: UUID | str,
        requester_id: UUID | str,
        requester_role: RoleEnum | str,
    ) -> ServiceOutcome[BookingRequestRead]:
        """Visible to the booking's client, its vendor and admins."""
        return await self._run(
            "get_booking_request",
            self._get_booking_request,
            booking_id,
            requester_id,
            requester_role,
        )

    async def _get_booking_request(
        self,
        booking_id: UUID | str,
        requester_id: UUID | str,
        requester_role: RoleEnum | str,
    ) -> ServiceOutcome[BookingRequestRead]:
        booking = await self._get_booking(booking_id)
        is_party = parse_uuid(requester_id) in (booking.client_id, booking.vendor_id)
        if not is_party and requester_role != RoleEnum.ADMIN:
            raise ForbiddenException()
        return ServiceOutcome.ok(BookingRequestRead.model_validate(booking))

    async def list_client_booking_requests(
        self,
        client_id: UUID,
        status: BookingRequestStatusEnum | None = None,
    ) -> ServiceOutcome[list[BookingRequestRead]]:
        return await self._run("list_client_booking_requests", self._list_for_party, "client", client_id, status)

    async def list_vendor_booking_requests(
        self,
        vendor_id: UUID,
        status: BookingRequestStatusEnum | None = None,
    ) -> ServiceOutcome[list[BookingRequestRead]]:
        return await self._run("list_vendor_booking_requests", self._list_for_party, "vendor", vendor_id, status)

    async def _list_for_party(
        self,
        party: str,
        party_id: UUID,
        status: BookingRequestStatusEnum | None,
    ) -> ServiceOutcome[list[BookingRequestRead]]:
        if party == "client":
            items = await self.booking_repository.list_by_client(party_id, status)
        else:
            items = await self.booking_repository.list_by_vendor(party_id, status)
        return ServiceOutcome.ok([BookingRequestRead.model_validate(item) for item in items])

    async def list_booking_requests(
        self,
        actor: User,
        status: BookingRequestStatusEnum | None,
        service_id: UUID | None,
        limit: int,
        offset: int,
    ) -> ServiceOutcome[tuple[list[BookingRequestRead], int]]:
        """Admin listing with filters and pagination."""
        return await self._run(
            "list_booking_requests",
            self._list_booking_requests,
            actor,
            status,
            service_id,
            limit,
            offset,
        )

    async def _list_booking_requests(
        self,
        actor: User,
        status: BookingRequestStatusEnum | None,
        service_id: UUID | None,
        limit: int,
        offset: int,
    ) -> ServiceOutcome[tuple[list[BookingRequestRead], int]]:
        if actor.role.name != RoleEnum.ADMIN:
            raise ForbiddenException("Only admin can list all booking requests")
        items, total = await self.booking_repository.list_all(
            status=status,
            service_id=service_id,
            limit=limit,
            offset=offset,
        )
        return ServiceOutcome.ok(([BookingRequestRead.model_validate(item) for item in items], total))


async def get_booking_request_service(
    session: AsyncSession = Depends(get_db_session),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
) -> BookingRequestService:
    """Dependency provider for booking request service."""
    booking_repository = BookingRequestRepository(session)
    return BookingRequestService(
        booking_repository=booking_repository,
        catalog_repository=CatalogRepository(session),
        identity_repository=IdentityRepository(session),
        payment_gateway=payment_gateway,
        conflict_detector=BookingConflictDetector(booking_repository),
    )
