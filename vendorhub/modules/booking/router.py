"""Booking request API router."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from vendorhub.core.enums import BookingRequestStatusEnum, RoleEnum
from vendorhub.modules.booking.schemas import (
    BookingPaymentResult,
    BookingRejectRequest,
    BookingRequestCreate,
    BookingRequestCreated,
    BookingRequestList,
    BookingRequestRead,
    CompletePaymentMethodRequest,
)
from vendorhub.modules.booking.service import BookingRequestService, get_booking_request_service
from vendorhub.modules.identity.models import User
from vendorhub.modules.identity.service import get_current_user, require_roles
from vendorhub.shared.outcome import ServiceOutcome
from vendorhub.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/booking-requests", tags=["booking-requests"])


def _render(outcome: ServiceOutcome[Any], response: Response) -> Any:
    if not outcome.success:
        return outcome.error_response()
    response.status_code = outcome.status_code
    return outcome.value


@router.post("", response_model=BookingRequestCreated, status_code=status.HTTP_201_CREATED)
async def create_booking_request(
    payload: BookingRequestCreate,
    response: Response,
    service: BookingRequestService = Depends(get_booking_request_service),
    current_user: User = Depends(require_roles(RoleEnum.CLIENT)),
) -> Any:
    """Submit a booking request and start card setup."""
    outcome = await service.create_booking_request(current_user.id, payload)
    return _render(outcome, response)


@router.get("/client/my-bookings", response_model=BookingRequestList)
async def list_client_booking_requests(
    status_filter: BookingRequestStatusEnum | None = Query(default=None, alias="status"),
    service: BookingRequestService = Depends(get_booking_request_service),
    current_user: User = Depends(require_roles(RoleEnum.CLIENT)),
) -> Any:
    """List booking requests made by the current client."""
    outcome = await service.list_client_booking_requests(current_user.id, status_filter)
    if not outcome.success:
        return outcome.error_response()
    return BookingRequestList(booking_requests=outcome.value)


@router.get("/vendor/my-bookings", response_model=BookingRequestList)
async def list_vendor_booking_requests(
    status_filter: BookingRequestStatusEnum | None = Query(default=None, alias="status"),
    service: BookingRequestService = Depends(get_booking_request_service),
    current_user: User = Depends(require_roles(RoleEnum.VENDOR)),
) -> Any:
    """List booking requests received by the current vendor."""
    outcome = await service.list_vendor_booking_requests(current_user.id, status_filter)
    if not outcome.success:
        return outcome.error_response()
    return BookingRequestList(booking_requests=outcome.value)


@router.get("", response_model=Page[BookingRequestRead])
async def list_booking_requests(
    status_filter: BookingRequestStatusEnum | None = Query(default=None, alias="status"),
    service_id: UUID | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: BookingRequestService = Depends(get_booking_request_service),
    current_user: User = Depends(get_current_user),
) -> Any:
    """List all booking requests (admin only)."""
    outcome = await service.list_booking_requests(
        actor=current_user,
        status=status_filter,
        service_id=service_id,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    if not outcome.success:
        return outcome.error_response()
    items, total = outcome.value
    return build_page(items, total, pagination)


@router.get("/{booking_id}", response_model=BookingRequestRead)
async def get_booking_request(
    booking_id: str,
    response: Response,
    service: BookingRequestService = Depends(get_booking_request_service),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Read one booking request as its client, vendor or an admin."""
    outcome = await service.get_booking_request(booking_id, current_user.id, current_user.role.name)
    return _render(outcome, response)


@router.post("/{booking_id}/complete-payment-method", response_model=BookingRequestRead)
async def complete_payment_method(
    booking_id: str,
    payload: CompletePaymentMethodRequest,
    response: Response,
    service: BookingRequestService = Depends(get_booking_request_service),
    current_user: User = Depends(require_roles(RoleEnum.CLIENT)),
) -> Any:
    """Attach the card saved through the setup intent."""
    outcome = await service.complete_payment_method(booking_id, current_user.id, payload.setup_intent_id)
    return _render(outcome, response)


@router.post("/{booking_id}/accept", response_model=BookingPaymentResult)
async def accept_booking_request(
    booking_id: str,
    response: Response,
    service: BookingRequestService = Depends(get_booking_request_service),
    current_user: User = Depends(require_roles(RoleEnum.VENDOR)),
) -> Any:
    """Accept the request and charge the client's saved card."""
    outcome = await service.accept_booking_request(booking_id, current_user.id)
    return _render(outcome, response)


@router.post("/{booking_id}/reject", response_model=BookingRequestRead)
async def reject_booking_request(
    booking_id: str,
    payload: BookingRejectRequest,
    response: Response,
    service: BookingRequestService = Depends(get_booking_request_service),
    current_user: User = Depends(require_roles(RoleEnum.VENDOR)),
) -> Any:
    """Decline the request with an optional reason."""
    outcome = await service.reject_booking_request(booking_id, current_user.id, payload.rejection_reason)
    return _render(outcome, response)


@router.post("/{booking_id}/sync-payment", response_model=BookingPaymentResult)
async def sync_payment_status(
    booking_id: str,
    response: Response,
    service: BookingRequestService = Depends(get_booking_request_service),
    current_user: User = Depends(require_roles(RoleEnum.CLIENT, RoleEnum.VENDOR)),
) -> Any:
    """Refresh the charge status after cardholder authentication."""
    outcome = await service.sync_payment_status(booking_id, current_user.id)
    return _render(outcome, response)
