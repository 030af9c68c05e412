"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """System roles."""

    CLIENT = "client"
    VENDOR = "vendor"
    ADMIN = "admin"


class ListingTypeEnum(StrEnum):
    """How a service listing is priced."""

    HOURLY = "hourly"
    FIXED = "fixed"


class ServiceStatusEnum(StrEnum):
    """Service listing visibility status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class BookingRequestStatusEnum(StrEnum):
    """Booking request lifecycle status."""

    PAYMENT_PENDING = "payment_pending"
    PENDING_VENDOR = "pending_vendor"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    ACTION_REQUIRED = "action_required"


class ErrorKindEnum(StrEnum):
    """Failure categories returned by domain operations."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    INVALID_STATE = "invalid_state"
    PAYMENT_METHOD_ERROR = "payment_method_error"
    PAYMENT_FAILURE = "payment_failure"
    INTERNAL = "internal"
