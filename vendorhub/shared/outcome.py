"""Structured result of a domain operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from fastapi.responses import JSONResponse

from vendorhub.core.enums import ErrorKindEnum
from vendorhub.shared.exceptions import AppException, error_body

T = TypeVar("T")


@dataclass(slots=True)
class ServiceOutcome(Generic[T]):
    """Success flag, HTTP status and either a value or an error description."""

    success: bool
    status_code: int
    value: T | None = None
    error_kind: ErrorKindEnum | None = None
    error_key: str | None = None
    message: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def ok(cls, value: T, status_code: int = 200) -> "ServiceOutcome[T]":
        return cls(success=True, status_code=status_code, value=value)

    @classmethod
    def from_exception(cls, exc: AppException) -> "ServiceOutcome[T]":
        return cls(
            success=False,
            status_code=exc.status_code,
            error_kind=exc.code,
            error_key=exc.error_key,
            message=exc.message,
            data=exc.data,
        )

    def error_response(self) -> JSONResponse:
        """Render a failed outcome with the same envelope as exception handlers."""
        return JSONResponse(
            status_code=self.status_code,
            content=error_body(
                str(self.error_kind or ErrorKindEnum.INTERNAL),
                self.message or "Request failed",
                self.error_key,
                self.data,
            ),
        )
