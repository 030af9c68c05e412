"""Identity schemas."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from vendorhub.core.enums import RoleEnum


class UserSummary(BaseModel):
    """Public projection of a user embedded in booking responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: str
    last_name: str


class UserRead(UserSummary):
    """Authenticated user profile."""

    role: RoleEnum
    is_active: bool

    @field_validator("role", mode="before")
    @classmethod
    def unwrap_role(cls, value: object) -> object:
        """Accept the ORM Role row as well as a plain role name."""
        if isinstance(value, (RoleEnum, str)):
            return value
        return getattr(value, "name", value)
