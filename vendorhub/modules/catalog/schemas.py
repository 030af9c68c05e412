"""Service catalog schemas."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from vendorhub.core.enums import ListingTypeEnum


class ServiceSummary(BaseModel):
    """Listing projection embedded in booking responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    listing_title: str
    listing_type: ListingTypeEnum
