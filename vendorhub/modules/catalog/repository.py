"""Service catalog repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vendorhub.modules.catalog.models import Service
from vendorhub.shared.utils import parse_uuid


class CatalogRepository:
    """Read access to service listings."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_service_by_id(self, service_id: UUID | str) -> Service | None:
        parsed_id = parse_uuid(service_id)
        if parsed_id is None:
            return None
        stmt = (
            select(Service)
            .options(selectinload(Service.pricing_options))
            .where(Service.id == parsed_id)
        )
        return await self.session.scalar(stmt)
