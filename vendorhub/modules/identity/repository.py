"""Identity repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vendorhub.core.enums import RoleEnum
from vendorhub.modules.identity.models import Role, User
from vendorhub.shared.utils import parse_uuid


class IdentityRepository:
    """DB operations for identity domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_role_by_name(self, role_name: RoleEnum) -> Role | None:
        stmt = select(Role).where(Role.name == role_name)
        return await self.session.scalar(stmt)

    async def create_role(self, role_name: RoleEnum) -> Role:
        role = Role(name=role_name)
        self.session.add(role)
        await self.session.flush()
        return role

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).options(selectinload(User.role)).where(User.email == email)
        return await self.session.scalar(stmt)

    async def get_user_by_id(self, user_id: UUID | str) -> User | None:
        parsed_id = parse_uuid(user_id)
        if parsed_id is None:
            return None
        stmt = select(User).options(selectinload(User.role)).where(User.id == parsed_id)
        return await self.session.scalar(stmt)

    async def set_stripe_customer_id(self, user_id: UUID, stripe_customer_id: str) -> None:
        stmt = update(User).where(User.id == user_id).values(stripe_customer_id=stripe_customer_id)
        await self.session.execute(stmt)
        await self.session.flush()
