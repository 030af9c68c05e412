"""Identity business logic layer."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from vendorhub.core.database import get_db_session
from vendorhub.core.enums import RoleEnum
from vendorhub.core.security import decode_token, oauth2_scheme
from vendorhub.modules.identity.models import User
from vendorhub.modules.identity.repository import IdentityRepository
from vendorhub.shared.exceptions import ForbiddenException


class IdentityService:
    """Identity domain service."""

    def __init__(self, repository: IdentityRepository) -> None:
        self.repository = repository

    async def ensure_default_roles(self) -> None:
        """Ensure all default roles exist."""
        for role_name in (RoleEnum.CLIENT, RoleEnum.VENDOR, RoleEnum.ADMIN):
            role = await self.repository.get_role_by_name(role_name)
            if role is None:
                await self.repository.create_role(role_name)

    async def get_user_from_access_token(self, token: str) -> User:
        """Resolve user from access token."""
        payload = decode_token(token)
        if payload.get("type") != "access":
            raise ForbiddenException("Invalid access token")

        subject = payload.get("sub")
        if not subject:
            raise ForbiddenException("Token subject is missing")

        user = await self.repository.get_user_by_id(subject)
        if user is None:
            raise ForbiddenException("User not found")
        if not user.is_active:
            raise ForbiddenException("User is inactive")

        return user


async def get_identity_service(session: AsyncSession = Depends(get_db_session)) -> IdentityService:
    """Dependency to provide identity service."""
    return IdentityService(IdentityRepository(session))


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    service: IdentityService = Depends(get_identity_service),
) -> User:
    """Resolve currently authenticated user from bearer token."""
    return await service.get_user_from_access_token(token)


def require_roles(*roles: RoleEnum):
    """Dependency factory for role-based access."""

    async def _checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role.name not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Operation not permitted for your role",
            )
        return current_user

    return _checker
