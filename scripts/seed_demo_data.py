"""Seed idempotent demo data for local/non-production environments."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vendorhub.core.config import get_settings
from vendorhub.core.database import SessionLocal, close_engine
from vendorhub.core.enums import ListingTypeEnum, RoleEnum, ServiceStatusEnum
from vendorhub.core.security import create_access_token
from vendorhub.modules.catalog.models import PricingOption, Service
from vendorhub.modules.identity.models import Role, User

DEMO_ADMIN_EMAIL = "demo-admin@vendorhub.dev"
DEMO_VENDOR_EMAIL = "demo-vendor@vendorhub.dev"
DEMO_CLIENT_EMAIL = "demo-client@vendorhub.dev"

DEMO_HOURLY_TITLE = "Demo Event Photography"
DEMO_HOURLY_PRICE = Decimal("100.00")

DEMO_FIXED_TITLE = "Demo Portrait Session"
DEMO_FIXED_OPTIONS = (
    ("Mini session", Decimal("150.00"), 0, 30),
    ("Full session", Decimal("300.00"), 1, 30),
)


@dataclass(slots=True)
class SeedStats:
    roles_created: int = 0
    users_created: int = 0
    services_created: int = 0
    service_ids: dict[str, str] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)


async def _ensure_roles(session: AsyncSession) -> int:
    created = 0
    for role_name in (RoleEnum.CLIENT, RoleEnum.VENDOR, RoleEnum.ADMIN):
        existing = await session.scalar(select(Role).where(Role.name == role_name))
        if existing is None:
            session.add(Role(name=role_name))
            created += 1
    await session.flush()
    return created


async def _ensure_user(
    session: AsyncSession,
    *,
    email: str,
    role_name: RoleEnum,
    first_name: str,
    last_name: str,
) -> tuple[User, bool]:
    role = await session.scalar(select(Role).where(Role.name == role_name))
    if role is None:
        raise RuntimeError(f"Role {role_name} was not found after ensure_roles")

    user = await session.scalar(
        select(User).options(selectinload(User.role)).where(User.email == email),
    )
    created = False
    if user is None:
        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            is_active=True,
            role_id=role.id,
        )
        session.add(user)
        created = True
    else:
        if user.role_id != role.id:
            user.role_id = role.id
        if not user.is_active:
            user.is_active = True

    await session.flush()
    await session.refresh(user, attribute_names=["role"])
    return user, created


async def _ensure_service(
    session: AsyncSession,
    *,
    vendor: User,
    title: str,
    listing_type: ListingTypeEnum,
    price_per_hour: Decimal | None = None,
    options: tuple[tuple[str, Decimal, int, int], ...] = (),
) -> tuple[Service, bool]:
    service = await session.scalar(
        select(Service).where(Service.vendor_id == vendor.id, Service.listing_title == title),
    )
    if service is not None:
        service.status = ServiceStatusEnum.ACTIVE
        service.is_deleted = False
        await session.flush()
        return service, False

    service = Service(
        vendor_id=vendor.id,
        listing_title=title,
        listing_type=listing_type,
        price_per_hour=price_per_hour,
        status=ServiceStatusEnum.ACTIVE,
        is_deleted=False,
    )
    session.add(service)
    await session.flush()
    for position, (name, price, hours, minutes) in enumerate(options):
        session.add(
            PricingOption(
                service_id=service.id,
                name=name,
                price_per_session=price,
                duration_hours=hours,
                duration_minutes=minutes,
                position=position,
            ),
        )
    await session.flush()
    return service, True


async def _run_seed(*, allow_production: bool) -> SeedStats:
    settings = get_settings()
    app_env = settings.app_env.strip().lower()
    if app_env in {"production", "prod"} and not allow_production:
        raise RuntimeError(
            "Refusing to seed demo data in production. "
            "Re-run with --allow-production only if you are absolutely sure.",
        )

    stats = SeedStats()

    async with SessionLocal() as session:
        try:
            stats.roles_created = await _ensure_roles(session)

            users: dict[str, User] = {}
            for label, email, role_name, first_name in (
                ("admin", DEMO_ADMIN_EMAIL, RoleEnum.ADMIN, "Avery"),
                ("vendor", DEMO_VENDOR_EMAIL, RoleEnum.VENDOR, "Morgan"),
                ("client", DEMO_CLIENT_EMAIL, RoleEnum.CLIENT, "Jordan"),
            ):
                user, created = await _ensure_user(
                    session,
                    email=email,
                    role_name=role_name,
                    first_name=first_name,
                    last_name="Demo",
                )
                users[label] = user
                stats.users_created += int(created)

            hourly, hourly_created = await _ensure_service(
                session,
                vendor=users["vendor"],
                title=DEMO_HOURLY_TITLE,
                listing_type=ListingTypeEnum.HOURLY,
                price_per_hour=DEMO_HOURLY_PRICE,
            )
            fixed, fixed_created = await _ensure_service(
                session,
                vendor=users["vendor"],
                title=DEMO_FIXED_TITLE,
                listing_type=ListingTypeEnum.FIXED,
                options=DEMO_FIXED_OPTIONS,
            )
            stats.services_created = int(hourly_created) + int(fixed_created)
            stats.service_ids = {"hourly": str(hourly.id), "fixed": str(fixed.id)}

            await session.commit()
        except Exception:
            await session.rollback()
            raise

    stats.tokens = {
        label: create_access_token(str(user.id), role=str(user.role.name))
        for label, user in users.items()
    }
    return stats


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Seed idempotent demo data for VendorHub (admin, vendor and client users, "
            "one hourly and one fixed-price service)."
        ),
    )
    parser.add_argument(
        "--allow-production",
        action="store_true",
        help="Allow seeding even when APP_ENV is production/prod.",
    )
    return parser


def _print_summary(stats: SeedStats) -> None:
    print("Demo seed completed.")
    print(f"- Roles created: {stats.roles_created}")
    print(f"- Users created: {stats.users_created}")
    print(f"- Services created: {stats.services_created}")
    for label, service_id in stats.service_ids.items():
        print(f"- {label} service id: {service_id}")
    print("")
    print("Demo access tokens (non-production only):")
    for label, token in stats.tokens.items():
        print(f"- {label}: {token}")


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    try:
        stats = asyncio.run(_run_seed(allow_production=args.allow_production))
    except Exception as exc:
        print(f"Demo seed failed: {exc}")
        return 1
    finally:
        asyncio.run(close_engine())

    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
