"""Service catalog ORM models."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Enum as SAEnum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vendorhub.core.database import Base, BaseModelMixin
from vendorhub.core.enums import ListingTypeEnum, ServiceStatusEnum

if TYPE_CHECKING:
    from vendorhub.modules.identity.models import User


class Service(BaseModelMixin, Base):
    """Bookable listing owned by a vendor."""

    __tablename__ = "services"

    vendor_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    listing_title: Mapped[str] = mapped_column(String(200), nullable=False)
    listing_type: Mapped[ListingTypeEnum] = mapped_column(
        SAEnum(ListingTypeEnum, name="listing_type_enum", native_enum=False),
        nullable=False,
    )
    price_per_hour: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    status: Mapped[ServiceStatusEnum] = mapped_column(
        SAEnum(ServiceStatusEnum, name="service_status_enum", native_enum=False),
        default=ServiceStatusEnum.ACTIVE,
        nullable=False,
        index=True,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    vendor: Mapped["User"] = relationship()
    pricing_options: Mapped[list["PricingOption"]] = relationship(
        back_populates="service",
        cascade="all, delete-orphan",
        order_by="PricingOption.position",
    )


class PricingOption(BaseModelMixin, Base):
    """Named flat-price session of a fixed listing."""

    __tablename__ = "pricing_options"

    service_id: Mapped[UUID] = mapped_column(ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    price_per_session: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    duration_hours: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    service: Mapped[Service] = relationship(back_populates="pricing_options")
