"""Initial schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 10:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


role_enum = sa.Enum("client", "vendor", "admin", name="role_enum", native_enum=False)
listing_type_enum = sa.Enum("hourly", "fixed", name="listing_type_enum", native_enum=False)
service_status_enum = sa.Enum("active", "inactive", name="service_status_enum", native_enum=False)
booking_request_status_enum = sa.Enum(
    "payment_pending",
    "pending_vendor",
    "accepted",
    "rejected",
    "paid",
    "payment_failed",
    "action_required",
    name="booking_request_status_enum",
    native_enum=False,
)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "roles",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("name", role_enum, nullable=False),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )

    op.create_table(
        "users",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("stripe_customer_id", sa.String(length=255), nullable=True),
        sa.Column("role_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], name="fk_users_role_id_roles", ondelete="RESTRICT"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=False)

    op.create_table(
        "services",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("listing_title", sa.String(length=200), nullable=False),
        sa.Column("listing_type", listing_type_enum, nullable=False),
        sa.Column("price_per_hour", sa.Numeric(10, 2), nullable=True),
        sa.Column("status", service_status_enum, nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["vendor_id"], ["users.id"], name="fk_services_vendor_id_users", ondelete="CASCADE"),
    )
    op.create_index("ix_services_vendor_id", "services", ["vendor_id"], unique=False)
    op.create_index("ix_services_status", "services", ["status"], unique=False)

    op.create_table(
        "pricing_options",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("price_per_session", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_hours", sa.Integer(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["service_id"],
            ["services.id"],
            name="fk_pricing_options_service_id_services",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_pricing_options_service_id", "pricing_options", ["service_id"], unique=False)

    op.create_table(
        "booking_requests",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("booking_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("booking_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("subtotal", sa.Integer(), nullable=False),
        sa.Column("platform_fee", sa.Integer(), nullable=False),
        sa.Column("tax", sa.Integer(), nullable=False),
        sa.Column("total", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", booking_request_status_enum, nullable=False),
        sa.Column("stripe_customer_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_setup_intent_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_payment_method_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("rejection_reason", sa.String(length=500), nullable=True),
        sa.CheckConstraint("booking_end > booking_start", name="ck_booking_requests_booking_window_order"),
        sa.CheckConstraint("total = subtotal + platform_fee + tax", name="ck_booking_requests_pricing_total"),
        sa.ForeignKeyConstraint(
            ["service_id"],
            ["services.id"],
            name="fk_booking_requests_service_id_services",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["vendor_id"],
            ["users.id"],
            name="fk_booking_requests_vendor_id_users",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["client_id"],
            ["users.id"],
            name="fk_booking_requests_client_id_users",
            ondelete="RESTRICT",
        ),
    )
    op.create_index("ix_booking_requests_service_id", "booking_requests", ["service_id"], unique=False)
    op.create_index("ix_booking_requests_vendor_id", "booking_requests", ["vendor_id"], unique=False)
    op.create_index("ix_booking_requests_client_id", "booking_requests", ["client_id"], unique=False)
    op.create_index("ix_booking_requests_status", "booking_requests", ["status"], unique=False)
    op.create_index(
        "ix_booking_requests_stripe_setup_intent_id",
        "booking_requests",
        ["stripe_setup_intent_id"],
        unique=False,
    )
    op.create_index(
        "ix_booking_requests_stripe_payment_intent_id",
        "booking_requests",
        ["stripe_payment_intent_id"],
        unique=False,
    )
    op.create_index(
        "ix_booking_requests_conflict",
        "booking_requests",
        ["service_id", "booking_start", "booking_end", "status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_booking_requests_conflict", table_name="booking_requests")
    op.drop_index("ix_booking_requests_stripe_payment_intent_id", table_name="booking_requests")
    op.drop_index("ix_booking_requests_stripe_setup_intent_id", table_name="booking_requests")
    op.drop_index("ix_booking_requests_status", table_name="booking_requests")
    op.drop_index("ix_booking_requests_client_id", table_name="booking_requests")
    op.drop_index("ix_booking_requests_vendor_id", table_name="booking_requests")
    op.drop_index("ix_booking_requests_service_id", table_name="booking_requests")
    op.drop_table("booking_requests")

    op.drop_index("ix_pricing_options_service_id", table_name="pricing_options")
    op.drop_table("pricing_options")

    op.drop_index("ix_services_status", table_name="services")
    op.drop_index("ix_services_vendor_id", table_name="services")
    op.drop_table("services")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("roles")
