"""initial schema

Revision ID: a0c1e2f3b4d5
Revises:
Create Date: 2026-10-19 09:12:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'a0c1e2f3b4d5'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create users, audit, centers, cars, time slots, bookings, payments and notifications."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("phone", sa.String(32), nullable=True),
            sa.Column("password_hash", sa.String(255), nullable=True),
            sa.Column("role", sa.String(32), nullable=False, server_default="USER"),
            sa.Column("preferred_language", sa.String(8), nullable=False, server_default="fr"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("email_verified_at", sa.DateTime(), nullable=True),
            sa.Column("reset_token", sa.String(128), nullable=True, unique=True),
            sa.Column("reset_token_expiry", sa.DateTime(), nullable=True),
            sa.Column("email_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("sms_notifications", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("reminder_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("marketing_emails", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
        )
        op.create_index("idx_users_role", "users", ["role"])
        op.create_index("idx_users_created_at", "users", ["created_at"])

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        )
        op.create_index("idx_audit_events_created_at", "audit_events", ["created_at"])

    if "inspection_centers" not in existing_tables:
        op.create_table(
            "inspection_centers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("name_ar", sa.String(255), nullable=False),
            sa.Column("name_en", sa.String(255), nullable=False),
            sa.Column("address", sa.Text(), nullable=False),
            sa.Column("address_ar", sa.Text(), nullable=True),
            sa.Column("address_en", sa.Text(), nullable=True),
            sa.Column("city", sa.String(128), nullable=False),
            sa.Column("latitude", sa.Float(), nullable=False),
            sa.Column("longitude", sa.Float(), nullable=False),
            sa.Column("phone", sa.String(32), nullable=True),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("services", JSONType, nullable=True),
            sa.Column("working_hours", JSONType, nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_inspection_centers_name", "inspection_centers", ["name"])
        op.create_index("idx_inspection_centers_city", "inspection_centers", ["city"])

    if "cars" not in existing_tables:
        op.create_table(
            "cars",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("license_plate", sa.String(32), nullable=False, unique=True),
            sa.Column("brand", sa.String(64), nullable=False),
            sa.Column("model", sa.String(64), nullable=False),
            sa.Column("year", sa.Integer(), nullable=False),
            *_timestamps(),
        )
        op.create_index("idx_cars_user_id", "cars", ["user_id"])

    if "time_slots" not in existing_tables:
        op.create_table(
            "time_slots",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "center_id",
                sa.Integer(),
                sa.ForeignKey("inspection_centers.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("start_time", sa.String(5), nullable=False),
            sa.Column("end_time", sa.String(5), nullable=False),
            sa.Column("capacity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("booked_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("price", sa.Numeric(10, 2), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint("center_id", "date", "start_time", name="uq_time_slots_center_date_start"),
            sa.CheckConstraint("capacity >= 1", name="ck_time_slots_capacity"),
            sa.CheckConstraint("booked_count >= 0", name="ck_time_slots_booked_count"),
        )
        op.create_index("idx_time_slots_date", "time_slots", ["date"])

    if "bookings" not in existing_tables:
        op.create_table(
            "bookings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("booking_number", sa.String(32), nullable=False, unique=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("car_id", sa.Integer(), sa.ForeignKey("cars.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "center_id",
                sa.Integer(),
                sa.ForeignKey("inspection_centers.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("time_slot_id", sa.Integer(), sa.ForeignKey("time_slots.id", ondelete="CASCADE"), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
            sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_bookings_user_id", "bookings", ["user_id"])
        op.create_index("idx_bookings_status", "bookings", ["status"])
        op.create_index("idx_bookings_time_slot_id", "bookings", ["time_slot_id"])
        op.create_index("idx_bookings_created_at", "bookings", ["created_at"])

    if "payments" not in existing_tables:
        op.create_table(
            "payments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "booking_id",
                sa.Integer(),
                sa.ForeignKey("bookings.id", ondelete="CASCADE"),
                nullable=False,
                unique=True,
            ),
            sa.Column("amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("currency", sa.String(8), nullable=False, server_default="MAD"),
            sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
            sa.Column("payment_method", sa.String(32), nullable=True),
            sa.Column("transaction_id", sa.String(128), nullable=True),
            sa.Column("cmi_order_id", sa.String(128), nullable=True, unique=True),
            sa.Column("cmi_response_code", sa.String(32), nullable=True),
            sa.Column("cmi_response_message", sa.Text(), nullable=True),
            sa.Column("payment_date", sa.DateTime(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_payments_status", "payments", ["status"])
        op.create_index("idx_payments_created_at", "payments", ["created_at"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
            sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True),
            sa.Column("type", sa.String(32), nullable=False),
            sa.Column("channel", sa.String(8), nullable=False),
            sa.Column("recipient", sa.String(320), nullable=False),
            sa.Column("subject", sa.String(255), nullable=True),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("status", sa.String(16), nullable=False),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("sent_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_notifications_user_id", "notifications", ["user_id"])
        op.create_index("idx_notifications_type", "notifications", ["type"])


def downgrade() -> None:
    """Drop every table, children first."""
    op.drop_index("idx_notifications_type", table_name="notifications")
    op.drop_index("idx_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("idx_payments_created_at", table_name="payments")
    op.drop_index("idx_payments_status", table_name="payments")
    op.drop_table("payments")

    op.drop_index("idx_bookings_created_at", table_name="bookings")
    op.drop_index("idx_bookings_time_slot_id", table_name="bookings")
    op.drop_index("idx_bookings_status", table_name="bookings")
    op.drop_index("idx_bookings_user_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("idx_time_slots_date", table_name="time_slots")
    op.drop_table("time_slots")

    op.drop_index("idx_cars_user_id", table_name="cars")
    op.drop_table("cars")

    op.drop_index("idx_inspection_centers_city", table_name="inspection_centers")
    op.drop_index("idx_inspection_centers_name", table_name="inspection_centers")
    op.drop_table("inspection_centers")

    op.drop_index("idx_audit_events_created_at", table_name="audit_events")
    op.drop_table("audit_events")

    op.drop_index("idx_users_created_at", table_name="users")
    op.drop_index("idx_users_role", table_name="users")
    op.drop_table("users")
