"""Create notification pipeline tables

Revision ID: 3c1f0a9d2b7e
Revises:
Create Date: 2026-10-19 09:12:44.402118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c1f0a9d2b7e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOTIFICATION_TYPES = ("weekly_offer", "event_reminder", "points_earned", "app_update", "custom")
NOTIFICATION_STATUSES = ("pending", "claimed", "sent", "failed", "skipped")
PLATFORMS = ("ios", "android")


def _enum(values, name):
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "menu_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_index("ix_menu_items_id", "menu_items", ["id"])

    op.create_table(
        "offer_weeks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("week_theme", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_offer_weeks_id", "offer_weeks", ["id"])
    op.create_index("ix_offer_weeks_is_active", "offer_weeks", ["is_active"])

    op.create_table(
        "offer_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("week_id", sa.Integer(), sa.ForeignKey("offer_weeks.id", ondelete="CASCADE")),
        sa.Column("menu_item_id", sa.Integer(), sa.ForeignKey("menu_items.id"), nullable=True),
        sa.Column("custom_name", sa.String(length=200), nullable=True),
        sa.Column("special_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("highlight_badge", sa.String(length=50), nullable=True),
    )
    op.create_index("ix_offer_items_id", "offer_items", ["id"])
    op.create_index("ix_offer_items_week_id", "offer_items", ["week_id"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_date", "events", ["date"])

    op.create_table(
        "scheduled_notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", _enum(NOTIFICATION_TYPES, "notificationtype"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("target_audience", sa.JSON(), nullable=False),
        sa.Column("sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "status",
            _enum(NOTIFICATION_STATUSES, "notificationstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sent_count", sa.Integer(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_scheduled_notifications_id", "scheduled_notifications", ["id"])
    op.create_index("ix_scheduled_notifications_type", "scheduled_notifications", ["type"])
    op.create_index(
        "ix_scheduled_notifications_due", "scheduled_notifications", ["status", "scheduled_for"]
    )
    op.create_index(
        "ix_scheduled_notifications_retention", "scheduled_notifications", ["sent", "sent_at"]
    )

    op.create_table(
        "push_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("token", sa.String(length=255), nullable=False, unique=True),
        sa.Column("platform", _enum(PLATFORMS, "platform"), nullable=False),
        sa.Column("device_info", sa.JSON(), nullable=True),
        sa.Column("notification_settings", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_push_tokens_id", "push_tokens", ["id"])
    op.create_index("ix_push_tokens_user_id", "push_tokens", ["user_id"])
    op.create_index("ix_push_tokens_platform", "push_tokens", ["platform"])
    op.create_index("ix_push_tokens_is_active", "push_tokens", ["is_active"])

    op.create_table(
        "notification_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("type", _enum(NOTIFICATION_TYPES, "notificationtype"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("clicked", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_notification_history_id", "notification_history", ["id"])
    op.create_index("ix_notification_history_user_id", "notification_history", ["user_id"])

    op.create_table(
        "notification_delivery_failures",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "scheduled_notification_id",
            sa.Integer(),
            sa.ForeignKey("scheduled_notifications.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("token", sa.String(length=255), nullable=False),
        sa.Column("type", _enum(NOTIFICATION_TYPES, "notificationtype"), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notification_delivery_failures_id", "notification_delivery_failures", ["id"])
    op.create_index(
        "ix_notification_delivery_failures_scheduled_notification_id",
        "notification_delivery_failures",
        ["scheduled_notification_id"],
    )
    op.create_index(
        "ix_notification_delivery_failures_user_id", "notification_delivery_failures", ["user_id"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("notification_delivery_failures")
    op.drop_table("notification_history")
    op.drop_table("push_tokens")
    op.drop_table("scheduled_notifications")
    op.drop_table("events")
    op.drop_table("offer_items")
    op.drop_table("offer_weeks")
    op.drop_table("menu_items")
