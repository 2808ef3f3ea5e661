"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates the join workflow tables: events, event_attendees, join_requests,
profiles, notifications_queue, notifications_log.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

request_status = sa.Enum("pending", "approved", "rejected", name="requeststatus")
notification_kind = sa.Enum("request_created", "approved", "rejected", "location_unlocked", name="notificationkind")
queue_status = sa.Enum("queued", "processing", "sent", "failed", name="queuestatus")
delivery_status = sa.Enum("sent", "failed", name="deliverystatus")


def upgrade() -> None:
    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(36), primary_key=True),
        sa.Column("host_user_id", sa.String(36), nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("time", sa.Time, nullable=False),
        sa.Column("timezone", sa.String(50), nullable=False, server_default="UTC"),
        sa.Column("place_hint", sa.String(255), nullable=True),
        sa.Column("place_exact", sa.String(500), nullable=True),
        sa.Column("exact_location_visible", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("capacity >= 0", name="ck_events_capacity_non_negative"),
    )

    # --- event_attendees ---
    op.create_table(
        "event_attendees",
        sa.Column("attendee_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id"), nullable=False, index=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_attendees_event_user"),
    )

    # --- join_requests ---
    op.create_table(
        "join_requests",
        sa.Column("request_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id"), nullable=False, index=True),
        sa.Column("requester_id", sa.String(36), nullable=False),
        sa.Column("status", request_status, nullable=False, server_default="pending"),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("rejection_note", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "requester_id", name="uq_join_requests_event_requester"),
    )

    # --- profiles ---
    op.create_table(
        "profiles",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- notifications_queue ---
    op.create_table(
        "notifications_queue",
        sa.Column("queue_id", sa.String(36), primary_key=True),
        sa.Column("kind", notification_kind, nullable=False),
        sa.Column("event_id", sa.String(36), nullable=False, index=True),
        sa.Column("join_request_id", sa.String(36), nullable=True),
        sa.Column("requester_id", sa.String(36), nullable=True),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("status", queue_status, nullable=False, server_default="queued", index=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- notifications_log ---
    op.create_table(
        "notifications_log",
        sa.Column("log_id", sa.String(36), primary_key=True),
        sa.Column("queue_id", sa.String(36), nullable=True, index=True),
        sa.Column("kind", notification_kind, nullable=False),
        sa.Column("event_id", sa.String(36), nullable=True),
        sa.Column("recipient_user_id", sa.String(36), nullable=True),
        sa.Column("recipient_email", sa.String(320), nullable=True),
        sa.Column("subject", sa.String(255), nullable=True),
        sa.Column("body", sa.Text, nullable=True),
        sa.Column("ai_used", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("provider", sa.String(32), nullable=False, server_default="resend"),
        sa.Column("provider_message_id", sa.String(255), nullable=True),
        sa.Column("status", delivery_status, nullable=False),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("notifications_log")
    op.drop_table("notifications_queue")
    op.drop_table("profiles")
    op.drop_table("join_requests")
    op.drop_table("event_attendees")
    op.drop_table("events")
    for enum_type in (delivery_status, queue_status, notification_kind, request_status):
        enum_type.drop(op.get_bind(), checkfirst=True)
