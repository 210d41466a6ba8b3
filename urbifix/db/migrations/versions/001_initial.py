"""Initial schema - users, catalogue, issues, bookings, negotiation, chat

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

UUID = postgresql.UUID(as_uuid=True)


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", UUID, primary_key=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _fk(column: str, target: str, nullable: bool = False, **kw) -> sa.Column:
    return sa.Column(column, UUID, sa.ForeignKey(target), nullable=nullable, **kw)


def upgrade() -> None:
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="consumer"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("location_lat", sa.Float, nullable=True),
        sa.Column("location_lng", sa.Float, nullable=True),
    )

    op.create_table(
        "categories",
        *_base_columns(),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
        sa.Column("slug", sa.String(100), unique=True, nullable=False, index=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("icon", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
    )

    op.create_table(
        "provider_profiles",
        *_base_columns(),
        _fk("user_id", "users.id", unique=True, index=True),
        sa.Column("business_name", sa.String(255), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        _fk("category_id", "categories.id", nullable=True),
        sa.Column("is_verified", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("rating", sa.Float, nullable=False, server_default=sa.text("0.0")),
        sa.Column("completed_jobs", sa.Integer, nullable=False, server_default=sa.text("0")),
    )

    op.create_table(
        "services",
        *_base_columns(),
        _fk("provider_id", "users.id", index=True),
        _fk("category_id", "categories.id", nullable=True, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("base_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("price_unit", sa.String(20), nullable=False, server_default="fixed"),
        sa.Column("duration", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
    )

    op.create_table(
        "issues",
        *_base_columns(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        _fk("category_id", "categories.id", index=True),
        sa.Column("location_address", sa.String(500), nullable=True),
        sa.Column("location_lat", sa.Float, nullable=True),
        sa.Column("location_lng", sa.Float, nullable=True),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(20), nullable=False, server_default="open", index=True),
        _fk("consumer_id", "users.id", index=True),
        _fk("assigned_provider_id", "users.id", nullable=True, index=True),
        sa.Column("images", postgresql.JSONB, nullable=True),
        sa.Column("estimated_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("upvotes", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("views_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("crowdfunding_enabled", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("crowdfunding_target", sa.Numeric(12, 2), nullable=True),
        sa.Column("crowdfunding_raised", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("crowdfunding_deadline", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "issue_upvotes",
        sa.Column("issue_id", UUID, sa.ForeignKey("issues.id"), primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "issue_views",
        sa.Column("issue_id", UUID, sa.ForeignKey("issues.id"), primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("viewed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "issue_contributions",
        *_base_columns(),
        _fk("issue_id", "issues.id", index=True),
        _fk("contributor_id", "users.id", index=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("is_anonymous", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("payment_method", sa.String(30), nullable=False, server_default="upi"),
        sa.Column("transaction_id", sa.String(100), unique=True, nullable=False),
    )

    op.create_table(
        "bookings",
        *_base_columns(),
        _fk("consumer_id", "users.id", index=True),
        _fk("provider_id", "users.id", index=True),
        _fk("service_id", "services.id"),
        _fk("issue_id", "issues.id", nullable=True, index=True),
        sa.Column("chat_room_id", UUID, nullable=True),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_time", sa.String(20), nullable=True),
        sa.Column("location", postgresql.JSONB, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("original_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("negotiated_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("transaction_id", sa.String(100), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("negotiation_data", postgresql.JSONB, nullable=True),
        sa.Column("rating", sa.Integer, nullable=True),
        sa.Column("review", sa.Text, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
    )

    op.create_table(
        "proposals",
        *_base_columns(),
        _fk("booking_id", "bookings.id", index=True),
        _fk("proposed_by_id", "users.id", index=True),
        _fk("proposed_to_id", "users.id", index=True),
        sa.Column("proposal_type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("original_data", postgresql.JSONB, nullable=True),
        sa.Column("proposed_changes", postgresql.JSONB, nullable=False),
        sa.Column("justification", sa.Text, nullable=True),
        sa.Column("response_message", sa.Text, nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _fk("countered_by_id", "proposals.id", nullable=True),
        sa.Column("negotiation_history", postgresql.JSONB, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
    )

    op.create_table(
        "chat_rooms",
        *_base_columns(),
        _fk("booking_id", "bookings.id", unique=True),
        _fk("consumer_id", "users.id", index=True),
        _fk("provider_id", "users.id", index=True),
        sa.Column("last_message_id", UUID, nullable=True),
        sa.Column("unread_counts", postgresql.JSONB, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
    )

    op.create_table(
        "messages",
        *_base_columns(),
        _fk("chat_room_id", "chat_rooms.id", index=True),
        _fk("sender_id", "users.id"),
        sa.Column("message_type", sa.String(30), nullable=False, server_default="text"),
        sa.Column("content", postgresql.JSONB, nullable=False),
        sa.Column("read_by", postgresql.JSONB, nullable=True),
        _fk("reply_to_id", "messages.id", nullable=True),
    )

    op.create_table(
        "notifications",
        *_base_columns(),
        _fk("user_id", "users.id", index=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("related_id", UUID, nullable=True),
        sa.Column("related_type", sa.String(30), nullable=True),
        sa.Column("action_url", sa.String(1000), nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.text("false")),
    )


def downgrade() -> None:
    for table in (
        "notifications",
        "messages",
        "chat_rooms",
        "proposals",
        "bookings",
        "issue_contributions",
        "issue_views",
        "issue_upvotes",
        "issues",
        "services",
        "provider_profiles",
        "categories",
        "users",
    ):
        op.drop_table(table)
