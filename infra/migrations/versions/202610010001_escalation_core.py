"""escalation core tables

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202610010001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("correlation_id", sa.String(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index("ix_events_event_type", "events", ["event_type"])
    op.create_index("ix_events_ts", "events", ["ts"])
    op.create_index("ix_events_correlation_id", "events", ["correlation_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("resource", sa.String(), nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("detail", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_ts", "audit_logs", ["ts"])

    op.create_table(
        "businesses",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("phone", sa.String(), nullable=False),
        sa.Column("address", sa.JSON(), nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column("services", sa.JSON(), nullable=False),
        sa.Column("coverage_radius_km", sa.Float(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("current_load", sa.Integer(), nullable=False),
        sa.Column("reliability", sa.Float(), nullable=False),
        sa.Column("avg_response_time_hours", sa.Float(), nullable=False),
        sa.Column("operating_hours", sa.JSON(), nullable=False),
        sa.Column("contact_person", sa.JSON(), nullable=False),
        sa.Column("last_contacted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("total_assigned", sa.Integer(), nullable=False),
        sa.Column("successful_assignments", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_businesses_name", "businesses", ["name"])
    op.create_index("ix_businesses_email", "businesses", ["email"], unique=True)
    op.create_index("ix_businesses_last_contacted_at", "businesses", ["last_contacted_at"])
    op.create_index("ix_businesses_is_active", "businesses", ["is_active"])
    op.create_index("ix_businesses_created_at", "businesses", ["created_at"])
    op.create_index("ix_businesses_updated_at", "businesses", ["updated_at"])
    op.create_index("ix_businesses_active_load", "businesses", ["is_active", "current_load"])
    op.create_index("ix_businesses_lat_lng", "businesses", ["lat", "lng"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("urgency", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("people_needed", sa.Integer(), nullable=False),
        sa.Column("accepted_volunteer_count", sa.Integer(), nullable=False),
        sa.Column("requester_name", sa.String(), nullable=True),
        sa.Column("requester_email", sa.String(), nullable=True),
        sa.Column("requester_phone", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("escalation_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("contacted", sa.Boolean(), nullable=False),
        sa.Column("contacted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_business_id", sa.String(), nullable=True),
        sa.Column("business_volunteer_info", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["assigned_business_id"], ["businesses.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tasks_category", "tasks", ["category"])
    op.create_index("ix_tasks_urgency", "tasks", ["urgency"])
    op.create_index("ix_tasks_created_at", "tasks", ["created_at"])
    op.create_index("ix_tasks_escalation_deadline", "tasks", ["escalation_deadline"])
    op.create_index("ix_tasks_end_time", "tasks", ["end_time"])
    op.create_index("ix_tasks_contacted", "tasks", ["contacted"])
    op.create_index("ix_tasks_assigned_business_id", "tasks", ["assigned_business_id"])
    op.create_index("ix_tasks_updated_at", "tasks", ["updated_at"])
    op.create_index(
        "ix_tasks_escalation",
        "tasks",
        ["contacted", "escalation_deadline", "accepted_volunteer_count"],
    )
    op.create_index("ix_tasks_lat_lng", "tasks", ["lat", "lng"])


def downgrade() -> None:
    op.drop_index("ix_tasks_lat_lng", table_name="tasks")
    op.drop_index("ix_tasks_escalation", table_name="tasks")
    op.drop_index("ix_tasks_updated_at", table_name="tasks")
    op.drop_index("ix_tasks_assigned_business_id", table_name="tasks")
    op.drop_index("ix_tasks_contacted", table_name="tasks")
    op.drop_index("ix_tasks_end_time", table_name="tasks")
    op.drop_index("ix_tasks_escalation_deadline", table_name="tasks")
    op.drop_index("ix_tasks_created_at", table_name="tasks")
    op.drop_index("ix_tasks_urgency", table_name="tasks")
    op.drop_index("ix_tasks_category", table_name="tasks")
    op.drop_table("tasks")

    op.drop_index("ix_businesses_lat_lng", table_name="businesses")
    op.drop_index("ix_businesses_active_load", table_name="businesses")
    op.drop_index("ix_businesses_updated_at", table_name="businesses")
    op.drop_index("ix_businesses_created_at", table_name="businesses")
    op.drop_index("ix_businesses_is_active", table_name="businesses")
    op.drop_index("ix_businesses_last_contacted_at", table_name="businesses")
    op.drop_index("ix_businesses_email", table_name="businesses")
    op.drop_index("ix_businesses_name", table_name="businesses")
    op.drop_table("businesses")

    op.drop_index("ix_audit_logs_ts", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_events_correlation_id", table_name="events")
    op.drop_index("ix_events_ts", table_name="events")
    op.drop_index("ix_events_event_type", table_name="events")
    op.drop_table("events")
