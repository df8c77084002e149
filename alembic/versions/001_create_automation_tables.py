"""Create lead automation tables

Revision ID: 001
Revises:
Create Date: 2024-05-01 00:00:00.000000

"""

from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_TASK_CONDITION = sa.text("status IN ('pending', 'executing')")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "agents",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("email_verified", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "agent_integrations",
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("scheduling_link", sa.String(), nullable=True),
        sa.Column("has_scheduling_token", sa.Boolean(), nullable=False),
        sa.Column("has_video_token", sa.Boolean(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["agent_id"], ["agents.id"]),
        sa.PrimaryKeyConstraint("agent_id"),
    )

    op.create_table(
        "leads",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("assigned_agent_id", sa.String(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meeting_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meeting_location", sa.String(), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("processing_attempts", sa.Integer(), nullable=False),
        sa.Column("last_processing_error", sa.Text(), nullable=True),
        sa.Column("tracking_id", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["assigned_agent_id"], ["agents.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_leads_email"), "leads", ["email"], unique=True)
    op.create_index(op.f("ix_leads_status"), "leads", ["status"], unique=False)
    op.create_index(
        op.f("ix_leads_assigned_agent_id"), "leads", ["assigned_agent_id"], unique=False
    )

    op.create_table(
        "automation_tasks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lead_id", sa.String(), nullable=False),
        sa.Column("workflow_type", sa.String(), nullable=False),
        sa.Column("step_name", sa.String(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("max_retries", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("dedupe_key", sa.String(), nullable=False),
        sa.Column("tracking_id", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_automation_tasks_lead_id"), "automation_tasks", ["lead_id"], unique=False
    )
    op.create_index(
        "ix_automation_tasks_due", "automation_tasks", ["status", "scheduled_at"], unique=False
    )
    # At most one pending/executing task per (lead, dedupe key)
    op.create_index(
        "uq_automation_tasks_active_dedupe",
        "automation_tasks",
        ["lead_id", "dedupe_key"],
        unique=True,
        postgresql_where=ACTIVE_TASK_CONDITION,
        sqlite_where=ACTIVE_TASK_CONDITION,
    )

    op.create_table(
        "outbound_messages",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lead_id", sa.String(), nullable=False),
        sa.Column("channel", sa.String(), nullable=False),
        sa.Column("recipient", sa.String(), nullable=False),
        sa.Column("subject", sa.String(), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("html_body", sa.Text(), nullable=True),
        sa.Column("message_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("max_retries", sa.Integer(), nullable=False),
        sa.Column("provider_message_id", sa.String(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("dedupe_key", sa.String(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("tracking_id", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("dedupe_key"),
    )
    op.create_index(
        op.f("ix_outbound_messages_lead_id"), "outbound_messages", ["lead_id"], unique=False
    )
    op.create_index(
        "ix_outbound_messages_due", "outbound_messages", ["status", "scheduled_for"], unique=False
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("external_event_id", sa.String(), nullable=False),
        sa.Column("lead_id", sa.String(), nullable=True),
        sa.Column("raw_payload", sa.JSON(), nullable=False),
        sa.Column("processed_payload", sa.JSON(), nullable=True),
        sa.Column("processing_status", sa.String(), nullable=False),
        sa.Column("processing_attempts", sa.Integer(), nullable=False),
        sa.Column("last_processing_attempt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("tracking_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "source", "external_event_id", name="uq_webhook_events_source_external_id"
        ),
    )
    op.create_index(
        op.f("ix_webhook_events_lead_id"), "webhook_events", ["lead_id"], unique=False
    )
    op.create_index(
        op.f("ix_webhook_events_processing_status"),
        "webhook_events",
        ["processing_status"],
        unique=False,
    )

    op.create_table(
        "meetings",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lead_id", sa.String(), nullable=False),
        sa.Column("agent_id", sa.String(), nullable=True),
        sa.Column("external_event_uri", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("timezone", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("reminder_24h_sent", sa.Boolean(), nullable=False),
        sa.Column("reminder_24h_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_1h_sent", sa.Boolean(), nullable=False),
        sa.Column("reminder_1h_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sms_24h_sent", sa.Boolean(), nullable=False),
        sa.Column("sms_24h_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sms_1h_sent", sa.Boolean(), nullable=False),
        sa.Column("sms_1h_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tracking_id", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"]),
        sa.ForeignKeyConstraint(["agent_id"], ["agents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_event_uri"),
    )
    op.create_index(op.f("ix_meetings_lead_id"), "meetings", ["lead_id"], unique=False)
    op.create_index(op.f("ix_meetings_start_time"), "meetings", ["start_time"], unique=False)

    op.create_table(
        "meeting_reminders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meeting_id", sa.String(), nullable=False),
        sa.Column("reminder_type", sa.String(), nullable=False),
        sa.Column("delivery_method", sa.String(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("provider_message_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("tracking_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["meeting_id"], ["meetings.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_meeting_reminders_meeting_id"), "meeting_reminders", ["meeting_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_meeting_reminders_meeting_id"), table_name="meeting_reminders")
    op.drop_table("meeting_reminders")
    op.drop_index(op.f("ix_meetings_start_time"), table_name="meetings")
    op.drop_index(op.f("ix_meetings_lead_id"), table_name="meetings")
    op.drop_table("meetings")
    op.drop_index(op.f("ix_webhook_events_processing_status"), table_name="webhook_events")
    op.drop_index(op.f("ix_webhook_events_lead_id"), table_name="webhook_events")
    op.drop_table("webhook_events")
    op.drop_index("ix_outbound_messages_due", table_name="outbound_messages")
    op.drop_index(op.f("ix_outbound_messages_lead_id"), table_name="outbound_messages")
    op.drop_table("outbound_messages")
    op.drop_index("uq_automation_tasks_active_dedupe", table_name="automation_tasks")
    op.drop_index("ix_automation_tasks_due", table_name="automation_tasks")
    op.drop_index(op.f("ix_automation_tasks_lead_id"), table_name="automation_tasks")
    op.drop_table("automation_tasks")
    op.drop_index(op.f("ix_leads_assigned_agent_id"), table_name="leads")
    op.drop_index(op.f("ix_leads_status"), table_name="leads")
    op.drop_index(op.f("ix_leads_email"), table_name="leads")
    op.drop_table("leads")
    op.drop_table("agent_integrations")
    op.drop_table("agents")
