"""SQLAlchemy ORM models for the automation engine."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


ACTIVE_TASK_CONDITION = text("status IN ('pending', 'executing')")


class LeadModel(Base):
    """SQLAlchemy model for leads table."""

    __tablename__ = "leads"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    source = Column(String, nullable=False, default="manual")
    external_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="new", index=True)
    assigned_agent_id = Column(String, ForeignKey("agents.id"), nullable=True, index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    meeting_end_time = Column(DateTime(timezone=True), nullable=True)
    meeting_location = Column(String, nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    processing_attempts = Column(Integer, nullable=False, default=0)
    last_processing_error = Column(Text, nullable=True)
    tracking_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class AgentModel(Base):
    """SQLAlchemy model for agents table."""

    __tablename__ = "agents"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class AgentIntegrationModel(Base):
    """SQLAlchemy model for agent_integrations table (one row per agent)."""

    __tablename__ = "agent_integrations"

    agent_id = Column(String, ForeignKey("agents.id"), primary_key=True)
    scheduling_link = Column(String, nullable=True)
    has_scheduling_token = Column(Boolean, nullable=False, default=False)
    has_video_token = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class AutomationTaskModel(Base):
    """SQLAlchemy model for automation_tasks table (the Task Store)."""

    __tablename__ = "automation_tasks"
    __table_args__ = (
        # At most one active row per (lead, dedupe key)
        Index(
            "uq_automation_tasks_active_dedupe",
            "lead_id",
            "dedupe_key",
            unique=True,
            sqlite_where=ACTIVE_TASK_CONDITION,
            postgresql_where=ACTIVE_TASK_CONDITION,
        ),
        Index("ix_automation_tasks_due", "status", "scheduled_at"),
    )

    id = Column(String, primary_key=True)
    lead_id = Column(String, ForeignKey("leads.id"), nullable=False, index=True)
    workflow_type = Column(String, nullable=False, default="email_automation")
    step_name = Column(String, nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    executed_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String, nullable=False, default="pending")
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    error_message = Column(Text, nullable=True)
    task_metadata = Column("metadata", JSON, nullable=False, default=dict)
    dedupe_key = Column(String, nullable=False)
    tracking_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class OutboundMessageModel(Base):
    """SQLAlchemy model for outbound_messages table (the delivery queue)."""

    __tablename__ = "outbound_messages"
    __table_args__ = (Index("ix_outbound_messages_due", "status", "scheduled_for"),)

    id = Column(String, primary_key=True)
    lead_id = Column(String, ForeignKey("leads.id"), nullable=False, index=True)
    channel = Column(String, nullable=False)
    recipient = Column(String, nullable=False)
    subject = Column(String, nullable=True)
    body = Column(Text, nullable=False)
    html_body = Column(Text, nullable=True)
    message_type = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    scheduled_for = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    provider_message_id = Column(String, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    dedupe_key = Column(String, nullable=False, unique=True)
    message_metadata = Column("metadata", JSON, nullable=False, default=dict)
    tracking_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class WebhookEventModel(Base):
    """SQLAlchemy model for webhook_events table (the Event Inbox)."""

    __tablename__ = "webhook_events"
    __table_args__ = (
        UniqueConstraint("source", "external_event_id", name="uq_webhook_events_source_external_id"),
    )

    id = Column(String, primary_key=True)
    source = Column(String, nullable=False)
    event_type = Column(String, nullable=False)
    external_event_id = Column(String, nullable=False)
    lead_id = Column(String, nullable=True, index=True)
    raw_payload = Column(JSON, nullable=False)
    processed_payload = Column(JSON, nullable=True)
    processing_status = Column(String, nullable=False, default="pending", index=True)
    processing_attempts = Column(Integer, nullable=False, default=0)
    last_processing_attempt = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    tracking_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)


class MeetingModel(Base):
    """SQLAlchemy model for meetings table."""

    __tablename__ = "meetings"

    id = Column(String, primary_key=True)
    lead_id = Column(String, ForeignKey("leads.id"), nullable=False, index=True)
    agent_id = Column(String, ForeignKey("agents.id"), nullable=True)
    external_event_uri = Column(String, nullable=True, unique=True)
    title = Column(String, nullable=False, default="Consultation Meeting")
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    timezone = Column(String, nullable=False, default="UTC")
    status = Column(String, nullable=False, default="scheduled")
    location = Column(String, nullable=True)
    reminder_24h_sent = Column(Boolean, nullable=False, default=False)
    reminder_24h_sent_at = Column(DateTime(timezone=True), nullable=True)
    reminder_1h_sent = Column(Boolean, nullable=False, default=False)
    reminder_1h_sent_at = Column(DateTime(timezone=True), nullable=True)
    sms_24h_sent = Column(Boolean, nullable=False, default=False)
    sms_24h_sent_at = Column(DateTime(timezone=True), nullable=True)
    sms_1h_sent = Column(Boolean, nullable=False, default=False)
    sms_1h_sent_at = Column(DateTime(timezone=True), nullable=True)
    tracking_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class MeetingReminderModel(Base):
    """SQLAlchemy model for meeting_reminders table (append-only history)."""

    __tablename__ = "meeting_reminders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    meeting_id = Column(String, ForeignKey("meetings.id"), nullable=False, index=True)
    reminder_type = Column(String, nullable=False)
    delivery_method = Column(String, nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    provider_message_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="sent")
    error_message = Column(Text, nullable=True)
    tracking_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
