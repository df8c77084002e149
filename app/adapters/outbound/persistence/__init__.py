"""SQL persistence adapters."""

from app.adapters.outbound.persistence.postgres_agent_repository import PostgresAgentRepository
from app.adapters.outbound.persistence.postgres_lead_repository import PostgresLeadRepository
from app.adapters.outbound.persistence.postgres_meeting_repository import PostgresMeetingRepository
from app.adapters.outbound.persistence.postgres_outbound_message_repository import (
    PostgresOutboundMessageRepository,
)
from app.adapters.outbound.persistence.postgres_task_repository import PostgresTaskRepository
from app.adapters.outbound.persistence.postgres_webhook_event_repository import (
    PostgresWebhookEventRepository,
)

__all__ = [
    "PostgresAgentRepository",
    "PostgresLeadRepository",
    "PostgresMeetingRepository",
    "PostgresOutboundMessageRepository",
    "PostgresTaskRepository",
    "PostgresWebhookEventRepository",
]
