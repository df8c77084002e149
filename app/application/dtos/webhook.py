"""Webhook DTOs."""

from typing import Any, Optional

from app.application.dtos.base import DTO


class WebhookReceipt(DTO):
    """Acknowledgement of a durably stored inbound event."""

    event_id: str
    source: str
    event_type: str
    external_event_id: str
    tracking_id: str
    duplicate: bool = False


class EventProcessingResult(DTO):
    """Outcome of interpreting one stored event."""

    event_id: str
    status: str
    handled: bool = True
    lead_id: Optional[str] = None
    detail: dict[str, Any] = {}
    error: Optional[str] = None
