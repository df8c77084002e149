"""Notification DTOs."""

from typing import Optional

from app.application.dtos.base import DTO


class RenderedContent(DTO):
    """Rendered message content handed to a dispatcher."""

    subject: Optional[str] = None
    body: str
    html_body: Optional[str] = None


class DispatchResult(DTO):
    """Outcome of a single provider send."""

    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
    provider: Optional[str] = None

    @classmethod
    def ok(cls, provider_message_id: Optional[str], provider: str) -> "DispatchResult":
        return cls(success=True, provider_message_id=provider_message_id, provider=provider)

    @classmethod
    def failed(cls, error: str, provider: str) -> "DispatchResult":
        return cls(success=False, error=error, provider=provider)
