"""Structured logger for observability."""

import hashlib
import logging
from typing import Any, Optional

# Configure root logger with key=value structured format
_logger = logging.getLogger("lead_automation")
_logger.setLevel(logging.INFO)

# Create console handler if not exists
if not _logger.handlers:
    handler = logging.StreamHandler()
    handler.setLevel(logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    _logger.addHandler(handler)


def hash_for_logging(value: Optional[str]) -> str:
    """
    Hash a contact value (email, phone) so it can be logged.

    Args:
        value: Raw value

    Returns:
        Short SHA-256 prefix, or "[MISSING]" when empty
    """
    if not value:
        return "[MISSING]"
    return hashlib.sha256(value.strip().lower().encode("utf-8")).hexdigest()[:12]


def log_event(
    tracking_id: str,
    component: str,
    level: int = logging.INFO,
    **kwargs: Any,
) -> None:
    """
    Log structured event for an operation.

    Args:
        tracking_id: Correlation token of the operation
        component: Component name (e.g., 'http', 'task_scheduler', 'queue_drainer')
        level: Log level (default: INFO)
        **kwargs: Additional structured fields to log
    """
    fields = {
        "tracking_id": tracking_id,
        "component": component,
    }
    fields.update(kwargs)

    # Format as key=value pairs for readability
    log_parts = [f"{k}={v!r}" for k, v in fields.items()]
    log_message = " | ".join(log_parts)

    _logger.log(level, log_message)


def log_webhook_event(
    tracking_id: str,
    source: str,
    event_type: str,
    **kwargs: Any,
) -> None:
    """
    Log an inbound webhook event.

    Args:
        tracking_id: Correlation token
        source: Webhook source (e.g., 'calendly', 'hubspot')
        event_type: Event type from the payload
        **kwargs: Additional fields
    """
    log_event(
        tracking_id,
        component="event_inbox",
        source=source,
        event_type=event_type,
        **kwargs,
    )


logger = _logger
