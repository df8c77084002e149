"""HTTP adapter schemas."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class LoopStatus(BaseModel):
    """Status of one background polling loop."""

    name: str
    running: bool
    interval_seconds: float
    runs: int
    consecutive_errors: int
    last_run_at: Optional[str] = None
    last_error: Optional[str] = None


class LoopsResponse(BaseModel):
    """Scheduler registry status."""

    loops: list[LoopStatus]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "loops": [
                    {
                        "name": "task_scheduler",
                        "running": True,
                        "interval_seconds": 60.0,
                        "runs": 12,
                        "consecutive_errors": 0,
                        "last_run_at": "2024-05-01T10:00:00+00:00",
                        "last_error": None,
                    }
                ]
            }
        }
    )


class CalendlyWebhookExample(BaseModel):
    """Documented shape of a scheduling webhook body (parsed leniently)."""

    event: str
    payload: dict[str, Any]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "event": "invitee.created",
                "payload": {
                    "invitee": {
                        "uri": "https://api.calendly.com/scheduled_events/EV1/invitees/IN1",
                        "email": "jane@example.com",
                        "name": "Jane Doe",
                        "timezone": "America/New_York",
                    },
                    "event": {
                        "uri": "https://api.calendly.com/scheduled_events/EV1",
                        "start_time": "2024-05-02T15:00:00Z",
                        "end_time": "2024-05-02T15:30:00Z",
                    },
                    "event_type": {"name": "Consultation Meeting"},
                },
            }
        }
    )
