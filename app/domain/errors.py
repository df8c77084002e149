"""Domain error taxonomy shared by use cases and adapters."""

from typing import Optional


class LeadAutomationError(Exception):
    """Base class for errors raised by the automation engine."""


class NotFoundError(LeadAutomationError):
    """A referenced record does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class PreconditionFailed(LeadAutomationError):
    """A step cannot run in the current state; reported as skipped."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NoEligibleAgentError(LeadAutomationError):
    """No active, verified agent qualifies for assignment."""

    def __init__(self, lead_id: str, require_scheduling_integration: bool = False) -> None:
        message = f"No eligible agent available for lead {lead_id}"
        if require_scheduling_integration:
            message += " (scheduling integration required)"
        super().__init__(message)
        self.lead_id = lead_id


class TransientDeliveryError(LeadAutomationError):
    """Provider rejected or failed a send; the message may be retried."""

    def __init__(self, message: str, provider: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider = provider


class WorkflowStepError(LeadAutomationError):
    """Unexpected failure while running a workflow step."""

    def __init__(self, step_name: str, message: str) -> None:
        super().__init__(f"{step_name}: {message}")
        self.step_name = step_name
