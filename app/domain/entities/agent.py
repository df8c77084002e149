"""Agent entity."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Agent:
    """Human handler that leads are assigned to (read-mostly)."""

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool = True
    email_verified: bool = False
    # Derived from the separate integration record
    has_scheduling_integration: bool = False
    has_video_integration: bool = False
    scheduling_link: Optional[str] = None

    @property
    def full_name(self) -> str:
        """Display name, falling back to the email address."""
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email

    @property
    def sort_name(self) -> tuple[str, str, str]:
        """Stable secondary ranking key (first name, last name, id)."""
        return ((self.first_name or "").lower(), (self.last_name or "").lower(), self.id)

    def is_eligible(self, require_scheduling_integration: bool = False) -> bool:
        """
        Check whether the agent can receive new leads.

        Args:
            require_scheduling_integration: Policy flag requiring a connected scheduler

        Returns:
            True if active, verified and meeting the capability policy
        """
        if not (self.is_active and self.email_verified):
            return False
        if require_scheduling_integration and not self.has_scheduling_integration:
            return False
        return True
