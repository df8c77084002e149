"""Lead repository port."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from app.domain.entities.lead import Lead


class LeadRepository(ABC):
    """Port interface for lead repository."""

    @abstractmethod
    async def get(self, lead_id: str) -> Optional[Lead]:
        """
        Get a lead by id.

        Args:
            lead_id: Lead identifier

        Returns:
            Lead, or None if not found
        """
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Lead]:
        """
        Get a lead by email address (case-insensitive).

        Args:
            email: Email address

        Returns:
            Lead, or None if not found
        """
        pass

    @abstractmethod
    async def save(self, lead: Lead) -> None:
        """
        Insert or update a lead.

        Args:
            lead: Lead to save
        """
        pass

    @abstractmethod
    async def assign_if_unassigned(self, lead_id: str, agent_id: str, tracking_id: str) -> bool:
        """
        Set the assigned agent only when the lead has none yet.

        Args:
            lead_id: Lead identifier
            agent_id: Agent to assign
            tracking_id: Correlation token written to the row

        Returns:
            True if this call performed the assignment, False if another
            writer assigned the lead first
        """
        pass

    @abstractmethod
    async def list_orphaned(self, created_before: datetime, max_attempts: int, limit: int) -> list[Lead]:
        """
        List ``new`` leads that never got a workflow.

        A lead qualifies when it has no pending, executing or completed task
        and fewer than ``max_attempts`` failed processing attempts.

        Args:
            created_before: Grace cutoff; newer leads are left alone
            max_attempts: Attempt cap
            limit: Maximum leads returned

        Returns:
            Leads ordered oldest first
        """
        pass

    @abstractmethod
    async def record_processing_failure(self, lead_id: str, error_message: str, tracking_id: str) -> None:
        """
        Increment ``processing_attempts`` and store the error.

        Args:
            lead_id: Lead identifier
            error_message: Failure description
            tracking_id: Correlation token of the attempt
        """
        pass
