"""Agent repository port."""

from abc import ABC, abstractmethod
from typing import Optional

from app.domain.entities.agent import Agent


class AgentRepository(ABC):
    """Port interface for agent repository."""

    @abstractmethod
    async def get(self, agent_id: str) -> Optional[Agent]:
        """
        Get an agent by id, with integration flags resolved.

        Args:
            agent_id: Agent identifier

        Returns:
            Agent, or None if not found
        """
        pass

    @abstractmethod
    async def list_active(self) -> list[Agent]:
        """
        List active, email-verified agents.

        Returns:
            Agents that may receive leads (integration policy not applied)
        """
        pass

    @abstractmethod
    async def count_open_leads(self, agent_ids: list[str]) -> dict[str, int]:
        """
        Count leads assigned to each agent, excluding canceled leads.

        Args:
            agent_ids: Agents to count for

        Returns:
            Mapping of agent id to lead count (agents with no leads map to 0)
        """
        pass

    @abstractmethod
    async def save(self, agent: Agent) -> None:
        """
        Insert or update an agent and its integration record.

        Args:
            agent: Agent to save
        """
        pass
