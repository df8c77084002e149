"""Assign an unassigned lead to the least-loaded eligible agent."""

from typing import Any, Callable, Optional

from app.application.dtos.automation import AssignmentResult
from app.application.ports.agent_repository import AgentRepository
from app.application.ports.lead_repository import LeadRepository
from app.domain.entities.agent import Agent
from app.domain.errors import NoEligibleAgentError, NotFoundError

COMPONENT = "assignment"


def rank_agents(agents: list[Agent], lead_counts: dict[str, int]) -> list[Agent]:
    """
    Order agents by current load, then first name, last name and id.

    Args:
        agents: Eligible agents
        lead_counts: Non-canceled lead count per agent id

    Returns:
        Agents, best candidate first
    """
    return sorted(agents, key=lambda agent: (lead_counts.get(agent.id, 0), agent.sort_name))


class AssignLeadToAgent:
    """Use case for load-balanced lead assignment."""

    def __init__(
        self,
        lead_repository: LeadRepository,
        agent_repository: AgentRepository,
        require_scheduling_integration: bool = False,
        logger: Optional[Callable[..., None]] = None,
    ) -> None:
        """
        Initialize use case.

        Args:
            lead_repository: Leads
            agent_repository: Agents
            require_scheduling_integration: Exclude agents without a connected scheduler
            logger: Optional logger function (tracking_id, component, **kwargs)
        """
        self._leads = lead_repository
        self._agents = agent_repository
        self._require_scheduling_integration = require_scheduling_integration
        self._logger = logger

    def _log(self, tracking_id: str, **kwargs: Any) -> None:
        if self._logger:
            self._logger(tracking_id, COMPONENT, **kwargs)

    async def execute(self, lead_id: str, tracking_id: str) -> AssignmentResult:
        """
        Assign the lead unless it already has an agent.

        Args:
            lead_id: Lead identifier
            tracking_id: Correlation token written to the lead row

        Returns:
            AssignmentResult (``already_assigned`` when another writer won or
            the lead was assigned before)

        Raises:
            NotFoundError: If the lead does not exist
            NoEligibleAgentError: If no agent qualifies
        """
        lead = await self._leads.get(lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)
        if lead.assigned_agent_id:
            return AssignmentResult(
                lead_id=lead_id,
                agent_id=lead.assigned_agent_id,
                already_assigned=True,
                tracking_id=tracking_id,
            )

        candidates = [
            agent
            for agent in await self._agents.list_active()
            if agent.is_eligible(self._require_scheduling_integration)
        ]
        if not candidates:
            self._log(tracking_id, event="no_eligible_agent", lead_id=lead_id)
            raise NoEligibleAgentError(lead_id, self._require_scheduling_integration)

        lead_counts = await self._agents.count_open_leads([agent.id for agent in candidates])
        chosen = rank_agents(candidates, lead_counts)[0]

        if not await self._leads.assign_if_unassigned(lead_id, chosen.id, tracking_id):
            # Another writer assigned the lead between our read and the update
            current = await self._leads.get(lead_id)
            self._log(tracking_id, event="assignment_race_lost", lead_id=lead_id)
            return AssignmentResult(
                lead_id=lead_id,
                agent_id=current.assigned_agent_id if current else chosen.id,
                already_assigned=True,
                tracking_id=tracking_id,
            )

        self._log(
            tracking_id,
            event="lead_assigned",
            lead_id=lead_id,
            agent_id=chosen.id,
            agent_lead_count=lead_counts.get(chosen.id, 0),
        )
        return AssignmentResult(
            lead_id=lead_id,
            agent_id=chosen.id,
            agent_name=chosen.full_name,
            tracking_id=tracking_id,
        )
