"""Unit tests for AssignLeadToAgent."""

import pytest

from app.application.use_cases.assign_lead_to_agent import AssignLeadToAgent, rank_agents
from app.domain.entities.agent import Agent
from app.domain.errors import NoEligibleAgentError, NotFoundError


async def give_leads(seed, agent, count):
    for _ in range(count):
        await seed.lead(assigned_agent_id=agent.id)


@pytest.mark.asyncio
async def test_assigns_least_loaded_agent(container, seed):
    """Loads [2, 2, 1] pick the agent with one open lead."""
    ana = await seed.agent("Ana")
    bob = await seed.agent("Bob")
    cid = await seed.agent("Cid")
    await give_leads(seed, ana, 2)
    await give_leads(seed, bob, 2)
    await give_leads(seed, cid, 1)
    lead = await seed.lead()

    result = await container.assign_lead.execute(lead.id, "t-1")

    assert result.agent_id == cid.id
    assert result.already_assigned is False
    assert (await container.lead_repository.get(lead.id)).assigned_agent_id == cid.id


@pytest.mark.asyncio
async def test_ties_are_broken_by_name(container, seed):
    """Loads [1, 1] pick the alphabetically first agent."""
    zoe = await seed.agent("Zoe", agent_id="agent-1")
    amy = await seed.agent("Amy", agent_id="agent-2")
    await give_leads(seed, zoe, 1)
    await give_leads(seed, amy, 1)
    lead = await seed.lead()

    result = await container.assign_lead.execute(lead.id, "t-1")

    assert result.agent_id == amy.id
    assert result.agent_name == "Amy Agent"


@pytest.mark.asyncio
async def test_already_assigned_lead_is_not_reassigned(container, seed):
    ana = await seed.agent("Ana")
    await seed.agent("Bob")
    lead = await seed.lead(assigned_agent_id=ana.id)

    result = await container.assign_lead.execute(lead.id, "t-1")

    assert result.already_assigned is True
    assert result.agent_id == ana.id


@pytest.mark.asyncio
async def test_no_eligible_agent(container, seed):
    await seed.agent("Ana", email_verified=False)
    lead = await seed.lead()

    with pytest.raises(NoEligibleAgentError):
        await container.assign_lead.execute(lead.id, "t-1")


@pytest.mark.asyncio
async def test_scheduling_integration_policy(container, seed):
    await seed.agent("Ana")
    bob = await seed.agent("Bob", scheduling_link="https://calendly.com/bob")
    lead = await seed.lead()
    use_case = AssignLeadToAgent(
        container.lead_repository,
        container.agent_repository,
        require_scheduling_integration=True,
    )

    result = await use_case.execute(lead.id, "t-1")

    assert result.agent_id == bob.id


@pytest.mark.asyncio
async def test_unknown_lead(container):
    with pytest.raises(NotFoundError):
        await container.assign_lead.execute("missing", "t-1")


@pytest.mark.asyncio
async def test_lost_race_reports_winner(container, seed, monkeypatch):
    """If another writer assigns first, the winner is reported as already assigned."""
    await seed.agent("Ana")
    bob = await seed.agent("Bob")
    lead = await seed.lead()
    repo = container.lead_repository
    original = repo.assign_if_unassigned

    async def assign_after_competitor(lead_id, agent_id, tracking_id):
        await original(lead_id, bob.id, "competitor")
        return await original(lead_id, agent_id, tracking_id)

    monkeypatch.setattr(repo, "assign_if_unassigned", assign_after_competitor)

    result = await container.assign_lead.execute(lead.id, "t-1")

    assert result.already_assigned is True
    assert result.agent_id == bob.id


def test_rank_agents_orders_by_load_then_name():
    agents = [
        Agent(id="3", email="c@x", first_name="Cid"),
        Agent(id="1", email="a@x", first_name="Ana"),
        Agent(id="2", email="b@x", first_name="Bob"),
    ]

    ranked = rank_agents(agents, {"1": 3, "2": 0, "3": 0})

    assert [agent.id for agent in ranked] == ["2", "3", "1"]
