"""Postgres-backed agent repository adapter."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.application.ports.agent_repository import AgentRepository
from app.domain.entities.agent import Agent
from app.domain.entities.lead import LeadStatus
from app.infrastructure.db import SessionFactory, get_db_session
from app.infrastructure.logging.logger import logger

from .models import AgentIntegrationModel, AgentModel, LeadModel


class PostgresAgentRepository(AgentRepository):
    """Postgres implementation of agent repository."""

    def __init__(self, session_factory: Optional[SessionFactory] = None) -> None:
        self._session_factory = session_factory or get_db_session

    def _to_entity(self, model: AgentModel, integration: Optional[AgentIntegrationModel]) -> Agent:
        # Integration presence is derived from the separate integration record
        return Agent(
            id=model.id,
            email=model.email,
            first_name=model.first_name,
            last_name=model.last_name,
            is_active=bool(model.is_active),
            email_verified=bool(model.email_verified),
            has_scheduling_integration=bool(integration and integration.has_scheduling_token),
            has_video_integration=bool(integration and integration.has_video_token),
            scheduling_link=integration.scheduling_link if integration else None,
        )

    async def get(self, agent_id: str) -> Optional[Agent]:
        db: Session = self._session_factory()
        try:
            row = (
                db.query(AgentModel, AgentIntegrationModel)
                .outerjoin(AgentIntegrationModel, AgentIntegrationModel.agent_id == AgentModel.id)
                .filter(AgentModel.id == agent_id)
                .first()
            )
            if row is None:
                return None
            return self._to_entity(*row)
        except SQLAlchemyError as e:
            logger.error(f"Database error while getting agent {agent_id}: {str(e)}")
            return None
        finally:
            db.close()

    async def list_active(self) -> list[Agent]:
        """
        List active, email-verified agents.

        Returns:
            Agents ordered by id (ranking happens in the use case)
        """
        db: Session = self._session_factory()
        try:
            rows = (
                db.query(AgentModel, AgentIntegrationModel)
                .outerjoin(AgentIntegrationModel, AgentIntegrationModel.agent_id == AgentModel.id)
                .filter(AgentModel.is_active.is_(True), AgentModel.email_verified.is_(True))
                .order_by(AgentModel.id)
                .all()
            )
            return [self._to_entity(agent, integration) for agent, integration in rows]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing agents: {str(e)}")
            raise
        finally:
            db.close()

    async def count_open_leads(self, agent_ids: list[str]) -> dict[str, int]:
        counts = {agent_id: 0 for agent_id in agent_ids}
        if not agent_ids:
            return counts
        db: Session = self._session_factory()
        try:
            rows = (
                db.query(LeadModel.assigned_agent_id, func.count(LeadModel.id))
                .filter(
                    LeadModel.assigned_agent_id.in_(agent_ids),
                    LeadModel.status != LeadStatus.CANCELED.value,
                )
                .group_by(LeadModel.assigned_agent_id)
                .all()
            )
            for agent_id, count in rows:
                counts[agent_id] = count
            return counts
        except SQLAlchemyError as e:
            logger.error(f"Database error while counting agent leads: {str(e)}")
            raise
        finally:
            db.close()

    async def save(self, agent: Agent) -> None:
        db: Session = self._session_factory()
        try:
            model = db.get(AgentModel, agent.id)
            if model is None:
                model = AgentModel(id=agent.id)
                db.add(model)
            model.email = agent.email
            model.first_name = agent.first_name
            model.last_name = agent.last_name
            model.is_active = agent.is_active
            model.email_verified = agent.email_verified
            model.updated_at = datetime.now(timezone.utc)
            db.flush()

            integration = db.get(AgentIntegrationModel, agent.id)
            if integration is None:
                integration = AgentIntegrationModel(agent_id=agent.id)
                db.add(integration)
            integration.scheduling_link = agent.scheduling_link
            integration.has_scheduling_token = agent.has_scheduling_integration
            integration.has_video_token = agent.has_video_integration
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while saving agent {agent.id}: {str(e)}")
            raise
        finally:
            db.close()
