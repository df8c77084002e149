"""Postgres-backed lead repository adapter."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, exists, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.application.ports.lead_repository import LeadRepository
from app.domain.entities.automation_task import TaskStatus
from app.domain.entities.lead import Lead, LeadStatus
from app.infrastructure.db import SessionFactory, get_db_session
from app.infrastructure.logging.logger import logger

from .converters import ensure_utc
from .models import AutomationTaskModel, LeadModel

# Leads with a task in one of these states already have a workflow
WORKFLOW_STATUSES = (TaskStatus.PENDING.value, TaskStatus.EXECUTING.value, TaskStatus.COMPLETED.value)


class PostgresLeadRepository(LeadRepository):
    """Postgres implementation of lead repository."""

    def __init__(self, session_factory: Optional[SessionFactory] = None) -> None:
        """
        Initialize Postgres repository.

        Args:
            session_factory: Callable returning a new session (defaults to the app engine)
        """
        self._session_factory = session_factory or get_db_session

    def _model_to_entity(self, model: LeadModel) -> Lead:
        return Lead(
            id=model.id,
            email=model.email,
            first_name=model.first_name,
            last_name=model.last_name,
            phone=model.phone,
            source=model.source,
            external_id=model.external_id,
            status=LeadStatus(model.status),
            assigned_agent_id=model.assigned_agent_id,
            scheduled_at=ensure_utc(model.scheduled_at),
            meeting_end_time=ensure_utc(model.meeting_end_time),
            meeting_location=model.meeting_location,
            canceled_at=ensure_utc(model.canceled_at),
            cancellation_reason=model.cancellation_reason,
            processing_attempts=model.processing_attempts or 0,
            last_processing_error=model.last_processing_error,
            tracking_id=model.tracking_id,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at),
        )

    def _apply(self, lead: Lead, model: LeadModel) -> LeadModel:
        """Copy entity fields onto a (new or existing) model."""
        model.email = lead.email
        model.first_name = lead.first_name
        model.last_name = lead.last_name
        model.phone = lead.phone
        model.source = lead.source
        model.external_id = lead.external_id
        model.status = lead.status.value
        model.assigned_agent_id = lead.assigned_agent_id
        model.scheduled_at = lead.scheduled_at
        model.meeting_end_time = lead.meeting_end_time
        model.meeting_location = lead.meeting_location
        model.canceled_at = lead.canceled_at
        model.cancellation_reason = lead.cancellation_reason
        model.processing_attempts = lead.processing_attempts
        model.last_processing_error = lead.last_processing_error
        model.tracking_id = lead.tracking_id
        model.updated_at = datetime.now(timezone.utc)
        return model

    async def save(self, lead: Lead) -> None:
        """
        Save a lead (upsert by id).

        Args:
            lead: Lead to save
        """
        db: Session = self._session_factory()
        try:
            model = db.get(LeadModel, lead.id)
            if model is None:
                model = LeadModel(id=lead.id, created_at=lead.created_at)
                db.add(model)
            self._apply(lead, model)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while saving lead {lead.id}: {str(e)}")
            raise
        finally:
            db.close()

    async def get(self, lead_id: str) -> Optional[Lead]:
        """
        Get a lead by id.

        Args:
            lead_id: Lead identifier

        Returns:
            Lead, or None if not found
        """
        db: Session = self._session_factory()
        try:
            model = db.get(LeadModel, lead_id)
            if model is None:
                return None
            return self._model_to_entity(model)
        except SQLAlchemyError as e:
            logger.error(f"Database error while getting lead {lead_id}: {str(e)}")
            return None
        finally:
            db.close()

    async def get_by_email(self, email: str) -> Optional[Lead]:
        db: Session = self._session_factory()
        try:
            model = (
                db.query(LeadModel)
                .filter(func.lower(LeadModel.email) == email.strip().lower())
                .first()
            )
            return self._model_to_entity(model) if model else None
        except SQLAlchemyError as e:
            logger.error(f"Database error while looking up lead by email: {str(e)}")
            return None
        finally:
            db.close()

    async def assign_if_unassigned(self, lead_id: str, agent_id: str, tracking_id: str) -> bool:
        """
        Conditionally assign a lead (``assigned_agent_id IS NULL``).

        Leads that are still ``new`` move to ``assigned``; leads that already
        progressed keep their status.
        """
        db: Session = self._session_factory()
        try:
            updated = (
                db.query(LeadModel)
                .filter(LeadModel.id == lead_id, LeadModel.assigned_agent_id.is_(None))
                .update(
                    {
                        LeadModel.assigned_agent_id: agent_id,
                        LeadModel.status: case(
                            (LeadModel.status == LeadStatus.NEW.value, LeadStatus.ASSIGNED.value),
                            else_=LeadModel.status,
                        ),
                        LeadModel.tracking_id: tracking_id,
                        LeadModel.updated_at: datetime.now(timezone.utc),
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
            return updated == 1
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while assigning lead {lead_id}: {str(e)}")
            raise
        finally:
            db.close()

    async def list_orphaned(self, created_before: datetime, max_attempts: int, limit: int) -> list[Lead]:
        db: Session = self._session_factory()
        try:
            has_workflow = exists().where(
                AutomationTaskModel.lead_id == LeadModel.id,
                AutomationTaskModel.status.in_(WORKFLOW_STATUSES),
            )
            models = (
                db.query(LeadModel)
                .filter(
                    LeadModel.status == LeadStatus.NEW.value,
                    LeadModel.created_at <= created_before,
                    LeadModel.processing_attempts < max_attempts,
                    ~has_workflow,
                )
                .order_by(LeadModel.created_at)
                .limit(limit)
                .all()
            )
            return [self._model_to_entity(model) for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing orphaned leads: {str(e)}")
            raise
        finally:
            db.close()

    async def record_processing_failure(self, lead_id: str, error_message: str, tracking_id: str) -> None:
        db: Session = self._session_factory()
        try:
            db.query(LeadModel).filter(LeadModel.id == lead_id).update(
                {
                    LeadModel.processing_attempts: LeadModel.processing_attempts + 1,
                    LeadModel.last_processing_error: error_message,
                    LeadModel.tracking_id: tracking_id,
                    LeadModel.updated_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while recording failure for lead {lead_id}: {str(e)}")
            raise
        finally:
            db.close()
