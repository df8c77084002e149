"""Postgres-backed task store adapter."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.application.ports.task_repository import TaskRepository
from app.domain.entities.automation_task import AutomationTask, StepName, TaskStatus
from app.domain.value_objects.task_parameters import parse_task_parameters
from app.infrastructure.db import SessionFactory, get_db_session
from app.infrastructure.logging.logger import logger

from .converters import ensure_utc
from .models import AutomationTaskModel


class PostgresTaskRepository(TaskRepository):
    """Postgres implementation of the task store.

    Every status transition is a conditional update on the expected current
    status; a zero row count means another worker got there first.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None) -> None:
        self._session_factory = session_factory or get_db_session

    def _model_to_entity(self, model: AutomationTaskModel) -> AutomationTask:
        step_name = StepName(model.step_name)
        metadata = dict(model.task_metadata or {})
        completed_at = metadata.get("completed_at")
        return AutomationTask(
            id=model.id,
            lead_id=model.lead_id,
            step_name=step_name,
            scheduled_at=ensure_utc(model.scheduled_at),
            parameters=parse_task_parameters(step_name, metadata),
            status=TaskStatus(model.status),
            workflow_type=model.workflow_type,
            retry_count=model.retry_count or 0,
            max_retries=model.max_retries,
            executed_at=ensure_utc(model.executed_at),
            error_message=model.error_message,
            result=metadata.get("result"),
            completed_at=(
                ensure_utc(datetime.fromisoformat(completed_at)) if completed_at else None
            ),
            tracking_id=model.tracking_id,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at),
        )

    def _entity_to_model(self, task: AutomationTask) -> AutomationTaskModel:
        return AutomationTaskModel(
            id=task.id,
            lead_id=task.lead_id,
            workflow_type=task.workflow_type,
            step_name=task.step_name.value,
            scheduled_at=task.scheduled_at,
            status=task.status.value,
            retry_count=task.retry_count,
            max_retries=task.max_retries,
            task_metadata=task.metadata,
            dedupe_key=task.dedupe_key,
            tracking_id=task.tracking_id,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )

    async def add(self, task: AutomationTask) -> bool:
        """
        Insert a task; the partial unique index rejects active duplicates.

        Args:
            task: Task to insert

        Returns:
            True if inserted, False if an active duplicate exists
        """
        db: Session = self._session_factory()
        try:
            db.add(self._entity_to_model(task))
            db.commit()
            return True
        except IntegrityError:
            db.rollback()
            return False
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while adding task {task.step_name.value}: {str(e)}")
            raise
        finally:
            db.close()

    async def get(self, task_id: str) -> Optional[AutomationTask]:
        db: Session = self._session_factory()
        try:
            model = db.get(AutomationTaskModel, task_id)
            return self._model_to_entity(model) if model else None
        except SQLAlchemyError as e:
            logger.error(f"Database error while getting task {task_id}: {str(e)}")
            return None
        finally:
            db.close()

    async def list_for_lead(self, lead_id: str) -> list[AutomationTask]:
        db: Session = self._session_factory()
        try:
            models = (
                db.query(AutomationTaskModel)
                .filter(AutomationTaskModel.lead_id == lead_id)
                .order_by(AutomationTaskModel.scheduled_at, AutomationTaskModel.created_at)
                .all()
            )
            return [self._model_to_entity(model) for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing tasks for lead {lead_id}: {str(e)}")
            return []
        finally:
            db.close()

    async def list_due(self, now: datetime, limit: int) -> list[AutomationTask]:
        db: Session = self._session_factory()
        try:
            models = (
                db.query(AutomationTaskModel)
                .filter(
                    AutomationTaskModel.status == TaskStatus.PENDING.value,
                    AutomationTaskModel.scheduled_at <= now,
                )
                .order_by(AutomationTaskModel.scheduled_at, AutomationTaskModel.created_at)
                .limit(limit)
                .all()
            )
            return [self._model_to_entity(model) for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing due tasks: {str(e)}")
            raise
        finally:
            db.close()

    async def claim(self, task_id: str, now: datetime, tracking_id: str) -> bool:
        db: Session = self._session_factory()
        try:
            updated = (
                db.query(AutomationTaskModel)
                .filter(
                    AutomationTaskModel.id == task_id,
                    AutomationTaskModel.status == TaskStatus.PENDING.value,
                )
                .update(
                    {
                        AutomationTaskModel.status: TaskStatus.EXECUTING.value,
                        AutomationTaskModel.executed_at: now,
                        AutomationTaskModel.tracking_id: tracking_id,
                        AutomationTaskModel.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
            return updated == 1
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while claiming task {task_id}: {str(e)}")
            raise
        finally:
            db.close()

    def _finish(
        self,
        db: Session,
        task_id: str,
        status: TaskStatus,
        now: datetime,
        result: Optional[dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        model = (
            db.query(AutomationTaskModel)
            .filter(
                AutomationTaskModel.id == task_id,
                AutomationTaskModel.status == TaskStatus.EXECUTING.value,
            )
            .first()
        )
        if model is None:
            logger.warning(f"Task {task_id} is no longer executing; {status.value} not recorded")
            return False
        metadata = dict(model.task_metadata or {})
        if result is not None:
            metadata["result"] = result
        if status == TaskStatus.COMPLETED:
            metadata["completed_at"] = now.isoformat()
        # Reassign so the JSON column is flagged dirty
        model.task_metadata = metadata
        model.status = status.value
        model.error_message = error_message
        model.updated_at = now
        return True

    async def complete(self, task_id: str, result: dict[str, Any], now: datetime) -> None:
        db: Session = self._session_factory()
        try:
            self._finish(db, task_id, TaskStatus.COMPLETED, now, result=result)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while completing task {task_id}: {str(e)}")
            raise
        finally:
            db.close()

    async def fail(self, task_id: str, error_message: str, now: datetime) -> None:
        db: Session = self._session_factory()
        try:
            self._finish(db, task_id, TaskStatus.FAILED, now, error_message=error_message)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while failing task {task_id}: {str(e)}")
            raise
        finally:
            db.close()

    async def complete_and_reschedule(
        self,
        task_id: str,
        result: dict[str, Any],
        successor: AutomationTask,
        now: datetime,
    ) -> bool:
        """
        Complete a task and insert its successor atomically.

        The current row leaves the active set before the successor is
        inserted, so both can share a dedupe key. Nothing is written when the
        row is no longer executing.
        """
        db: Session = self._session_factory()
        try:
            if not self._finish(db, task_id, TaskStatus.COMPLETED, now, result=result):
                db.rollback()
                return False
            db.flush()
            db.add(self._entity_to_model(successor))
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while rescheduling task {task_id}: {str(e)}")
            raise
        finally:
            db.close()

    async def cancel_pending(
        self,
        lead_id: str,
        step_name: StepName,
        meeting_id: Optional[str] = None,
        tracking_id: Optional[str] = None,
    ) -> int:
        db: Session = self._session_factory()
        try:
            query = db.query(AutomationTaskModel).filter(
                AutomationTaskModel.lead_id == lead_id,
                AutomationTaskModel.step_name == step_name.value,
                AutomationTaskModel.status == TaskStatus.PENDING.value,
            )
            if meeting_id is not None:
                query = query.filter(
                    AutomationTaskModel.dedupe_key.like(f"{step_name.value}:{meeting_id}:%")
                )
            values = {
                AutomationTaskModel.status: TaskStatus.CANCELLED.value,
                AutomationTaskModel.updated_at: datetime.now(timezone.utc),
            }
            if tracking_id:
                values[AutomationTaskModel.tracking_id] = tracking_id
            cancelled = query.update(values, synchronize_session=False)
            db.commit()
            return cancelled
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while cancelling {step_name.value} for lead {lead_id}: {str(e)}")
            raise
        finally:
            db.close()

    async def exists_with_key(
        self,
        lead_id: str,
        dedupe_key: str,
        statuses: tuple[TaskStatus, ...],
    ) -> bool:
        db: Session = self._session_factory()
        try:
            found = (
                db.query(AutomationTaskModel.id)
                .filter(
                    AutomationTaskModel.lead_id == lead_id,
                    AutomationTaskModel.dedupe_key == dedupe_key,
                    AutomationTaskModel.status.in_([status.value for status in statuses]),
                )
                .first()
            )
            return found is not None
        except SQLAlchemyError as e:
            logger.error(f"Database error while checking task {dedupe_key}: {str(e)}")
            raise
        finally:
            db.close()
