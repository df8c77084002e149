"""Postgres-backed event inbox adapter."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.application.ports.webhook_event_repository import WebhookEventRepository
from app.domain.entities.webhook_event import ProcessingStatus, WebhookEvent
from app.infrastructure.db import SessionFactory, get_db_session
from app.infrastructure.logging.logger import logger

from .converters import ensure_utc
from .models import WebhookEventModel


class PostgresWebhookEventRepository(WebhookEventRepository):
    """Postgres implementation of the event inbox."""

    def __init__(self, session_factory: Optional[SessionFactory] = None) -> None:
        self._session_factory = session_factory or get_db_session

    def _model_to_entity(self, model: WebhookEventModel) -> WebhookEvent:
        return WebhookEvent(
            id=model.id,
            source=model.source,
            event_type=model.event_type,
            external_event_id=model.external_event_id,
            raw_payload=dict(model.raw_payload or {}),
            lead_id=model.lead_id,
            processed_payload=model.processed_payload,
            processing_status=ProcessingStatus(model.processing_status),
            processing_attempts=model.processing_attempts or 0,
            last_processing_attempt=ensure_utc(model.last_processing_attempt),
            error_message=model.error_message,
            tracking_id=model.tracking_id,
            created_at=ensure_utc(model.created_at),
            processed_at=ensure_utc(model.processed_at),
        )

    async def add(self, event: WebhookEvent) -> tuple[WebhookEvent, bool]:
        """
        Store an event; the (source, external_event_id) constraint rejects repeats.

        Args:
            event: Event to store

        Returns:
            Tuple of (stored event, True if newly inserted)
        """
        db: Session = self._session_factory()
        try:
            db.add(
                WebhookEventModel(
                    id=event.id,
                    source=event.source,
                    event_type=event.event_type,
                    external_event_id=event.external_event_id,
                    lead_id=event.lead_id,
                    raw_payload=event.raw_payload,
                    processing_status=event.processing_status.value,
                    processing_attempts=event.processing_attempts,
                    tracking_id=event.tracking_id,
                    created_at=event.created_at,
                )
            )
            db.commit()
            return event, True
        except IntegrityError:
            db.rollback()
            existing = (
                db.query(WebhookEventModel)
                .filter(
                    WebhookEventModel.source == event.source,
                    WebhookEventModel.external_event_id == event.external_event_id,
                )
                .one()
            )
            return self._model_to_entity(existing), False
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while storing {event.source} event: {str(e)}")
            raise
        finally:
            db.close()

    async def get(self, event_id: str) -> Optional[WebhookEvent]:
        db: Session = self._session_factory()
        try:
            model = db.get(WebhookEventModel, event_id)
            return self._model_to_entity(model) if model else None
        except SQLAlchemyError as e:
            logger.error(f"Database error while getting event {event_id}: {str(e)}")
            return None
        finally:
            db.close()

    async def claim(self, event_id: str, expected_attempts: int, now: datetime) -> bool:
        db: Session = self._session_factory()
        try:
            updated = (
                db.query(WebhookEventModel)
                .filter(
                    WebhookEventModel.id == event_id,
                    WebhookEventModel.processing_status == ProcessingStatus.PENDING.value,
                    WebhookEventModel.processing_attempts == expected_attempts,
                )
                .update(
                    {
                        WebhookEventModel.processing_attempts: expected_attempts + 1,
                        WebhookEventModel.last_processing_attempt: now,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
            return updated == 1
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while claiming event {event_id}: {str(e)}")
            raise
        finally:
            db.close()

    async def mark_processed(
        self,
        event_id: str,
        processed_payload: dict[str, Any],
        lead_id: Optional[str],
        now: datetime,
    ) -> None:
        db: Session = self._session_factory()
        try:
            model = db.get(WebhookEventModel, event_id)
            if model is None:
                return
            model.processing_status = ProcessingStatus.PROCESSED.value
            model.processed_payload = processed_payload
            model.lead_id = lead_id or model.lead_id
            model.error_message = None
            model.processed_at = now
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while marking event {event_id} processed: {str(e)}")
            raise
        finally:
            db.close()

    async def mark_failed(self, event_id: str, error_message: str, now: datetime) -> None:
        db: Session = self._session_factory()
        try:
            model = db.get(WebhookEventModel, event_id)
            if model is None:
                return
            model.processing_status = ProcessingStatus.FAILED.value
            model.error_message = error_message
            model.processed_at = now
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while marking event {event_id} failed: {str(e)}")
            raise
        finally:
            db.close()

    async def list_pending(self, received_before: datetime, limit: int) -> list[WebhookEvent]:
        db: Session = self._session_factory()
        try:
            models = (
                db.query(WebhookEventModel)
                .filter(
                    WebhookEventModel.processing_status == ProcessingStatus.PENDING.value,
                    WebhookEventModel.created_at <= received_before,
                    or_(
                        WebhookEventModel.last_processing_attempt.is_(None),
                        WebhookEventModel.last_processing_attempt <= received_before,
                    ),
                )
                .order_by(WebhookEventModel.created_at)
                .limit(limit)
                .all()
            )
            return [self._model_to_entity(model) for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing pending events: {str(e)}")
            raise
        finally:
            db.close()
