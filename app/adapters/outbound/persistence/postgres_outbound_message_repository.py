"""Postgres-backed outbound message queue adapter."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.application.ports.outbound_message_repository import OutboundMessageRepository
from app.domain.entities.outbound_message import Channel, MessageStatus, OutboundMessage
from app.infrastructure.db import SessionFactory, get_db_session
from app.infrastructure.logging.logger import logger

from .converters import ensure_utc
from .models import OutboundMessageModel

DUE_STATUSES = (MessageStatus.PENDING.value, MessageStatus.SCHEDULED.value)


class PostgresOutboundMessageRepository(OutboundMessageRepository):
    """Postgres implementation of the outbound message queue."""

    def __init__(self, session_factory: Optional[SessionFactory] = None) -> None:
        self._session_factory = session_factory or get_db_session

    def _model_to_entity(self, model: OutboundMessageModel) -> OutboundMessage:
        return OutboundMessage(
            id=model.id,
            lead_id=model.lead_id,
            channel=Channel(model.channel),
            recipient=model.recipient,
            body=model.body,
            message_type=model.message_type,
            dedupe_key=model.dedupe_key,
            subject=model.subject,
            html_body=model.html_body,
            status=MessageStatus(model.status),
            scheduled_for=ensure_utc(model.scheduled_for),
            retry_count=model.retry_count or 0,
            max_retries=model.max_retries,
            provider_message_id=model.provider_message_id,
            sent_at=ensure_utc(model.sent_at),
            error_message=model.error_message,
            metadata=dict(model.message_metadata or {}),
            tracking_id=model.tracking_id,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at),
        )

    def _entity_to_model(self, message: OutboundMessage) -> OutboundMessageModel:
        return OutboundMessageModel(
            id=message.id,
            lead_id=message.lead_id,
            channel=message.channel.value,
            recipient=message.recipient,
            subject=message.subject,
            body=message.body,
            html_body=message.html_body,
            message_type=message.message_type,
            status=message.status.value,
            scheduled_for=message.scheduled_for,
            retry_count=message.retry_count,
            max_retries=message.max_retries,
            dedupe_key=message.dedupe_key,
            message_metadata=message.metadata,
            tracking_id=message.tracking_id,
            created_at=message.created_at,
            updated_at=message.updated_at,
        )

    async def enqueue_once(self, message: OutboundMessage) -> tuple[OutboundMessage, bool]:
        """
        Insert a message keyed by its dedupe key.

        Args:
            message: Message to enqueue

        Returns:
            Tuple of (stored message, True if this call queued it)
        """
        db: Session = self._session_factory()
        try:
            try:
                db.add(self._entity_to_model(message))
                db.commit()
                return message, True
            except IntegrityError:
                db.rollback()

            # Duplicate key: requeue only if the earlier attempt gave up
            requeued = (
                db.query(OutboundMessageModel)
                .filter(
                    OutboundMessageModel.dedupe_key == message.dedupe_key,
                    OutboundMessageModel.status == MessageStatus.FAILED.value,
                )
                .update(
                    {
                        OutboundMessageModel.status: MessageStatus.PENDING.value,
                        OutboundMessageModel.retry_count: 0,
                        OutboundMessageModel.scheduled_for: message.scheduled_for,
                        OutboundMessageModel.error_message: None,
                        OutboundMessageModel.tracking_id: message.tracking_id,
                        OutboundMessageModel.updated_at: datetime.now(timezone.utc),
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
            existing = (
                db.query(OutboundMessageModel)
                .filter(OutboundMessageModel.dedupe_key == message.dedupe_key)
                .one()
            )
            return self._model_to_entity(existing), requeued == 1
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while enqueueing message {message.dedupe_key}: {str(e)}")
            raise
        finally:
            db.close()

    async def get(self, message_id: str) -> Optional[OutboundMessage]:
        db: Session = self._session_factory()
        try:
            model = db.get(OutboundMessageModel, message_id)
            return self._model_to_entity(model) if model else None
        except SQLAlchemyError as e:
            logger.error(f"Database error while getting message {message_id}: {str(e)}")
            return None
        finally:
            db.close()

    async def list_due(self, now: datetime, limit: int) -> list[OutboundMessage]:
        db: Session = self._session_factory()
        try:
            models = (
                db.query(OutboundMessageModel)
                .filter(
                    OutboundMessageModel.status.in_(DUE_STATUSES),
                    OutboundMessageModel.scheduled_for <= now,
                )
                .order_by(OutboundMessageModel.scheduled_for, OutboundMessageModel.created_at)
                .limit(limit)
                .all()
            )
            return [self._model_to_entity(model) for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing due messages: {str(e)}")
            raise
        finally:
            db.close()

    async def claim(self, message_id: str, expected_status: MessageStatus) -> bool:
        db: Session = self._session_factory()
        try:
            updated = (
                db.query(OutboundMessageModel)
                .filter(
                    OutboundMessageModel.id == message_id,
                    OutboundMessageModel.status == expected_status.value,
                )
                .update(
                    {
                        OutboundMessageModel.status: MessageStatus.SENDING.value,
                        OutboundMessageModel.updated_at: datetime.now(timezone.utc),
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
            return updated == 1
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while claiming message {message_id}: {str(e)}")
            raise
        finally:
            db.close()

    def _update(self, message_id: str, values: dict, tracking_id: Optional[str] = None) -> None:
        db: Session = self._session_factory()
        try:
            values[OutboundMessageModel.updated_at] = datetime.now(timezone.utc)
            if tracking_id:
                values[OutboundMessageModel.tracking_id] = tracking_id
            db.query(OutboundMessageModel).filter(OutboundMessageModel.id == message_id).update(
                values, synchronize_session=False
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while updating message {message_id}: {str(e)}")
            raise
        finally:
            db.close()

    async def mark_sent(
        self,
        message_id: str,
        provider_message_id: Optional[str],
        sent_at: datetime,
        tracking_id: Optional[str] = None,
    ) -> None:
        self._update(
            message_id,
            {
                OutboundMessageModel.status: MessageStatus.SENT.value,
                OutboundMessageModel.provider_message_id: provider_message_id,
                OutboundMessageModel.sent_at: sent_at,
                OutboundMessageModel.error_message: None,
            },
            tracking_id,
        )

    async def schedule_retry(
        self,
        message_id: str,
        retry_count: int,
        scheduled_for: datetime,
        error_message: str,
        tracking_id: Optional[str] = None,
    ) -> None:
        self._update(
            message_id,
            {
                OutboundMessageModel.status: MessageStatus.SCHEDULED.value,
                OutboundMessageModel.retry_count: retry_count,
                OutboundMessageModel.scheduled_for: scheduled_for,
                OutboundMessageModel.error_message: error_message,
            },
            tracking_id,
        )

    async def mark_failed(
        self,
        message_id: str,
        retry_count: int,
        error_message: str,
        tracking_id: Optional[str] = None,
    ) -> None:
        self._update(
            message_id,
            {
                OutboundMessageModel.status: MessageStatus.FAILED.value,
                OutboundMessageModel.retry_count: retry_count,
                OutboundMessageModel.error_message: error_message,
            },
            tracking_id,
        )
