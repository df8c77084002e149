"""Postgres-backed meeting repository adapter."""

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.application.ports.meeting_repository import MeetingRepository
from app.domain.entities.meeting import Meeting, MeetingReminder, MeetingStatus, ReminderKind
from app.infrastructure.db import SessionFactory, get_db_session
from app.infrastructure.logging.logger import logger

from .converters import ensure_utc
from .models import MeetingModel, MeetingReminderModel

# Flag column (and its *_sent_at companion) per reminder slot
FLAG_COLUMNS = {
    ReminderKind.EMAIL_24H: "reminder_24h_sent",
    ReminderKind.EMAIL_1H: "reminder_1h_sent",
    ReminderKind.SMS_24H: "sms_24h_sent",
    ReminderKind.SMS_1H: "sms_1h_sent",
}


class PostgresMeetingRepository(MeetingRepository):
    """Postgres implementation of meeting repository."""

    def __init__(self, session_factory: Optional[SessionFactory] = None) -> None:
        self._session_factory = session_factory or get_db_session

    def _model_to_entity(self, model: MeetingModel) -> Meeting:
        return Meeting(
            id=model.id,
            lead_id=model.lead_id,
            start_time=ensure_utc(model.start_time),
            end_time=ensure_utc(model.end_time),
            agent_id=model.agent_id,
            external_event_uri=model.external_event_uri,
            title=model.title,
            timezone=model.timezone,
            status=MeetingStatus(model.status),
            location=model.location,
            reminder_24h_sent=bool(model.reminder_24h_sent),
            reminder_1h_sent=bool(model.reminder_1h_sent),
            sms_24h_sent=bool(model.sms_24h_sent),
            sms_1h_sent=bool(model.sms_1h_sent),
            tracking_id=model.tracking_id,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at),
        )

    async def get(self, meeting_id: str) -> Optional[Meeting]:
        db: Session = self._session_factory()
        try:
            model = db.get(MeetingModel, meeting_id)
            return self._model_to_entity(model) if model else None
        except SQLAlchemyError as e:
            logger.error(f"Database error while getting meeting {meeting_id}: {str(e)}")
            return None
        finally:
            db.close()

    async def get_by_external_uri(self, external_event_uri: str) -> Optional[Meeting]:
        db: Session = self._session_factory()
        try:
            model = (
                db.query(MeetingModel)
                .filter(MeetingModel.external_event_uri == external_event_uri)
                .first()
            )
            return self._model_to_entity(model) if model else None
        except SQLAlchemyError as e:
            logger.error(f"Database error while looking up meeting by URI: {str(e)}")
            return None
        finally:
            db.close()

    async def add(self, meeting: Meeting) -> tuple[Meeting, bool]:
        """
        Insert a meeting; the unique external URI rejects repeats.

        Args:
            meeting: Meeting to insert

        Returns:
            Tuple of (stored meeting, True if newly inserted)
        """
        db: Session = self._session_factory()
        try:
            db.add(
                MeetingModel(
                    id=meeting.id,
                    lead_id=meeting.lead_id,
                    agent_id=meeting.agent_id,
                    external_event_uri=meeting.external_event_uri,
                    title=meeting.title,
                    start_time=meeting.start_time,
                    end_time=meeting.end_time,
                    timezone=meeting.timezone,
                    status=meeting.status.value,
                    location=meeting.location,
                    tracking_id=meeting.tracking_id,
                    created_at=meeting.created_at,
                    updated_at=meeting.updated_at,
                )
            )
            db.commit()
            return meeting, True
        except IntegrityError:
            db.rollback()
            existing = (
                db.query(MeetingModel)
                .filter(MeetingModel.external_event_uri == meeting.external_event_uri)
                .one()
            )
            return self._model_to_entity(existing), False
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while adding meeting for lead {meeting.lead_id}: {str(e)}")
            raise
        finally:
            db.close()

    async def current_for_lead(self, lead_id: str) -> Optional[Meeting]:
        db: Session = self._session_factory()
        try:
            model = (
                db.query(MeetingModel)
                .filter(
                    MeetingModel.lead_id == lead_id,
                    MeetingModel.status != MeetingStatus.CANCELED.value,
                )
                .order_by(MeetingModel.created_at.desc())
                .first()
            )
            return self._model_to_entity(model) if model else None
        except SQLAlchemyError as e:
            logger.error(f"Database error while getting meeting for lead {lead_id}: {str(e)}")
            return None
        finally:
            db.close()

    async def update_status(
        self,
        meeting_id: str,
        status: MeetingStatus,
        now: datetime,
        tracking_id: Optional[str] = None,
    ) -> None:
        db: Session = self._session_factory()
        try:
            values = {MeetingModel.status: status.value, MeetingModel.updated_at: now}
            if tracking_id:
                values[MeetingModel.tracking_id] = tracking_id
            db.query(MeetingModel).filter(MeetingModel.id == meeting_id).update(
                values, synchronize_session=False
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while updating meeting {meeting_id}: {str(e)}")
            raise
        finally:
            db.close()

    async def list_upcoming(self, start_after: datetime, start_before: datetime) -> list[Meeting]:
        db: Session = self._session_factory()
        try:
            models = (
                db.query(MeetingModel)
                .filter(
                    MeetingModel.status == MeetingStatus.SCHEDULED.value,
                    MeetingModel.start_time > start_after,
                    MeetingModel.start_time <= start_before,
                )
                .order_by(MeetingModel.start_time)
                .all()
            )
            return [self._model_to_entity(model) for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing upcoming meetings: {str(e)}")
            raise
        finally:
            db.close()

    async def record_reminder_sent(self, kind: ReminderKind, reminder: MeetingReminder) -> None:
        """
        Set the reminder flag and append the history row in one transaction.

        Args:
            kind: Reminder slot whose flag is set
            reminder: History record to append
        """
        db: Session = self._session_factory()
        try:
            model = db.get(MeetingModel, reminder.meeting_id)
            if model is None:
                logger.warning(f"Meeting {reminder.meeting_id} not found; reminder flag not set")
                return
            flag = FLAG_COLUMNS[kind]
            setattr(model, flag, True)
            setattr(model, f"{flag}_at", reminder.sent_at)
            model.updated_at = reminder.sent_at or model.updated_at
            if reminder.tracking_id:
                model.tracking_id = reminder.tracking_id
            db.add(
                MeetingReminderModel(
                    meeting_id=reminder.meeting_id,
                    reminder_type=reminder.reminder_type,
                    delivery_method=reminder.delivery_method,
                    scheduled_for=reminder.scheduled_for,
                    sent_at=reminder.sent_at,
                    provider_message_id=reminder.provider_message_id,
                    status=reminder.status,
                    error_message=reminder.error_message,
                    tracking_id=reminder.tracking_id,
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error while recording reminder for {reminder.meeting_id}: {str(e)}")
            raise
        finally:
            db.close()

    async def list_reminders(self, meeting_id: str) -> list[MeetingReminder]:
        db: Session = self._session_factory()
        try:
            models = (
                db.query(MeetingReminderModel)
                .filter(MeetingReminderModel.meeting_id == meeting_id)
                .order_by(MeetingReminderModel.id)
                .all()
            )
            return [
                MeetingReminder(
                    meeting_id=model.meeting_id,
                    reminder_type=model.reminder_type,
                    delivery_method=model.delivery_method,
                    scheduled_for=ensure_utc(model.scheduled_for),
                    status=model.status,
                    sent_at=ensure_utc(model.sent_at),
                    provider_message_id=model.provider_message_id,
                    error_message=model.error_message,
                    tracking_id=model.tracking_id,
                )
                for model in models
            ]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing reminders for {meeting_id}: {str(e)}")
            return []
        finally:
            db.close()
