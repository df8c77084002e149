"""Meeting repository port."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from app.domain.entities.meeting import Meeting, MeetingReminder, MeetingStatus, ReminderKind


class MeetingRepository(ABC):
    """Port interface for meeting repository."""

    @abstractmethod
    async def get(self, meeting_id: str) -> Optional[Meeting]:
        """
        Get a meeting by id.

        Args:
            meeting_id: Meeting identifier

        Returns:
            Meeting, or None if not found
        """
        pass

    @abstractmethod
    async def get_by_external_uri(self, external_event_uri: str) -> Optional[Meeting]:
        """
        Get a meeting by the scheduling tool's event URI.

        Args:
            external_event_uri: External event URI

        Returns:
            Meeting, or None if not found
        """
        pass

    @abstractmethod
    async def add(self, meeting: Meeting) -> tuple[Meeting, bool]:
        """
        Insert a meeting unless its external event URI is already stored.

        Args:
            meeting: Meeting to insert

        Returns:
            Tuple of (stored meeting, True if newly inserted)
        """
        pass

    @abstractmethod
    async def current_for_lead(self, lead_id: str) -> Optional[Meeting]:
        """
        Get the latest non-canceled meeting of a lead.

        Args:
            lead_id: Lead identifier

        Returns:
            Meeting, or None if the lead has none
        """
        pass

    @abstractmethod
    async def update_status(
        self,
        meeting_id: str,
        status: MeetingStatus,
        now: datetime,
        tracking_id: Optional[str] = None,
    ) -> None:
        """
        Change a meeting's status (canceled, completed, no_show).

        Args:
            meeting_id: Meeting identifier
            status: New status
            now: Change time
            tracking_id: Correlation token written to the row
        """
        pass

    @abstractmethod
    async def list_upcoming(self, start_after: datetime, start_before: datetime) -> list[Meeting]:
        """
        List scheduled meetings starting within a window.

        Args:
            start_after: Window start (exclusive)
            start_before: Window end (inclusive)

        Returns:
            Meetings ordered by start time
        """
        pass

    @abstractmethod
    async def record_reminder_sent(self, kind: ReminderKind, reminder: MeetingReminder) -> None:
        """
        Set the meeting's flag for a reminder slot and append a history row.
        The meeting row takes the reminder's tracking id.

        Args:
            kind: Reminder slot whose flag is set
            reminder: History record to append
        """
        pass

    @abstractmethod
    async def list_reminders(self, meeting_id: str) -> list[MeetingReminder]:
        """
        List the reminder history of a meeting.

        Args:
            meeting_id: Meeting identifier

        Returns:
            History records, oldest first
        """
        pass
