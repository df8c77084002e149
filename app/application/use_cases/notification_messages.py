"""English notification copy for the lead lifecycle."""

from typing import Optional


class NotificationMessages:
    """Centralized notification copy."""

    SIGNATURE = "\n\nBest regards,\n{agent_name}"

    # Meeting invitation
    INVITATION_SUBJECT = "Let's find a time to talk"

    @staticmethod
    def invitation_body(first_name: str, agent_name: str, scheduling_link: str) -> str:
        """Generate the invitation email body."""
        return (
            f"Hi {first_name},\n\n"
            "Thanks for reaching out! I'd love to learn more about what you're looking for "
            "and show you how we can help.\n\n"
            f"Pick any time that works for you here: {scheduling_link}\n\n"
            "It only takes a minute to book."
            + NotificationMessages.SIGNATURE.format(agent_name=agent_name)
        )

    # Follow-up when no meeting was booked
    FOLLOWUP_SUBJECT = "Still interested in a quick call?"

    @staticmethod
    def followup_body(first_name: str, agent_name: str, scheduling_link: str) -> str:
        """Generate the follow-up email body."""
        return (
            f"Hi {first_name},\n\n"
            "I noticed you haven't had a chance to book a meeting yet. "
            "No pressure, the link is still open whenever you're ready:\n\n"
            f"{scheduling_link}"
            + NotificationMessages.SIGNATURE.format(agent_name=agent_name)
        )

    # Meeting reminders
    @staticmethod
    def reminder_subject(offset: str, meeting_title: str) -> str:
        """Generate the reminder email subject."""
        when = "tomorrow" if offset == "24h" else "in 1 hour"
        return f"Reminder: {meeting_title} {when}"

    @staticmethod
    def reminder_body(
        first_name: str,
        agent_name: str,
        offset: str,
        meeting_start: str,
        location: Optional[str] = None,
    ) -> str:
        """Generate the reminder email body."""
        when = "tomorrow" if offset == "24h" else "in about an hour"
        body = f"Hi {first_name},\n\nJust a reminder that we're meeting {when}, at {meeting_start}."
        if location:
            body += f"\n\nWhere: {location}"
        return body + NotificationMessages.SIGNATURE.format(agent_name=agent_name)

    @staticmethod
    def reminder_sms(first_name: str, offset: str, meeting_start: str) -> str:
        """Generate the reminder SMS text (kept under one segment where possible)."""
        when = "tomorrow" if offset == "24h" else "in 1 hour"
        return f"Hi {first_name}, reminder: your meeting is {when} ({meeting_start}). Reply STOP to opt out."
