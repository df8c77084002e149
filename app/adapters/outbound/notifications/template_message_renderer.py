"""Default message renderer backed by the notification copy catalog."""

from datetime import datetime
from typing import Any, Callable

from app.application.dtos.notification import RenderedContent
from app.application.ports.message_renderer import MessageRenderer
from app.application.use_cases.notification_messages import NotificationMessages


def _format_start(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%A, %B %d at %H:%M %Z").strip()
    return str(value)


def _invitation(ctx: dict[str, Any]) -> RenderedContent:
    return RenderedContent(
        subject=NotificationMessages.INVITATION_SUBJECT,
        body=NotificationMessages.invitation_body(
            ctx["first_name"], ctx["agent_name"], ctx["scheduling_link"]
        ),
    )


def _followup(ctx: dict[str, Any]) -> RenderedContent:
    return RenderedContent(
        subject=NotificationMessages.FOLLOWUP_SUBJECT,
        body=NotificationMessages.followup_body(
            ctx["first_name"], ctx["agent_name"], ctx["scheduling_link"]
        ),
    )


def _email_reminder(offset: str) -> Callable[[dict[str, Any]], RenderedContent]:
    def render(ctx: dict[str, Any]) -> RenderedContent:
        return RenderedContent(
            subject=NotificationMessages.reminder_subject(offset, ctx.get("meeting_title", "Meeting")),
            body=NotificationMessages.reminder_body(
                ctx["first_name"],
                ctx["agent_name"],
                offset,
                _format_start(ctx["meeting_start"]),
                ctx.get("location"),
            ),
        )

    return render


def _sms_reminder(offset: str) -> Callable[[dict[str, Any]], RenderedContent]:
    def render(ctx: dict[str, Any]) -> RenderedContent:
        return RenderedContent(
            body=NotificationMessages.reminder_sms(
                ctx["first_name"], offset, _format_start(ctx["meeting_start"])
            ),
        )

    return render


class TemplateMessageRenderer(MessageRenderer):
    """Renders the built-in templates by name."""

    TEMPLATES: dict[str, Callable[[dict[str, Any]], RenderedContent]] = {
        "meeting_invitation": _invitation,
        "followup_reminder": _followup,
        "meeting_reminder_24h_email": _email_reminder("24h"),
        "meeting_reminder_1h_email": _email_reminder("1h"),
        "meeting_reminder_24h_sms": _sms_reminder("24h"),
        "meeting_reminder_1h_sms": _sms_reminder("1h"),
    }

    def render(self, template_name: str, context: dict[str, Any]) -> RenderedContent:
        """
        Render a template.

        Args:
            template_name: One of ``TEMPLATES``
            context: first_name, agent_name and template-specific values

        Returns:
            Rendered content

        Raises:
            KeyError: If the template or a required context value is missing
        """
        return self.TEMPLATES[template_name](context)
