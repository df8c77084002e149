"""Message renderer port."""

from abc import ABC, abstractmethod
from typing import Any

from app.application.dtos.notification import RenderedContent


class MessageRenderer(ABC):
    """Port interface for turning a template name and context into content."""

    @abstractmethod
    def render(self, template_name: str, context: dict[str, Any]) -> RenderedContent:
        """
        Render a template.

        Args:
            template_name: Template identifier (e.g. "meeting_invitation")
            context: Values substituted into the template

        Returns:
            Rendered content

        Raises:
            KeyError: If the template does not exist
        """
        pass
