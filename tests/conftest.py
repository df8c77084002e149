"""Shared fixtures: SQLite-backed repositories, a controllable clock and a wired container."""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.adapters.outbound.idempotency.noop_idempotency_store import NoOpIdempotencyStore
from app.adapters.outbound.notifications.template_message_renderer import TemplateMessageRenderer
from app.adapters.outbound.persistence.models import Base
from app.application.dtos.notification import DispatchResult, RenderedContent
from app.application.ports.notification_dispatcher import NotificationDispatcher
from app.domain.entities.agent import Agent
from app.domain.entities.lead import Lead
from app.domain.entities.meeting import Meeting
from app.domain.entities.outbound_message import Channel
from app.infrastructure.config.settings import Settings
from app.infrastructure.wiring.container import Container

START = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock whose time only moves when a test advances it."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingDispatcher(NotificationDispatcher):
    """Records sends; queued results are returned first, success afterwards."""

    def __init__(self) -> None:
        self.sent: list[tuple[Channel, str, RenderedContent]] = []
        self.results: list = []

    async def send(self, channel: Channel, to: str, content: RenderedContent) -> DispatchResult:
        self.sent.append((channel, to, content))
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return DispatchResult.ok(f"provider-{len(self.sent)}", "fake")

    def sent_to(self, channel: Channel) -> list[str]:
        return [to for sent_channel, to, _ in self.sent if sent_channel == channel]


@pytest.fixture
def sqlite_engine():
    """Create SQLite in-memory engine shared across sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    """Session factory handed to the repositories."""
    return sessionmaker(autocommit=False, autoflush=False, bind=sqlite_engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def test_settings():
    """Settings with defaults suitable for tests."""
    return Settings(
        database_url="sqlite://",
        webhook_secret="",
        default_scheduling_link="https://calendly.com/team/intro",
        sms_reminders_enabled=True,
        require_scheduling_integration=False,
    )


@pytest.fixture
def container(test_settings, session_factory, dispatcher, clock):
    """Container wired to SQLite, the recording dispatcher and the fake clock."""
    return Container(
        settings=test_settings,
        dispatcher=dispatcher,
        renderer=TemplateMessageRenderer(),
        idempotency_store=NoOpIdempotencyStore(),
        session_factory=session_factory,
        clock=clock,
    )


class Seeder:
    """Inserts fixture rows through the real repositories."""

    def __init__(self, container: Container, clock: FakeClock) -> None:
        self._container = container
        self._clock = clock

    async def agent(
        self,
        first_name: str,
        last_name: str = "Agent",
        agent_id: Optional[str] = None,
        is_active: bool = True,
        email_verified: bool = True,
        scheduling_link: Optional[str] = None,
    ) -> Agent:
        agent = Agent(
            id=agent_id or f"agent-{first_name.lower()}",
            email=f"{first_name.lower()}@agency.example",
            first_name=first_name,
            last_name=last_name,
            is_active=is_active,
            email_verified=email_verified,
            has_scheduling_integration=scheduling_link is not None,
            scheduling_link=scheduling_link,
        )
        await self._container.agent_repository.save(agent)
        return agent

    async def lead(
        self,
        email: Optional[str] = None,
        first_name: str = "Jane",
        phone: Optional[str] = "+15551230000",
        assigned_agent_id: Optional[str] = None,
        lead_id: Optional[str] = None,
    ) -> Lead:
        lead = Lead(
            id=lead_id or str(uuid4()),
            email=email or f"{uuid4().hex[:8]}@example.com",
            first_name=first_name,
            last_name="Doe",
            phone=phone,
            assigned_agent_id=assigned_agent_id,
            created_at=self._clock(),
            updated_at=self._clock(),
        )
        await self._container.lead_repository.save(lead)
        return lead

    async def meeting(self, lead: Lead, starts_in: timedelta, uri: Optional[str] = None) -> Meeting:
        start = self._clock() + starts_in
        meeting = Meeting(
            id=str(uuid4()),
            lead_id=lead.id,
            start_time=start,
            end_time=start + timedelta(minutes=30),
            external_event_uri=uri or f"https://api.calendly.com/scheduled_events/{uuid4().hex}",
            created_at=self._clock(),
            updated_at=self._clock(),
        )
        stored, _ = await self._container.meeting_repository.add(meeting)
        return stored


@pytest.fixture
def seed(container, clock):
    return Seeder(container, clock)
