from contextlib import asynccontextmanager
from datetime import UTC, datetime
from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient

from src.config.database import async_session_manager, create_engine, create_session_maker
from src.guests.dtos import (
    InvitationStatus,
    InvitationType,
    MessageType,
    RSVPResponse,
)
from src.guests.errors import DispatchFailedError
from src.guests.repository import orm_models  # noqa: F401  registers the tables
from src.guests.repository.directory import EventRepository, GuestRepository
from src.guests.repository.invitations import InvitationRepository
from src.main import app
from src.models.base import BaseModel
from src.notifications.base import NotificationDispatcher


class RecordingNotificationDispatcher(NotificationDispatcher):
    """Keeps delivered messages in memory. Fails for addresses in ``failing``.

    Addresses in ``crashing`` raise something other than a dispatch error, like
    a mail client bug would.
    """

    def __init__(self) -> None:
        self.delivered: list[dict] = []
        self.failing: set[str] = set()
        self.crashing: set[str] = set()

    async def deliver(
        self,
        guest_id: UUID,
        event_id: UUID,
        message_type: MessageType,
        payload: dict,
    ) -> None:
        if payload.get("to_address") in self.crashing:
            raise RuntimeError(f"Mail client crashed for {payload['to_address']}")
        if payload.get("to_address") in self.failing:
            raise DispatchFailedError(f"Mailbox {payload['to_address']} unavailable")
        self.delivered.append(
            {
                "guest_id": guest_id,
                "event_id": event_id,
                "message_type": message_type,
                "payload": payload,
            }
        )


class Seeder:
    """Puts guests, events and invitations straight into the test database."""

    def __init__(self, session_maker) -> None:
        self._session_maker = session_maker
        self._guests = GuestRepository()
        self._events = EventRepository()
        self._invitations = InvitationRepository()

    async def event(self, name: str = "Product Launch", **fields) -> UUID:
        async with async_session_manager(self._session_maker) as session:
            event = await self._events.add_event(
                session,
                name=name,
                date=fields.pop("date", datetime(2026, 11, 20, 19, 0, tzinfo=UTC)),
                location=fields.pop("location", "Main Hall"),
                **fields,
            )
            return event.uuid

    async def guest(
        self,
        email: str,
        first_name: str = "Alice",
        last_name: str = "Smith",
        event_id: UUID | None = None,
        **fields,
    ) -> UUID:
        async with async_session_manager(self._session_maker) as session:
            guest = await self._guests.add_guest(
                session, email=email, first_name=first_name, last_name=last_name, **fields
            )
            if event_id is not None:
                await self._events.add_member(session, guest.uuid, event_id)
            return guest.uuid

    async def invitation(
        self,
        guest_id: UUID,
        event_id: UUID,
        status: InvitationStatus = InvitationStatus.SENT,
        response: RSVPResponse | None = None,
        companion_email: str | None = None,
    ) -> UUID:
        async with async_session_manager(self._session_maker) as session:
            invitation = await self._invitations.add_invitation(
                session,
                guest_id,
                event_id,
                InvitationType.INVITATION,
                status=status,
                sent_at=datetime.now(UTC),
            )
            if response is not None:
                invitation.response = response
                invitation.status = InvitationStatus.RESPONDED
                invitation.responded_at = datetime.now(UTC)
                invitation.has_companion = response == RSVPResponse.COMING_WITH_COMPANION
                invitation.companion_email = companion_email
            return invitation.uuid


@pytest.fixture
async def db_engine(tmp_path):
    # A file database so concurrent sessions get their own connections
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", timeout=30)
    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return create_session_maker(db_engine)


@pytest.fixture
def seed(session_maker) -> Seeder:
    return Seeder(session_maker)


@pytest.fixture
def notification_dispatcher() -> RecordingNotificationDispatcher:
    return RecordingNotificationDispatcher()


@pytest.fixture
def client_factory(session_maker, notification_dispatcher):
    """Build a test client, optionally with dependency overrides."""

    @asynccontextmanager
    async def _client(overrides: dict | None = None):
        app.state.session_maker = session_maker
        app.state.notification_dispatcher = notification_dispatcher
        app.dependency_overrides.update(overrides or {})
        transport = ASGITransport(app=app)
        try:
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac
        finally:
            app.dependency_overrides.clear()

    return _client


@pytest.fixture
async def client(client_factory):
    async with client_factory() as ac:
        yield ac
