"""RSVP workflow: record a guest's answer and materialize their companion.

The primary guest's response is committed first and stands on its own.
Companion steps run afterwards in short separate transactions; a failing
step is logged and reported as a warning, it never undoes the response.
"""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.database import async_session_manager
from src.config.settings import settings
from src.guests.dtos import (
    DispatchResultDTO,
    EventDTO,
    GuestDTO,
    InvitationDTO,
    InvitationStatus,
    MessageType,
    RSVPResponse,
    RSVPResultDTO,
    qr_type_for,
)
from src.guests.errors import (
    CheckInError,
    ErrorKind,
    GuestNotFoundError,
    NotAMemberError,
    StoreConflictError,
)
from src.guests.features.qr_codes.write_model import QRCodeEngine
from src.guests.features.request_qr_dispatch.write_model import QRDispatchRun
from src.guests.repository.directory import EventRepository, GuestRepository
from src.guests.repository.invitations import InvitationRepository
from src.guests.urls import RSVP_URL
from src.notifications.base import NotificationDispatcher

logger = logging.getLogger(__name__)

COMPANION_FIRST_NAME = "Guest"


def companion_name_from_email(email: str) -> str:
    """'jane.doe@example.com' -> 'Jane Doe'."""
    local_part = email.split("@", 1)[0]
    for separator in "._-+":
        local_part = local_part.replace(separator, " ")
    return " ".join(word.capitalize() for word in local_part.split()) or email


class RSVPWorkflow(ABC):
    """Abstract base class for the RSVP workflow."""

    @abstractmethod
    async def submit_response(
        self,
        guest_id: UUID,
        event_id: UUID,
        response: RSVPResponse,
        companion_email: str | None = None,
    ) -> RSVPResultDTO:
        """Record the guest's answer to their invitation.

        Raises:
            NotAMemberError: the guest is not invited to the event.
        """
        raise NotImplementedError

    @abstractmethod
    async def request_qr_dispatch(
        self, event_id: UUID, guest_ids: list[UUID] | None = None
    ) -> list[DispatchResultDTO]:
        """Send QR codes to every attending guest of the event.

        Raises:
            EventNotFoundError: the event does not exist.
        """
        raise NotImplementedError


class SqlRSVPWorkflow(RSVPWorkflow):
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        qr_code_engine: QRCodeEngine,
        notification_dispatcher: NotificationDispatcher,
        dispatch_interval: float | None = None,
    ) -> None:
        self._session_maker = session_maker
        self._qr_code_engine = qr_code_engine
        self._notification_dispatcher = notification_dispatcher
        self._dispatch_interval = (
            settings.dispatch_interval_seconds if dispatch_interval is None else dispatch_interval
        )
        self._guests = GuestRepository()
        self._events = EventRepository()
        self._invitations = InvitationRepository()

    def _session(self):
        return async_session_manager(self._session_maker)

    async def submit_response(
        self,
        guest_id: UUID,
        event_id: UUID,
        response: RSVPResponse,
        companion_email: str | None = None,
    ) -> RSVPResultDTO:
        warnings: list[str] = []

        if companion_email is not None:
            companion_email = companion_email.strip().lower() or None
        if response != RSVPResponse.COMING_WITH_COMPANION:
            companion_email = None

        try:
            invitation, guest, event = await self._record_response(
                guest_id, event_id, response, companion_email, warnings
            )
        except StoreConflictError:
            # A concurrent submit created the invitation first; update it instead
            warnings.clear()
            invitation, guest, event = await self._record_response(
                guest_id, event_id, response, companion_email, warnings
            )

        logger.info(
            "Guest %s responded %s to event %s", guest_id, response.value, event_id
        )

        companion_id = None
        if invitation.companion_email:
            companion_id = await self._materialize_companion(
                guest, event, invitation.companion_email, warnings
            )

        return RSVPResultDTO(invitation=invitation, companion_id=companion_id, warnings=warnings)

    async def _record_response(
        self,
        guest_id: UUID,
        event_id: UUID,
        response: RSVPResponse,
        companion_email: str | None,
        warnings: list[str],
    ) -> tuple[InvitationDTO, GuestDTO, EventDTO]:
        now = datetime.now(UTC)
        async with self._session() as session:
            if not await self._events.is_member(session, guest_id, event_id):
                raise NotAMemberError(guest_id, event_id)

            guest = await self._guests.get_guest(session, guest_id)
            event = await self._events.get_event(session, event_id)
            if guest is None:
                raise GuestNotFoundError(guest_id)

            if companion_email is not None and companion_email == guest.email.lower():
                logger.warning("Guest %s named themselves as companion", guest_id)
                warnings.append("Companion email cannot be your own email address")
                companion_email = None

            invitation = await self._invitations.find_latest(session, guest_id, event_id)
            if invitation is None:
                invitation = await self._invitations.add_invitation(
                    session, guest_id, event_id, status=InvitationStatus.RESPONDED
                )

            invitation.response = response
            invitation.responded_at = now
            invitation.status = InvitationStatus.RESPONDED
            invitation.has_companion = response == RSVPResponse.COMING_WITH_COMPANION
            invitation.companion_email = companion_email
            invitation.companion_name = (
                companion_name_from_email(companion_email) if companion_email else None
            )
            await session.flush()

            return (
                InvitationDTO.from_invitation(invitation),
                GuestDTO.from_guest(guest),
                EventDTO.from_event(event),
            )

    async def _materialize_companion(
        self,
        guest: GuestDTO,
        event: EventDTO,
        companion_email: str,
        warnings: list[str],
    ) -> UUID | None:
        """Create the companion with membership, invitation, codes and an email.

        Returns the companion's id when the guest row exists, even if a later
        step failed.
        """
        try:
            companion = await self._upsert_companion_guest(guest, companion_email)
        except CheckInError as e:
            logger.warning("Could not create companion of guest %s: %s", guest.id, e)
            warnings.append(f"{e.kind.value}: Could not register your companion")
            return None
        except Exception:
            logger.exception("Could not create companion of guest %s", guest.id)
            warnings.append(
                f"{ErrorKind.INTERNAL_ERROR.value}: Could not register your companion"
            )
            return None
        logger.info("Companion %s resolved for guest %s", companion.id, guest.id)

        steps = (
            ("Could not add your companion to the guest list", self._add_companion_membership),
            ("Could not create your companion's invitation", self._add_companion_invitation),
            ("Could not create entry codes", self._issue_codes),
            ("Could not send your companion's invitation", self._send_companion_invitation),
        )
        for failure_message, step in steps:
            try:
                await step(guest, companion, event)
            except CheckInError as e:
                logger.warning(
                    "Companion step %s failed for guest %s: %s", step.__name__, guest.id, e
                )
                warnings.append(f"{e.kind.value}: {failure_message}")
                break
            except Exception:
                logger.exception(
                    "Companion step %s crashed for guest %s", step.__name__, guest.id
                )
                warnings.append(f"{ErrorKind.INTERNAL_ERROR.value}: {failure_message}")
                break

        return companion.id

    async def _upsert_companion_guest(self, guest: GuestDTO, companion_email: str) -> GuestDTO:
        try:
            async with self._session() as session:
                companion = await self._guests.get_guest_by_email(session, companion_email)
                if companion is None:
                    companion = await self._guests.add_guest(
                        session,
                        email=companion_email,
                        first_name=COMPANION_FIRST_NAME,
                        last_name=f"of {guest.first_name}",
                        is_companion=True,
                    )
                return GuestDTO.from_guest(companion)
        except StoreConflictError:
            async with self._session() as session:
                companion = await self._guests.get_guest_by_email(session, companion_email)
                if companion is None:
                    raise
                return GuestDTO.from_guest(companion)

    async def _add_companion_membership(
        self, guest: GuestDTO, companion: GuestDTO, event: EventDTO
    ) -> None:
        try:
            async with self._session() as session:
                await self._events.add_member(session, companion.id, event.id)
        except StoreConflictError:
            logger.info("Companion %s was added to event %s concurrently", companion.id, event.id)

    async def _add_companion_invitation(
        self, guest: GuestDTO, companion: GuestDTO, event: EventDTO
    ) -> None:
        # Companions are confirmed by their host and do not RSVP themselves
        try:
            async with self._session() as session:
                if await self._invitations.find_latest(session, companion.id, event.id) is None:
                    await self._invitations.add_invitation(
                        session,
                        companion.id,
                        event.id,
                        status=InvitationStatus.SENT,
                        sent_at=datetime.now(UTC),
                    )
        except StoreConflictError:
            logger.info("Invitation of companion %s was created concurrently", companion.id)

    async def _issue_codes(self, guest: GuestDTO, companion: GuestDTO, event: EventDTO) -> None:
        await self._qr_code_engine.issue(guest.id, event.id, qr_type_for(guest))
        await self._qr_code_engine.issue(companion.id, event.id, qr_type_for(companion))

    async def _send_companion_invitation(
        self, guest: GuestDTO, companion: GuestDTO, event: EventDTO
    ) -> None:
        rsvp_path = RSVP_URL.format(event_id=event.id, guest_id=companion.id)
        await self._notification_dispatcher.deliver(
            companion.id,
            event.id,
            MessageType.INVITATION,
            {
                "to_address": companion.email,
                "guest_name": companion_name_from_email(companion.email),
                "invited_by": guest.full_name,
                "event_name": event.name,
                "event_date": event.date.strftime("%d %B %Y, %H:%M"),
                "event_location": event.location,
                "rsvp_url": f"{settings.frontend_url}{rsvp_path}",
            },
        )

    async def request_qr_dispatch(
        self, event_id: UUID, guest_ids: list[UUID] | None = None
    ) -> list[DispatchResultDTO]:
        run = QRDispatchRun(
            session_maker=self._session_maker,
            qr_code_engine=self._qr_code_engine,
            notification_dispatcher=self._notification_dispatcher,
            dispatch_interval=self._dispatch_interval,
        )
        return await run.run(event_id, guest_ids)
