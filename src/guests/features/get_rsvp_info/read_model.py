import abc
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.database import async_session_manager
from src.guests.dtos import RSVPInfoDTO, RSVPResponse
from src.guests.errors import NotAMemberError
from src.guests.repository.directory import EventRepository, GuestRepository
from src.guests.repository.invitations import InvitationRepository


class RSVPReadModel(abc.ABC):
    @abc.abstractmethod
    async def get_rsvp_info(self, guest_id: UUID, event_id: UUID) -> RSVPInfoDTO:
        """
        Get what the RSVP page shows: guest, event and the current answer.
        Raises NotAMemberError when the guest is not invited to the event.
        """
        raise NotImplementedError


class SqlRSVPReadModel(RSVPReadModel):
    """SQL implementation of RSVP read model."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker
        self._guests = GuestRepository()
        self._events = EventRepository()
        self._invitations = InvitationRepository()

    async def get_rsvp_info(self, guest_id: UUID, event_id: UUID) -> RSVPInfoDTO:
        """
        Opening the page counts as opening the invitation, so a SENT
        invitation moves to OPENED here.
        """
        async with async_session_manager(self._session_maker) as session:
            if not await self._events.is_member(session, guest_id, event_id):
                raise NotAMemberError(guest_id, event_id)

            guest = await self._guests.get_guest(session, guest_id)
            event = await self._events.get_event(session, event_id)
            if guest is None or event is None:
                raise NotAMemberError(guest_id, event_id)

            await self._invitations.mark_opened(
                session, guest_id, event_id, opened_at=datetime.now(UTC)
            )
            invitation = await self._invitations.find_latest(session, guest_id, event_id)

            return RSVPInfoDTO(
                guest_id=guest.uuid,
                first_name=guest.first_name,
                last_name=guest.last_name,
                event_id=event.uuid,
                event_name=event.name,
                event_date=event.date,
                event_location=event.location,
                event_description=event.description,
                response=RSVPResponse(invitation.response)
                if invitation and invitation.response
                else None,
                companion_name=invitation.companion_name if invitation else None,
                is_companion=guest.is_companion,
            )
