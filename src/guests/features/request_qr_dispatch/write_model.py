"""Batch dispatch of QR codes to the guests who said they are coming."""

import asyncio
import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.database import async_session_manager
from src.config.settings import settings
from src.guests.dtos import (
    DispatchOutcome,
    DispatchResultDTO,
    EventDTO,
    GuestDTO,
    InvitationDTO,
    MessageType,
    QRCodeStatus,
    QRCodeType,
    RSVPResponse,
    qr_type_for,
)
from src.guests.errors import (
    CheckInError,
    DispatchFailedError,
    ErrorKind,
    EventNotFoundError,
    NotAMemberError,
)
from src.guests.features.qr_codes.write_model import QRCodeEngine
from src.guests.repository.directory import EventRepository, GuestRepository
from src.guests.repository.invitations import InvitationRepository
from src.guests.urls import QR_CODE_IMAGE_URL
from src.notifications.base import NotificationDispatcher

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response received"
DECLINED = "Guest declined invitation"


def qr_image_url(code: str) -> str:
    return f"{settings.api_url}{QR_CODE_IMAGE_URL.format(code=code)}"


class QRDispatchRun:
    """One pass over an event's guest list.

    Guests are handled one by one; a failure is recorded on that guest's
    result and the run moves on. Deliveries are spaced out by
    ``dispatch_interval`` seconds to stay under the mail provider's rate limit.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        qr_code_engine: QRCodeEngine,
        notification_dispatcher: NotificationDispatcher,
        dispatch_interval: float = 0.0,
    ) -> None:
        self._session_maker = session_maker
        self._qr_code_engine = qr_code_engine
        self._notification_dispatcher = notification_dispatcher
        self._dispatch_interval = dispatch_interval
        self._guests = GuestRepository()
        self._events = EventRepository()
        self._invitations = InvitationRepository()

    async def run(self, event_id: UUID, guest_ids: list[UUID] | None = None) -> list[DispatchResultDTO]:
        async with async_session_manager(self._session_maker) as session:
            event = await self._events.get_event(session, event_id)
            if event is None:
                raise EventNotFoundError(event_id)
            event_dto = EventDTO.from_event(event)
            members = [
                GuestDTO.from_guest(guest)
                for guest in await self._events.list_members(session, event_id, guest_ids)
            ]
            invitations = {
                guest_id: InvitationDTO.from_invitation(invitation)
                for guest_id, invitation in (
                    await self._invitations.list_for_event(session, event_id)
                ).items()
            }

        logger.info("Dispatching QR codes for event %s to %d guest(s)", event_id, len(members))

        results = []
        for guest in members:
            invitation = invitations.get(guest.id)
            if invitation is None or invitation.response is None:
                results.append(self._skipped(guest, NO_RESPONSE))
                continue
            if invitation.response == RSVPResponse.NOT_COMING:
                results.append(self._skipped(guest, DECLINED))
                continue

            try:
                result = await self._dispatch_to_guest(event_dto, guest, invitation)
            except CheckInError as e:
                logger.warning("QR dispatch failed for guest %s: %s", guest.id, e)
                result = DispatchResultDTO(
                    guest_id=guest.id,
                    guest_name=guest.full_name,
                    outcome=DispatchOutcome.FAILED,
                    reason=f"{e.kind.value}: {e}",
                )
            except Exception as e:
                logger.exception("QR dispatch crashed for guest %s", guest.id)
                result = DispatchResultDTO(
                    guest_id=guest.id,
                    guest_name=guest.full_name,
                    outcome=DispatchOutcome.FAILED,
                    reason=f"{ErrorKind.INTERNAL_ERROR.value}: {e}",
                )
            results.append(result)

            if self._dispatch_interval > 0:
                await asyncio.sleep(self._dispatch_interval)

        logger.info(
            "QR dispatch for event %s done: %d sent, %d skipped, %d failed",
            event_id,
            sum(1 for r in results if r.outcome == DispatchOutcome.SUCCESS),
            sum(1 for r in results if r.outcome == DispatchOutcome.SKIPPED),
            sum(1 for r in results if r.outcome == DispatchOutcome.FAILED),
        )
        return results

    @staticmethod
    def _skipped(guest: GuestDTO, reason: str) -> DispatchResultDTO:
        return DispatchResultDTO(
            guest_id=guest.id,
            guest_name=guest.full_name,
            outcome=DispatchOutcome.SKIPPED,
            reason=reason,
        )

    async def _code_for(self, guest: GuestDTO, event_id: UUID) -> tuple[str, int]:
        """The code to send: the newest one not expired, or a freshly issued one.

        Returns the code and how many codes were issued for it (0 or 1).
        """
        qr_type: QRCodeType = qr_type_for(guest)
        for qr_code in await self._qr_code_engine.history(guest.id, event_id):
            if qr_code.type == qr_type and qr_code.status != QRCodeStatus.EXPIRED:
                return qr_code.code, 0
        qr_code = await self._qr_code_engine.issue(guest.id, event_id, qr_type)
        return qr_code.code, 1

    async def _find_companion(self, companion_email: str) -> GuestDTO | None:
        async with async_session_manager(self._session_maker) as session:
            companion = await self._guests.get_guest_by_email(session, companion_email)
            return GuestDTO.from_guest(companion) if companion else None

    async def _dispatch_to_guest(
        self, event: EventDTO, guest: GuestDTO, invitation: InvitationDTO
    ) -> DispatchResultDTO:
        code, issued = await self._code_for(guest, event.id)
        await self._qr_code_engine.mark_dispatched(guest.id, event.id)

        payload = {
            "to_address": guest.email,
            "guest_name": guest.full_name,
            "event_name": event.name,
            "event_date": event.date.strftime("%d %B %Y, %H:%M"),
            "event_location": event.location,
            "qr_code": code,
            "qr_image_url": qr_image_url(code),
        }

        companion_code = None
        if invitation.response == RSVPResponse.COMING_WITH_COMPANION and invitation.companion_email:
            companion = await self._find_companion(invitation.companion_email)
            if companion is None:
                logger.warning(
                    "Companion %s of guest %s not found, sending the guest's code only",
                    invitation.companion_email,
                    guest.id,
                )
            else:
                try:
                    companion_code, companion_issued = await self._code_for(companion, event.id)
                    await self._qr_code_engine.mark_dispatched(companion.id, event.id)
                except NotAMemberError:
                    logger.warning(
                        "Companion %s of guest %s is not on the guest list of event %s",
                        companion.id,
                        guest.id,
                        event.id,
                    )
                else:
                    issued += companion_issued
                    payload["companion_qr_code"] = companion_code
                    payload["companion_qr_image_url"] = qr_image_url(companion_code)
                    payload["companion_name"] = invitation.companion_name

        try:
            await self._notification_dispatcher.deliver(
                guest.id, event.id, MessageType.QR_CODE, payload
            )
        except DispatchFailedError as e:
            # The codes stay issued and SENT; a later run reuses them
            logger.warning("Could not deliver QR code to guest %s: %s", guest.id, e)
            return DispatchResultDTO(
                guest_id=guest.id,
                guest_name=guest.full_name,
                outcome=DispatchOutcome.FAILED,
                code=code,
                companion_code=companion_code,
                qr_codes_issued=issued,
                reason=f"{e.kind.value}: {e}",
            )

        return DispatchResultDTO(
            guest_id=guest.id,
            guest_name=guest.full_name,
            outcome=DispatchOutcome.SUCCESS,
            code=code,
            companion_code=companion_code,
            qr_codes_issued=issued,
        )
