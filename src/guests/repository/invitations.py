from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.guests.dtos import InvitationStatus, InvitationType
from src.guests.repository.orm_models import Invitation


class InvitationRepository:
    """Outreach state per (guest, event, type). One row per triple."""

    async def find_latest(
        self,
        session: AsyncSession,
        guest_id: UUID,
        event_id: UUID,
        invitation_type: InvitationType = InvitationType.INVITATION,
    ) -> Invitation | None:
        result = await session.execute(
            select(Invitation)
            .where(
                Invitation.guest_id == guest_id,
                Invitation.event_id == event_id,
                Invitation.type == invitation_type,
            )
            .order_by(Invitation.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def add_invitation(
        self,
        session: AsyncSession,
        guest_id: UUID,
        event_id: UUID,
        invitation_type: InvitationType = InvitationType.INVITATION,
        status: InvitationStatus = InvitationStatus.PENDING,
        sent_at: datetime | None = None,
    ) -> Invitation:
        """Insert an invitation. A second row for the same triple fails on flush."""
        invitation = Invitation(
            guest_id=guest_id,
            event_id=event_id,
            type=invitation_type,
            status=status,
            response=None,
            sent_at=sent_at,
            opened_at=None,
            responded_at=None,
            has_companion=False,
            companion_name=None,
            companion_email=None,
        )
        session.add(invitation)
        await session.flush()
        return invitation

    async def list_for_event(
        self,
        session: AsyncSession,
        event_id: UUID,
        invitation_type: InvitationType = InvitationType.INVITATION,
    ) -> dict[UUID, Invitation]:
        """Invitations of an event keyed by guest id."""
        result = await session.execute(
            select(Invitation).where(
                Invitation.event_id == event_id,
                Invitation.type == invitation_type,
            )
        )
        return {invitation.guest_id: invitation for invitation in result.scalars().all()}

    async def mark_opened(
        self,
        session: AsyncSession,
        guest_id: UUID,
        event_id: UUID,
        opened_at: datetime,
        invitation_type: InvitationType = InvitationType.INVITATION,
    ) -> int:
        """SENT -> OPENED. Invitations already answered keep their status."""
        result = await session.execute(
            update(Invitation)
            .where(
                Invitation.guest_id == guest_id,
                Invitation.event_id == event_id,
                Invitation.type == invitation_type,
                Invitation.status == InvitationStatus.SENT,
            )
            .values(status=InvitationStatus.OPENED, opened_at=opened_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
