"""Guest/Event directory: guests, events and who is invited to what.

Repositories work on a session handed in by the caller, the caller owns the
transaction. They return ORM rows; write models turn them into DTOs.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.guests.repository.orm_models import Event, EventMembership, Guest


class GuestRepository:
    async def get_guest(self, session: AsyncSession, guest_id: UUID) -> Guest | None:
        return await session.get(Guest, guest_id)

    async def get_guest_by_email(self, session: AsyncSession, email: str) -> Guest | None:
        """Emails match case-insensitively, they are the natural key of a guest."""
        result = await session.execute(
            select(Guest)
            .where(func.lower(Guest.email) == email.strip().lower())
            .order_by(Guest.created_at)
        )
        return result.scalars().first()

    async def add_guest(
        self,
        session: AsyncSession,
        email: str,
        first_name: str,
        last_name: str,
        company: str | None = None,
        position: str | None = None,
        phone: str | None = None,
        is_vip: bool = False,
        is_companion: bool = False,
    ) -> Guest:
        """Insert a guest. A duplicate email fails on flush."""
        guest = Guest(
            email=email,
            first_name=first_name,
            last_name=last_name,
            company=company,
            position=position,
            phone=phone,
            is_vip=is_vip,
            is_companion=is_companion,
        )
        session.add(guest)
        await session.flush()
        return guest


class EventRepository:
    async def get_event(self, session: AsyncSession, event_id: UUID) -> Event | None:
        return await session.get(Event, event_id)

    async def add_event(
        self,
        session: AsyncSession,
        name: str,
        date: datetime,
        location: str | None = None,
        description: str | None = None,
        max_guests: int | None = None,
    ) -> Event:
        event = Event(
            name=name,
            date=date,
            location=location,
            description=description,
            max_guests=max_guests,
        )
        session.add(event)
        await session.flush()
        return event

    async def is_member(self, session: AsyncSession, guest_id: UUID, event_id: UUID) -> bool:
        result = await session.execute(
            select(EventMembership.uuid).where(
                EventMembership.guest_id == guest_id,
                EventMembership.event_id == event_id,
            )
        )
        return result.first() is not None

    async def add_member(self, session: AsyncSession, guest_id: UUID, event_id: UUID) -> bool:
        """Invite a guest to an event. Returns False when already invited."""
        if await self.is_member(session, guest_id, event_id):
            return False
        session.add(EventMembership(event_id=event_id, guest_id=guest_id))
        await session.flush()
        return True

    async def list_members(
        self,
        session: AsyncSession,
        event_id: UUID,
        guest_ids: Iterable[UUID] | None = None,
    ) -> list[Guest]:
        stmt = (
            select(Guest)
            .join(EventMembership, EventMembership.guest_id == Guest.uuid)
            .where(EventMembership.event_id == event_id)
            .order_by(Guest.last_name, Guest.first_name)
        )
        if guest_ids is not None:
            stmt = stmt.where(Guest.uuid.in_(list(guest_ids)))
        result = await session.execute(stmt)
        return list(result.scalars().all())
