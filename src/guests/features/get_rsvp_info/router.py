from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.guests.dependencies import get_session_maker
from src.guests.dtos import RSVPResponse
from src.guests.errors import NotAMemberError, StoreError
from src.guests.features.get_rsvp_info.read_model import RSVPReadModel, SqlRSVPReadModel
from src.guests.urls import RSVP_URL

router = APIRouter()


class RSVPInfoResponse(BaseModel):
    """Everything the RSVP page needs to render and prefill the form."""

    guest_id: UUID
    first_name: str
    last_name: str
    event_id: UUID
    event_name: str
    event_date: datetime
    event_location: str | None = None
    event_description: str | None = None
    response: RSVPResponse | None = None
    companion_name: str | None = None
    is_companion: bool  # companions are confirmed by their host


def get_rsvp_read_model(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> RSVPReadModel:
    """Dependency to get RSVP read model instance."""
    return SqlRSVPReadModel(session_maker)


@router.get(RSVP_URL, response_model=RSVPInfoResponse)
async def get_rsvp_info(
    event_id: UUID,
    guest_id: UUID,
    read_model: RSVPReadModel = Depends(get_rsvp_read_model),
) -> RSVPInfoResponse:
    try:
        info = await read_model.get_rsvp_info(guest_id, event_id)
    except NotAMemberError:
        raise HTTPException(status_code=404, detail="Invitation not found")
    except StoreError:
        raise HTTPException(status_code=503, detail="Something went wrong, please try again later")

    return RSVPInfoResponse(
        guest_id=info.guest_id,
        first_name=info.first_name,
        last_name=info.last_name,
        event_id=info.event_id,
        event_name=info.event_name,
        event_date=info.event_date,
        event_location=info.event_location,
        event_description=info.event_description,
        response=info.response,
        companion_name=info.companion_name,
        is_companion=info.is_companion,
    )
