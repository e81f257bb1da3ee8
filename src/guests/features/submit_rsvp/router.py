from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.guests.dependencies import get_notification_dispatcher, get_session_maker
from src.guests.dtos import InvitationStatus, RSVPResponse
from src.guests.errors import NotAMemberError, NotFoundError, StoreError
from src.guests.features.qr_codes.write_model import SqlQRCodeEngine
from src.guests.features.submit_rsvp.write_model import RSVPWorkflow, SqlRSVPWorkflow
from src.guests.urls import RSVP_URL
from src.notifications.base import NotificationDispatcher

router = APIRouter()


class RSVPSubmit(BaseModel):
    response: RSVPResponse
    companion_email: EmailStr | None = None


class RSVPSubmitResponse(BaseModel):
    invitation_id: UUID
    status: InvitationStatus
    response: RSVPResponse
    responded_at: datetime | None = None
    has_companion: bool
    companion_name: str | None = None
    companion_id: UUID | None = None
    warnings: list[str] = []


def get_rsvp_workflow(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    notification_dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> RSVPWorkflow:
    """Dependency to get RSVP workflow instance."""
    return SqlRSVPWorkflow(
        session_maker=session_maker,
        qr_code_engine=SqlQRCodeEngine(session_maker),
        notification_dispatcher=notification_dispatcher,
    )


@router.post(RSVP_URL, response_model=RSVPSubmitResponse)
async def submit_rsvp(
    event_id: UUID,
    guest_id: UUID,
    rsvp_data: RSVPSubmit,
    workflow: RSVPWorkflow = Depends(get_rsvp_workflow),
) -> RSVPSubmitResponse:
    """
    Submit a guest's response to their invitation.
    A companion email with COMING_WITH_COMPANION registers the companion too;
    problems with the companion come back as warnings, the response is saved regardless.
    """
    try:
        result = await workflow.submit_response(
            guest_id=guest_id,
            event_id=event_id,
            response=rsvp_data.response,
            companion_email=rsvp_data.companion_email,
        )
    except (NotAMemberError, NotFoundError):
        raise HTTPException(status_code=404, detail="Invitation not found")
    except StoreError:
        raise HTTPException(
            status_code=503, detail="We could not save your response, please try again later"
        )

    invitation = result.invitation
    return RSVPSubmitResponse(
        invitation_id=invitation.id,
        status=invitation.status,
        response=invitation.response,
        responded_at=invitation.responded_at,
        has_companion=invitation.has_companion,
        companion_name=invitation.companion_name,
        companion_id=result.companion_id,
        warnings=result.warnings,
    )
