from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.guests.dependencies import get_session_maker
from src.guests.dtos import GuestSummaryDTO
from src.guests.errors import GuestNotFoundError, QRCodeNotFoundError, StoreError
from src.guests.features.qr_codes.write_model import SqlQRCodeEngine
from src.guests.features.redeem_qr_code.write_model import (
    AlreadyCheckedInError,
    RedemptionGateway,
    SqlRedemptionGateway,
)
from src.guests.urls import CHECK_IN_URL

router = APIRouter()


class CheckInRequest(BaseModel):
    code: str = Field(min_length=1, max_length=255)


class GuestSummary(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    email: str
    company: str | None = None
    is_vip: bool

    @classmethod
    def from_dto(cls, dto: GuestSummaryDTO) -> "GuestSummary":
        return cls(
            id=dto.id,
            first_name=dto.first_name,
            last_name=dto.last_name,
            email=dto.email,
            company=dto.company,
            is_vip=dto.is_vip,
        )


class CheckInResponse(BaseModel):
    message: str
    guest: GuestSummary
    qr_code_type: str
    redeemed_at: datetime


class AlreadyUsedResponse(BaseModel):
    message: str
    used_at: datetime | None = None
    time_ago: str | None = None
    guest: GuestSummary | None = None


def get_redemption_gateway(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> RedemptionGateway:
    """Dependency to get redemption gateway instance."""
    return SqlRedemptionGateway(session_maker, SqlQRCodeEngine(session_maker))


@router.post(
    CHECK_IN_URL,
    response_model=CheckInResponse,
    responses={409: {"model": AlreadyUsedResponse}},
)
async def check_in(
    event_id: UUID,
    request: CheckInRequest,
    gateway: RedemptionGateway = Depends(get_redemption_gateway),
):
    """
    Redeem a scanned QR code at the entrance.
    Each code admits once; a second scan answers 409 with when it was used.
    """
    try:
        redemption = await gateway.redeem(request.code.strip(), event_id)
    except (QRCodeNotFoundError, GuestNotFoundError):
        raise HTTPException(status_code=404, detail="Invalid code")
    except AlreadyCheckedInError as e:
        used_at = e.used_at.strftime("%H:%M:%S") if e.used_at else "an unknown time"
        body = AlreadyUsedResponse(
            message=f"Already used at {used_at}",
            used_at=e.used_at,
            time_ago=e.time_ago,
            guest=GuestSummary.from_dto(e.guest) if e.guest else None,
        )
        return JSONResponse(status_code=409, content=body.model_dump(mode="json"))
    except StoreError:
        raise HTTPException(status_code=503, detail="Service unavailable, please scan again")

    guest = redemption.guest
    return CheckInResponse(
        message=f"Welcome, {guest.first_name} {guest.last_name}".strip(),
        guest=GuestSummary.from_dto(guest),
        qr_code_type=redemption.qr_code.type.value,
        redeemed_at=redemption.redeemed_at,
    )
