from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.guests.dependencies import get_session_maker
from src.guests.dtos import QRCodeDTO, QRCodeStatus, QRCodeType
from src.guests.errors import NotAMemberError, StoreError
from src.guests.features.qr_codes.image import render_qr_png
from src.guests.features.qr_codes.write_model import QRCodeEngine, SqlQRCodeEngine
from src.guests.urls import (
    QR_CODE_IMAGE_URL,
    QR_CODES_DISPATCHED_URL,
    QR_CODES_EXPIRE_URL,
    QR_CODES_REISSUE_URL,
    QR_CODES_URL,
)

router = APIRouter()

# Same bound as the qr_codes.code column, and well inside QR capacity
MAX_CODE_LENGTH = 255


class IssueQRCodeRequest(BaseModel):
    type: QRCodeType = QRCodeType.REGULAR


class ExpireQRCodesRequest(BaseModel):
    type: QRCodeType | None = None


class QRCodeResponse(BaseModel):
    id: UUID
    code: str
    type: QRCodeType
    status: QRCodeStatus
    issued_at: datetime
    used_at: datetime | None = None

    @classmethod
    def from_dto(cls, dto: QRCodeDTO) -> "QRCodeResponse":
        return cls(
            id=dto.id,
            code=dto.code,
            type=dto.type,
            status=dto.status,
            issued_at=dto.issued_at,
            used_at=dto.used_at,
        )


class QRCodeHistoryResponse(BaseModel):
    qr_codes: list[QRCodeResponse]


class DispatchedResponse(BaseModel):
    updated: int


class ExpiredResponse(BaseModel):
    expired: int


def get_qr_code_engine(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> QRCodeEngine:
    """Dependency to get QR code engine instance."""
    return SqlQRCodeEngine(session_maker)


@router.post(QR_CODES_URL, response_model=QRCodeResponse)
async def issue_qr_code(
    event_id: UUID,
    guest_id: UUID,
    request: IssueQRCodeRequest,
    engine: QRCodeEngine = Depends(get_qr_code_engine),
) -> QRCodeResponse:
    """
    Issue a QR code for a guest.
    Returns the guest's active code of that type when there is one.
    """
    try:
        dto = await engine.issue(guest_id, event_id, request.type)
    except NotAMemberError:
        raise HTTPException(status_code=404, detail="Guest is not invited to this event")
    except StoreError:
        raise HTTPException(status_code=503, detail="Service unavailable, please try again")
    return QRCodeResponse.from_dto(dto)


@router.get(QR_CODES_URL, response_model=QRCodeHistoryResponse)
async def get_qr_code_history(
    event_id: UUID,
    guest_id: UUID,
    engine: QRCodeEngine = Depends(get_qr_code_engine),
) -> QRCodeHistoryResponse:
    """All QR codes of a guest for an event, newest first, expired and used included."""
    try:
        codes = await engine.history(guest_id, event_id)
    except StoreError:
        raise HTTPException(status_code=503, detail="Service unavailable, please try again")
    return QRCodeHistoryResponse(qr_codes=[QRCodeResponse.from_dto(dto) for dto in codes])


@router.post(QR_CODES_DISPATCHED_URL, response_model=DispatchedResponse)
async def mark_qr_codes_dispatched(
    event_id: UUID,
    guest_id: UUID,
    engine: QRCodeEngine = Depends(get_qr_code_engine),
) -> DispatchedResponse:
    try:
        updated = await engine.mark_dispatched(guest_id, event_id)
    except StoreError:
        raise HTTPException(status_code=503, detail="Service unavailable, please try again")
    return DispatchedResponse(updated=updated)


@router.post(QR_CODES_EXPIRE_URL, response_model=ExpiredResponse)
async def expire_qr_codes(
    event_id: UUID,
    guest_id: UUID,
    request: ExpireQRCodesRequest,
    engine: QRCodeEngine = Depends(get_qr_code_engine),
) -> ExpiredResponse:
    try:
        expired = await engine.expire(guest_id, event_id, request.type)
    except StoreError:
        raise HTTPException(status_code=503, detail="Service unavailable, please try again")
    return ExpiredResponse(expired=expired)


@router.post(QR_CODES_REISSUE_URL, response_model=QRCodeResponse)
async def reissue_qr_code(
    event_id: UUID,
    guest_id: UUID,
    request: IssueQRCodeRequest,
    engine: QRCodeEngine = Depends(get_qr_code_engine),
) -> QRCodeResponse:
    """
    Replace a guest's active QR code with a new one, e.g. after a lost email.
    The old code stops working immediately.
    """
    try:
        dto = await engine.reissue(guest_id, event_id, request.type)
    except NotAMemberError:
        raise HTTPException(status_code=404, detail="Guest is not invited to this event")
    except StoreError:
        raise HTTPException(status_code=503, detail="Service unavailable, please try again")
    return QRCodeResponse.from_dto(dto)


@router.get(QR_CODE_IMAGE_URL)
async def get_qr_code_image(code: str = Path(..., max_length=MAX_CODE_LENGTH)) -> Response:
    """Render a QR code token as PNG, for emails and the guest's phone."""
    return Response(
        content=render_qr_png(code),
        media_type="image/png",
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )
