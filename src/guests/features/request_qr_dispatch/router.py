from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from src.guests.dtos import DispatchOutcome, DispatchResultDTO
from src.guests.errors import EventNotFoundError, StoreError
from src.guests.features.submit_rsvp.router import get_rsvp_workflow
from src.guests.features.submit_rsvp.write_model import RSVPWorkflow
from src.guests.urls import QR_DISPATCH_URL

router = APIRouter()


class QRDispatchRequest(BaseModel):
    guest_ids: list[UUID] | None = None


class DispatchResult(BaseModel):
    guest_id: UUID
    guest_name: str
    outcome: DispatchOutcome
    code: str | None = None
    companion_code: str | None = None
    qr_codes_issued: int = 0
    reason: str | None = None

    @classmethod
    def from_dto(cls, dto: DispatchResultDTO) -> "DispatchResult":
        return cls(
            guest_id=dto.guest_id,
            guest_name=dto.guest_name,
            outcome=dto.outcome,
            code=dto.code,
            companion_code=dto.companion_code,
            qr_codes_issued=dto.qr_codes_issued,
            reason=dto.reason,
        )


class QRDispatchResponse(BaseModel):
    total: int
    sent: int
    skipped: int
    failed: int
    qr_codes_issued: int
    results: list[DispatchResult]


@router.post(QR_DISPATCH_URL, response_model=QRDispatchResponse)
async def request_qr_dispatch(
    event_id: UUID,
    request: QRDispatchRequest | None = None,
    workflow: RSVPWorkflow = Depends(get_rsvp_workflow),
) -> QRDispatchResponse:
    """
    Send entry QR codes to every guest of the event who is coming,
    or to the given subset of guests. Returns a per-guest report.
    """
    guest_ids = request.guest_ids if request else None
    try:
        results = await workflow.request_qr_dispatch(event_id, guest_ids)
    except EventNotFoundError:
        raise HTTPException(status_code=404, detail="Event not found")
    except StoreError:
        raise HTTPException(status_code=503, detail="Service unavailable, please try again")

    return QRDispatchResponse(
        total=len(results),
        sent=sum(1 for r in results if r.outcome == DispatchOutcome.SUCCESS),
        skipped=sum(1 for r in results if r.outcome == DispatchOutcome.SKIPPED),
        failed=sum(1 for r in results if r.outcome == DispatchOutcome.FAILED),
        qr_codes_issued=sum(r.qr_codes_issued for r in results),
        results=[DispatchResult.from_dto(r) for r in results],
    )
