from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from src.guests.repository.orm_models import Event, Guest, Invitation, QRCode


class QRCodeType(str, Enum):
    REGULAR = "REGULAR"
    VIP = "VIP"


class QRCodeStatus(str, Enum):
    GENERATED = "GENERATED"
    SENT = "SENT"
    USED = "USED"
    EXPIRED = "EXPIRED"


# A code in one of these states can still be redeemed
ACTIVE_QR_CODE_STATUSES = (QRCodeStatus.GENERATED, QRCodeStatus.SENT)


class InvitationType(str, Enum):
    SAVE_THE_DATE = "SAVE_THE_DATE"
    INVITATION = "INVITATION"
    SURVEY = "SURVEY"


class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    OPENED = "OPENED"
    RESPONDED = "RESPONDED"


class RSVPResponse(str, Enum):
    COMING = "COMING"
    NOT_COMING = "NOT_COMING"
    COMING_WITH_COMPANION = "COMING_WITH_COMPANION"


ATTENDING_RESPONSES = (RSVPResponse.COMING, RSVPResponse.COMING_WITH_COMPANION)


class MessageType(str, Enum):
    INVITATION = "INVITATION"
    QR_CODE = "QR_CODE"


class DispatchOutcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


def qr_type_for(guest: "Guest") -> QRCodeType:
    """VIP guests get VIP codes, everybody else a regular one."""
    return QRCodeType.VIP if guest.is_vip else QRCodeType.REGULAR


@dataclass(frozen=True)
class GuestDTO:
    id: UUID
    email: str
    first_name: str
    last_name: str
    company: str | None = None
    position: str | None = None
    phone: str | None = None
    is_vip: bool = False
    is_companion: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_guest(cls, guest: "Guest") -> "GuestDTO":
        return cls(
            id=guest.uuid,
            email=guest.email,
            first_name=guest.first_name,
            last_name=guest.last_name,
            company=guest.company,
            position=guest.position,
            phone=guest.phone,
            is_vip=guest.is_vip,
            is_companion=guest.is_companion,
        )


@dataclass(frozen=True)
class EventDTO:
    id: UUID
    name: str
    date: datetime
    location: str | None = None
    description: str | None = None
    max_guests: int | None = None

    @classmethod
    def from_event(cls, event: "Event") -> "EventDTO":
        return cls(
            id=event.uuid,
            name=event.name,
            date=event.date,
            location=event.location,
            description=event.description,
            max_guests=event.max_guests,
        )


@dataclass(frozen=True)
class QRCodeDTO:
    id: UUID
    code: str
    type: QRCodeType
    status: QRCodeStatus
    guest_id: UUID
    event_id: UUID
    issued_at: datetime
    used_at: datetime | None = None

    @classmethod
    def from_qr_code(cls, qr_code: "QRCode") -> "QRCodeDTO":
        return cls(
            id=qr_code.uuid,
            code=qr_code.code,
            type=QRCodeType(qr_code.type),
            status=QRCodeStatus(qr_code.status),
            guest_id=qr_code.guest_id,
            event_id=qr_code.event_id,
            issued_at=qr_code.issued_at,
            used_at=qr_code.used_at,
        )


@dataclass(frozen=True)
class InvitationDTO:
    id: UUID
    guest_id: UUID
    event_id: UUID
    type: InvitationType
    status: InvitationStatus
    response: RSVPResponse | None = None
    sent_at: datetime | None = None
    opened_at: datetime | None = None
    responded_at: datetime | None = None
    has_companion: bool = False
    companion_name: str | None = None
    companion_email: str | None = None

    @classmethod
    def from_invitation(cls, invitation: "Invitation") -> "InvitationDTO":
        return cls(
            id=invitation.uuid,
            guest_id=invitation.guest_id,
            event_id=invitation.event_id,
            type=InvitationType(invitation.type),
            status=InvitationStatus(invitation.status),
            response=RSVPResponse(invitation.response) if invitation.response else None,
            sent_at=invitation.sent_at,
            opened_at=invitation.opened_at,
            responded_at=invitation.responded_at,
            has_companion=invitation.has_companion,
            companion_name=invitation.companion_name,
            companion_email=invitation.companion_email,
        )


@dataclass(frozen=True)
class RSVPResultDTO:
    """Outcome of an RSVP submission. Companion problems end up in warnings."""

    invitation: InvitationDTO
    companion_id: UUID | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RSVPInfoDTO:
    """DTO for the RSVP page."""

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
    is_companion: bool = False


@dataclass(frozen=True)
class GuestSummaryDTO:
    """What door staff see after a scan."""

    id: UUID
    first_name: str
    last_name: str
    email: str
    company: str | None = None
    is_vip: bool = False

    @classmethod
    def from_guest(cls, guest: "Guest") -> "GuestSummaryDTO":
        return cls(
            id=guest.uuid,
            first_name=guest.first_name,
            last_name=guest.last_name,
            email=guest.email,
            company=guest.company,
            is_vip=guest.is_vip,
        )


@dataclass(frozen=True)
class RedemptionDTO:
    guest: GuestSummaryDTO
    qr_code: QRCodeDTO
    redeemed_at: datetime


@dataclass(frozen=True)
class DispatchResultDTO:
    """Per-guest line of a QR dispatch report."""

    guest_id: UUID
    guest_name: str
    outcome: DispatchOutcome
    code: str | None = None
    companion_code: str | None = None
    qr_codes_issued: int = 0
    reason: str | None = None
