"""Error taxonomy shared by the QR code engine, the RSVP workflow and the
redemption gateway. Each error carries the kind reported to callers."""

from datetime import datetime
from enum import Enum
from uuid import UUID


class ErrorKind(str, Enum):
    NOT_A_MEMBER = "NOT_A_MEMBER"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_USED = "ALREADY_USED"
    STORE_ERROR = "STORE_ERROR"
    DISPATCH_FAILED = "DISPATCH_FAILED"
    # Anything a collaborator raised outside this taxonomy
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CheckInError(Exception):
    """Base class for every error the core reports to its callers."""

    kind: ErrorKind


class NotAMemberError(CheckInError):
    """Raised when a guest is not on the invite list of an event."""

    kind = ErrorKind.NOT_A_MEMBER

    def __init__(self, guest_id: UUID, event_id: UUID) -> None:
        self.guest_id = guest_id
        self.event_id = event_id
        super().__init__(f"Guest {guest_id} is not invited to event {event_id}")


class NotFoundError(CheckInError):
    kind = ErrorKind.NOT_FOUND


class QRCodeNotFoundError(NotFoundError):
    """No redeemable code matches: unknown code, wrong event or expired."""

    def __init__(self, event_id: UUID) -> None:
        self.event_id = event_id
        super().__init__(f"No valid QR code for event {event_id}")


class GuestNotFoundError(NotFoundError):
    def __init__(self, guest_id: UUID) -> None:
        self.guest_id = guest_id
        super().__init__(f"Guest {guest_id} not found")


class EventNotFoundError(NotFoundError):
    def __init__(self, event_id: UUID) -> None:
        self.event_id = event_id
        super().__init__(f"Event {event_id} not found")


class QRCodeAlreadyUsedError(CheckInError):
    """Raised when a code was redeemed before."""

    kind = ErrorKind.ALREADY_USED

    def __init__(self, guest_id: UUID, event_id: UUID, used_at: datetime | None) -> None:
        self.guest_id = guest_id
        self.event_id = event_id
        self.used_at = used_at
        super().__init__(f"QR code already used at {used_at}")


class StoreError(CheckInError):
    """Transient store failure (connectivity, timeout, constraint). Safe to retry."""

    kind = ErrorKind.STORE_ERROR


class StoreConflictError(StoreError):
    """A write lost against a unique constraint."""


class DispatchFailedError(CheckInError):
    """The notification dispatcher could not deliver a message."""

    kind = ErrorKind.DISPATCH_FAILED
