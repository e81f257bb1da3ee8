from enum import Enum


class TableNames(str, Enum):
    GUESTS = "guests"
    EVENTS = "events"
    EVENT_MEMBERSHIPS = "event_memberships"
    INVITATIONS = "invitations"
    QR_CODES = "qr_codes"
