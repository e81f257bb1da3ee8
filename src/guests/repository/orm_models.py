from datetime import UTC, datetime
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.config.table_names import TableNames
from src.guests.dtos import (
    InvitationStatus,
    InvitationType,
    QRCodeStatus,
    QRCodeType,
    RSVPResponse,
)
from src.models.base import Base, TimeStamp


def _enum(enum_cls, name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Guest(Base, TimeStamp):
    __tablename__ = TableNames.GUESTS.value

    # email is the natural key of a guest
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    position: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_vip: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Set when the guest was created as somebody's companion during an RSVP
    is_companion: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Guest {self.email}>"


class Event(Base, TimeStamp):
    __tablename__ = TableNames.EVENTS.value

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    max_guests: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Event {self.name} on {self.date}>"


class EventMembership(Base, TimeStamp):
    __tablename__ = TableNames.EVENT_MEMBERSHIPS.value
    __table_args__ = (
        sa.UniqueConstraint("event_id", "guest_id", name="uq_event_memberships_event_guest"),
    )

    event_id: Mapped[UUID] = mapped_column(
        ForeignKey(f"{TableNames.EVENTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    guest_id: Mapped[UUID] = mapped_column(
        ForeignKey(f"{TableNames.GUESTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<EventMembership guest={self.guest_id} event={self.event_id}>"


class Invitation(Base, TimeStamp):
    __tablename__ = TableNames.INVITATIONS.value
    __table_args__ = (
        sa.UniqueConstraint(
            "guest_id", "event_id", "type", name="uq_invitations_guest_event_type"
        ),
    )

    guest_id: Mapped[UUID] = mapped_column(
        ForeignKey(f"{TableNames.GUESTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_id: Mapped[UUID] = mapped_column(
        ForeignKey(f"{TableNames.EVENTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(
        _enum(InvitationType, "invitation_type_enum"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        _enum(InvitationStatus, "invitation_status_enum"),
        default=InvitationStatus.PENDING,
        nullable=False,
    )
    response: Mapped[str | None] = mapped_column(
        _enum(RSVPResponse, "rsvp_response_enum"), nullable=True
    )
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    has_companion: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    companion_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    companion_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Invitation {self.type} guest={self.guest_id} status={self.status}>"


class QRCode(Base, TimeStamp):
    __tablename__ = TableNames.QR_CODES.value
    __table_args__ = (
        # At most one active code per guest, event and type
        Index(
            "uq_qr_codes_active_guest_event_type",
            "guest_id",
            "event_id",
            "type",
            unique=True,
            postgresql_where=sa.text("status IN ('GENERATED', 'SENT')"),
            sqlite_where=sa.text("status IN ('GENERATED', 'SENT')"),
        ),
    )

    code: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    type: Mapped[str] = mapped_column(_enum(QRCodeType, "qr_code_type_enum"), nullable=False)
    status: Mapped[str] = mapped_column(
        _enum(QRCodeStatus, "qr_code_status_enum"),
        default=QRCodeStatus.GENERATED,
        nullable=False,
        index=True,
    )
    guest_id: Mapped[UUID] = mapped_column(
        ForeignKey(f"{TableNames.GUESTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_id: Mapped[UUID] = mapped_column(
        ForeignKey(f"{TableNames.EVENTS.value}.uuid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<QRCode {self.code[:6]}... {self.type} status={self.status}>"
