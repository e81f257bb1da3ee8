"""Write model for QR codes: issuance, dispatch tracking, redemption, expiry.

This is the only place that creates QR code rows or changes their status.
Returns DTOs instead of ORM models.
"""

import logging
import secrets
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.database import async_session_manager
from src.config.settings import settings
from src.guests.dtos import QRCodeDTO, QRCodeStatus, QRCodeType
from src.guests.errors import (
    NotAMemberError,
    QRCodeAlreadyUsedError,
    QRCodeNotFoundError,
    StoreConflictError,
    StoreError,
)
from src.guests.repository.directory import EventRepository
from src.guests.repository.qr_codes import QRCodeRepository

logger = logging.getLogger(__name__)

# Attempts at drawing a token that no other code already has
TOKEN_ATTEMPTS = 3


def generate_token(nbytes: int | None = None) -> str:
    """Opaque, url-safe bearer token. Never derived from ids or time."""
    return secrets.token_urlsafe(nbytes or settings.qr_token_bytes)


class QRCodeEngine(ABC):
    """Abstract base class for QR code lifecycle operations."""

    @abstractmethod
    async def issue(self, guest_id: UUID, event_id: UUID, qr_type: QRCodeType) -> QRCodeDTO:
        """Return the guest's active code of this type, creating one if needed.

        Raises:
            NotAMemberError: the guest is not invited to the event.
        """
        raise NotImplementedError

    @abstractmethod
    async def mark_dispatched(self, guest_id: UUID, event_id: UUID) -> int:
        """Move the guest's GENERATED codes for the event to SENT. Returns the count."""
        raise NotImplementedError

    @abstractmethod
    async def redeem(self, code: str, event_id: UUID) -> QRCodeDTO:
        """Consume a code exactly once.

        Raises:
            QRCodeNotFoundError: unknown code, wrong event, or expired code.
            QRCodeAlreadyUsedError: the code was redeemed before.
        """
        raise NotImplementedError

    @abstractmethod
    async def expire(
        self, guest_id: UUID, event_id: UUID, qr_type: QRCodeType | None = None
    ) -> int:
        """Move active codes to EXPIRED. Returns the count."""
        raise NotImplementedError

    @abstractmethod
    async def reissue(self, guest_id: UUID, event_id: UUID, qr_type: QRCodeType) -> QRCodeDTO:
        """Expire the active code of this type and issue a fresh one."""
        raise NotImplementedError

    @abstractmethod
    async def history(self, guest_id: UUID, event_id: UUID) -> list[QRCodeDTO]:
        """Every code of the guest for the event, most recent first."""
        raise NotImplementedError


class SqlQRCodeEngine(QRCodeEngine):
    """SQL implementation of the QR code engine."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        qr_codes: QRCodeRepository | None = None,
        events: EventRepository | None = None,
    ) -> None:
        self._session_maker = session_maker
        self._qr_codes = qr_codes or QRCodeRepository()
        self._events = events or EventRepository()

    def _session(self):
        return async_session_manager(self._session_maker)

    async def issue(self, guest_id: UUID, event_id: UUID, qr_type: QRCodeType) -> QRCodeDTO:
        for _ in range(TOKEN_ATTEMPTS):
            try:
                return await self._insert_if_no_active_code(guest_id, event_id, qr_type)
            except StoreConflictError:
                async with self._session() as session:
                    active = await self._qr_codes.find_active_code(
                        session, guest_id, event_id, qr_type
                    )
            if active is not None:
                # A concurrent issue() won the insert; hand out its code.
                logger.info("Concurrent issuance for guest %s, event %s", guest_id, event_id)
                return QRCodeDTO.from_qr_code(active)
            logger.warning("QR token collided with an existing code, drawing a new one")

        raise StoreError(f"No unique QR code token after {TOKEN_ATTEMPTS} attempts")

    async def _insert_if_no_active_code(
        self, guest_id: UUID, event_id: UUID, qr_type: QRCodeType
    ) -> QRCodeDTO:
        async with self._session() as session:
            if not await self._events.is_member(session, guest_id, event_id):
                raise NotAMemberError(guest_id, event_id)

            active = await self._qr_codes.find_active_code(session, guest_id, event_id, qr_type)
            if active is not None:
                return QRCodeDTO.from_qr_code(active)

            qr_code = await self._qr_codes.insert_code(
                session,
                code=generate_token(),
                guest_id=guest_id,
                event_id=event_id,
                qr_type=qr_type,
            )
            dto = QRCodeDTO.from_qr_code(qr_code)

        logger.info("Issued %s QR code for guest %s, event %s", qr_type.value, guest_id, event_id)
        return dto

    async def mark_dispatched(self, guest_id: UUID, event_id: UUID) -> int:
        async with self._session() as session:
            return await self._qr_codes.transition_to_sent(session, guest_id, event_id)

    async def redeem(self, code: str, event_id: UUID) -> QRCodeDTO:
        async with self._session() as session:
            used = await self._qr_codes.transition_to_used(
                session, code, event_id, used_at=datetime.now(UTC)
            )
            if used:
                qr_code = await self._qr_codes.get_by_code(session, code, event_id)
                dto = QRCodeDTO.from_qr_code(qr_code)

        if used:
            logger.info("Redeemed QR code %s... for guest %s", code[:6], dto.guest_id)
            return dto

        # The conditional update missed: work out why, without writing anything.
        async with self._session() as session:
            qr_code = await self._qr_codes.get_by_code(session, code, event_id)

        if qr_code is not None and qr_code.status == QRCodeStatus.USED:
            logger.info("Rejected QR code %s...: already used at %s", code[:6], qr_code.used_at)
            raise QRCodeAlreadyUsedError(qr_code.guest_id, event_id, qr_code.used_at)

        logger.info("Rejected QR code %s...: not valid for event %s", code[:6], event_id)
        raise QRCodeNotFoundError(event_id)

    async def expire(
        self, guest_id: UUID, event_id: UUID, qr_type: QRCodeType | None = None
    ) -> int:
        async with self._session() as session:
            count = await self._qr_codes.expire_active_codes(session, guest_id, event_id, qr_type)
        if count:
            logger.info("Expired %d QR code(s) for guest %s, event %s", count, guest_id, event_id)
        return count

    async def reissue(self, guest_id: UUID, event_id: UUID, qr_type: QRCodeType) -> QRCodeDTO:
        await self.expire(guest_id, event_id, qr_type)
        return await self.issue(guest_id, event_id, qr_type)

    async def history(self, guest_id: UUID, event_id: UUID) -> list[QRCodeDTO]:
        async with self._session() as session:
            codes = await self._qr_codes.list_codes(session, guest_id, event_id)
        return [QRCodeDTO.from_qr_code(qr_code) for qr_code in codes]
