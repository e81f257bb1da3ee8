"""Check-in at the door: consume a scanned code and say who it belongs to."""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.database import async_session_manager
from src.guests.dtos import GuestSummaryDTO, RedemptionDTO
from src.guests.errors import GuestNotFoundError, QRCodeAlreadyUsedError, StoreError
from src.guests.features.qr_codes.write_model import QRCodeEngine
from src.guests.repository.directory import GuestRepository

logger = logging.getLogger(__name__)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def format_time_ago(moment: datetime, now: datetime | None = None) -> str:
    """Human readable distance to ``moment``: '5 seconds ago', '1 hour ago'."""
    now = now or datetime.now(UTC)
    if moment.tzinfo is None:
        # SQLite hands back naive datetimes; they are stored in UTC
        moment = moment.replace(tzinfo=UTC)

    seconds = max(int((now - moment).total_seconds()), 0)
    if seconds < 60:
        return _plural(seconds, "second")
    minutes = seconds // 60
    if minutes < 60:
        return _plural(minutes, "minute")
    hours = minutes // 60
    if hours < 24:
        return _plural(hours, "hour")
    return _plural(hours // 24, "day")


class AlreadyCheckedInError(QRCodeAlreadyUsedError):
    """An already-used failure with what door staff need to see."""

    def __init__(
        self,
        error: QRCodeAlreadyUsedError,
        guest: GuestSummaryDTO | None,
        time_ago: str | None,
    ) -> None:
        super().__init__(error.guest_id, error.event_id, error.used_at)
        self.guest = guest
        self.time_ago = time_ago


class RedemptionGateway(ABC):
    """Abstract base class for redeeming QR codes at the entrance."""

    @abstractmethod
    async def redeem(self, code: str, event_id: UUID) -> RedemptionDTO:
        """Redeem a scanned code.

        Raises:
            QRCodeNotFoundError: unknown code, wrong event or expired code.
            AlreadyCheckedInError: the code was redeemed before.
            GuestNotFoundError: the code was consumed but its guest is gone.
        """
        raise NotImplementedError


class SqlRedemptionGateway(RedemptionGateway):
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        qr_code_engine: QRCodeEngine,
    ) -> None:
        self._session_maker = session_maker
        self._qr_code_engine = qr_code_engine
        self._guests = GuestRepository()

    async def _guest_summary(self, guest_id: UUID) -> GuestSummaryDTO | None:
        async with async_session_manager(self._session_maker) as session:
            guest = await self._guests.get_guest(session, guest_id)
            return GuestSummaryDTO.from_guest(guest) if guest else None

    async def redeem(self, code: str, event_id: UUID) -> RedemptionDTO:
        # No lookup before the engine call; the engine's conditional update is the check
        try:
            qr_code = await self._qr_code_engine.redeem(code, event_id)
        except QRCodeAlreadyUsedError as e:
            try:
                guest = await self._guest_summary(e.guest_id)
            except StoreError:
                logger.warning("Could not load guest %s for an already-used code", e.guest_id)
                guest = None
            time_ago = format_time_ago(e.used_at) if e.used_at else None
            raise AlreadyCheckedInError(e, guest, time_ago) from e

        guest = await self._guest_summary(qr_code.guest_id)
        if guest is None:
            logger.error("QR code %s... consumed but guest %s is missing", code[:6], qr_code.guest_id)
            raise GuestNotFoundError(qr_code.guest_id)

        logger.info("Checked in %s (VIP: %s) at event %s", guest.id, guest.is_vip, event_id)
        return RedemptionDTO(guest=guest, qr_code=qr_code, redeemed_at=qr_code.used_at)
