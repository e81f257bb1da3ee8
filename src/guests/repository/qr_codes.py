"""Persistence of QR codes. Only the QR code engine talks to this module."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.guests.dtos import ACTIVE_QR_CODE_STATUSES, QRCodeStatus, QRCodeType
from src.guests.repository.orm_models import QRCode


class QRCodeRepository:
    async def find_active_code(
        self,
        session: AsyncSession,
        guest_id: UUID,
        event_id: UUID,
        qr_type: QRCodeType,
    ) -> QRCode | None:
        result = await session.execute(
            select(QRCode)
            .where(
                QRCode.guest_id == guest_id,
                QRCode.event_id == event_id,
                QRCode.type == qr_type,
                QRCode.status.in_(ACTIVE_QR_CODE_STATUSES),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_by_code(self, session: AsyncSession, code: str, event_id: UUID) -> QRCode | None:
        result = await session.execute(
            select(QRCode)
            .where(QRCode.code == code, QRCode.event_id == event_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def insert_code(
        self,
        session: AsyncSession,
        code: str,
        guest_id: UUID,
        event_id: UUID,
        qr_type: QRCodeType,
    ) -> QRCode:
        """Insert a GENERATED code.

        Fails on flush when the guest already holds an active code of this type
        for the event, or when the token collides.
        """
        qr_code = QRCode(
            code=code,
            type=qr_type,
            status=QRCodeStatus.GENERATED,
            guest_id=guest_id,
            event_id=event_id,
            used_at=None,
        )
        session.add(qr_code)
        await session.flush()
        return qr_code

    async def transition_to_used(
        self, session: AsyncSession, code: str, event_id: UUID, used_at: datetime
    ) -> bool:
        """Compare-and-set an active code to USED.

        A single conditional UPDATE; the store serializes concurrent callers so
        exactly one of them sees an affected row.
        """
        result = await session.execute(
            update(QRCode)
            .where(
                QRCode.code == code,
                QRCode.event_id == event_id,
                QRCode.status.in_(ACTIVE_QR_CODE_STATUSES),
            )
            .values(status=QRCodeStatus.USED, used_at=used_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def transition_to_sent(self, session: AsyncSession, guest_id: UUID, event_id: UUID) -> int:
        result = await session.execute(
            update(QRCode)
            .where(
                QRCode.guest_id == guest_id,
                QRCode.event_id == event_id,
                QRCode.status == QRCodeStatus.GENERATED,
            )
            .values(status=QRCodeStatus.SENT)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def expire_active_codes(
        self,
        session: AsyncSession,
        guest_id: UUID,
        event_id: UUID,
        qr_type: QRCodeType | None = None,
    ) -> int:
        stmt = update(QRCode).where(
            QRCode.guest_id == guest_id,
            QRCode.event_id == event_id,
            QRCode.status.in_(ACTIVE_QR_CODE_STATUSES),
        )
        if qr_type is not None:
            stmt = stmt.where(QRCode.type == qr_type)
        result = await session.execute(
            stmt.values(status=QRCodeStatus.EXPIRED).execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def list_codes(self, session: AsyncSession, guest_id: UUID, event_id: UUID) -> list[QRCode]:
        """All codes of a guest for an event, newest first."""
        result = await session.execute(
            select(QRCode)
            .where(QRCode.guest_id == guest_id, QRCode.event_id == event_id)
            .order_by(QRCode.issued_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
