from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ColumnElement, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.db.models.otp_sessions import OtpSession


def _same_offer(offer_id: UUID | None) -> ColumnElement[bool]:
    if offer_id is None:
        return OtpSession.offer_id.is_(None)
    return OtpSession.offer_id == offer_id


class OtpSessionsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, otp_session: OtpSession) -> OtpSession:
        session.add(otp_session)
        await session.flush()
        return otp_session

    @staticmethod
    async def get_by_id(session: AsyncSession, session_id: UUID) -> OtpSession | None:
        return await session.get(OtpSession, session_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, session_id: UUID) -> OtpSession | None:
        stmt = select(OtpSession).where(OtpSession.id == session_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def supersede_active(
        session: AsyncSession,
        *,
        phone_number: str,
        vendor_id: UUID,
        offer_id: UUID | None,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(OtpSession)
            .where(
                OtpSession.phone_number == phone_number,
                OtpSession.vendor_id == vendor_id,
                _same_offer(offer_id),
                OtpSession.verify_status == "issued",
            )
            .values(
                verify_status="expired",
                invalidated_reason="superseded",
                updated_at=now_utc,
            )
            .returning(OtpSession.id)
        )
        result = await session.execute(stmt)
        return len(result.scalars().all())

    @staticmethod
    async def find_latest_for_triple(
        session: AsyncSession,
        *,
        phone_number: str,
        vendor_id: UUID,
        offer_id: UUID,
    ) -> OtpSession | None:
        stmt = (
            select(OtpSession)
            .where(
                OtpSession.phone_number == phone_number,
                OtpSession.vendor_id == vendor_id,
                OtpSession.offer_id == offer_id,
            )
            .order_by(OtpSession.issued_at.desc(), OtpSession.id.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def live_hash_exists_at_vendor(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        otp_hash: str,
    ) -> bool:
        # Mirrors the predicate of uq_otp_sessions_live_vendor_hash.
        stmt = select(
            exists().where(
                OtpSession.vendor_id == vendor_id,
                OtpSession.otp_hash == otp_hash,
                OtpSession.verify_status == "issued",
            )
        )
        result = await session.execute(stmt)
        return bool(result.scalar_one())

    @staticmethod
    async def find_by_vendor_hash(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        otp_hash: str,
    ) -> OtpSession | None:
        """Most recent offer session at the vendor carrying this code hash, any status."""
        stmt = (
            select(OtpSession)
            .where(
                OtpSession.vendor_id == vendor_id,
                OtpSession.otp_hash == otp_hash,
                OtpSession.offer_id.is_not(None),
            )
            .order_by(OtpSession.issued_at.desc(), OtpSession.id.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_verified_if_issued(
        session: AsyncSession,
        *,
        session_id: UUID,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(OtpSession)
            .where(
                OtpSession.id == session_id,
                OtpSession.verify_status == "issued",
                OtpSession.expires_at > now_utc,
            )
            .values(
                verify_status="verified",
                verified_at=now_utc,
                updated_at=now_utc,
            )
            .returning(OtpSession.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def invalidate_if_issued(
        session: AsyncSession,
        *,
        session_id: UUID,
        reason: str,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(OtpSession)
            .where(
                OtpSession.id == session_id,
                OtpSession.verify_status == "issued",
            )
            .values(
                verify_status="expired",
                invalidated_reason=reason,
                updated_at=now_utc,
            )
            .returning(OtpSession.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def expire_stale(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int = 1000,
    ) -> int:
        stale_ids = (
            select(OtpSession.id)
            .where(
                OtpSession.verify_status == "issued",
                OtpSession.expires_at <= now_utc,
            )
            .order_by(OtpSession.expires_at.asc())
            .limit(limit)
            .scalar_subquery()
        )
        stmt = (
            update(OtpSession)
            .where(
                OtpSession.id.in_(stale_ids),
                OtpSession.verify_status == "issued",
            )
            .values(
                verify_status="expired",
                invalidated_reason="expired",
                updated_at=now_utc,
            )
            .returning(OtpSession.id)
        )
        result = await session.execute(stmt)
        return len(result.scalars().all())
