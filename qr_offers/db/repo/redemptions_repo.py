from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.db.models.offers import Offer
from qr_offers.db.models.redemptions import Redemption


class RedemptionsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, redemption: Redemption) -> Redemption:
        session.add(redemption)
        await session.flush()
        return redemption

    @staticmethod
    async def get_by_id(session: AsyncSession, redemption_id: UUID) -> Redemption | None:
        return await session.get(Redemption, redemption_id)

    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        redemption_id: UUID,
    ) -> Redemption | None:
        stmt = select(Redemption).where(Redemption.id == redemption_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_code(session: AsyncSession, code: str) -> Redemption | None:
        stmt = select(Redemption).where(Redemption.code == code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_code_for_update(session: AsyncSession, code: str) -> Redemption | None:
        stmt = select(Redemption).where(Redemption.code == code).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_session_id(
        session: AsyncSession,
        otp_session_id: UUID,
    ) -> Redemption | None:
        stmt = select(Redemption).where(Redemption.otp_session_id == otp_session_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count_by_status(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        offer_id: UUID | None = None,
    ) -> dict[str, int]:
        stmt = (
            select(Redemption.status, func.count(Redemption.id))
            .where(Redemption.vendor_id == vendor_id)
            .group_by(Redemption.status)
        )
        if offer_id is not None:
            stmt = stmt.where(Redemption.offer_id == offer_id)
        result = await session.execute(stmt)
        return {str(status): int(count) for status, count in result.all()}

    @staticmethod
    async def expire_pending_for_expired_offers(
        session: AsyncSession,
        *,
        now_utc: datetime,
    ) -> int:
        expired_offer_ids = select(Offer.id).where(Offer.expiry_date <= now_utc)
        stmt = (
            update(Redemption)
            .where(
                Redemption.status == "pending",
                Redemption.offer_id.in_(expired_offer_ids),
            )
            .values(status="expired", updated_at=now_utc)
            .returning(Redemption.id)
        )
        result = await session.execute(stmt)
        return len(result.scalars().all())

    @staticmethod
    async def count_by_effective_status(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        now_utc: datetime,
    ) -> dict[str, int]:
        """Counts per status with pending records of expired offers reported as expired."""
        effective_status = case(
            (
                (Redemption.status == "pending") & (Offer.expiry_date <= now_utc),
                "expired",
            ),
            else_=Redemption.status,
        )
        stmt = (
            select(effective_status, func.count(Redemption.id))
            .join(Offer, Offer.id == Redemption.offer_id)
            .where(Redemption.vendor_id == vendor_id)
            .group_by(effective_status)
        )
        result = await session.execute(stmt)
        return {str(status): int(count) for status, count in result.all()}
