from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.db.models.otp_attempts import OtpAttempt


class OtpAttemptsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, attempt: OtpAttempt) -> OtpAttempt:
        session.add(attempt)
        await session.flush()
        return attempt

    @staticmethod
    async def count_for_session(
        session: AsyncSession,
        *,
        otp_session_id: UUID,
        attempt_results: Iterable[str] | None = None,
    ) -> int:
        stmt = select(func.count(OtpAttempt.id)).where(OtpAttempt.otp_session_id == otp_session_id)
        if attempt_results is not None:
            values = tuple(attempt_results)
            if not values:
                return 0
            stmt = stmt.where(OtpAttempt.result.in_(values))

        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def delete_before(session: AsyncSession, *, cutoff_utc: datetime) -> int:
        stmt = delete(OtpAttempt).where(OtpAttempt.attempted_at < cutoff_utc).returning(OtpAttempt.id)
        result = await session.execute(stmt)
        return len(result.scalars().all())
