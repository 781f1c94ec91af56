from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.db.models.customer_opt_ins import CustomerOptIn


class OptInsRepo:
    @staticmethod
    async def upsert(
        session: AsyncSession,
        *,
        phone_number: str,
        vendor_id: UUID,
        source: str,
        now_utc: datetime,
    ) -> CustomerOptIn:
        stmt = (
            pg_insert(CustomerOptIn)
            .values(
                phone_number=phone_number,
                vendor_id=vendor_id,
                source=source,
                opted_in_at=now_utc,
                created_at=now_utc,
            )
            .on_conflict_do_update(
                constraint="uq_customer_opt_ins_phone_vendor",
                set_={"opted_in_at": now_utc},
            )
            .returning(CustomerOptIn)
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    @staticmethod
    async def list_phone_numbers_for_vendor(
        session: AsyncSession,
        *,
        vendor_id: UUID,
    ) -> list[str]:
        stmt = (
            select(CustomerOptIn.phone_number)
            .where(CustomerOptIn.vendor_id == vendor_id)
            .order_by(CustomerOptIn.opted_in_at.asc(), CustomerOptIn.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_for_vendor(session: AsyncSession, *, vendor_id: UUID) -> int:
        stmt = select(func.count(CustomerOptIn.id)).where(CustomerOptIn.vendor_id == vendor_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_for_vendor(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        offset: int,
        limit: int,
    ) -> list[CustomerOptIn]:
        stmt = (
            select(CustomerOptIn)
            .where(CustomerOptIn.vendor_id == vendor_id)
            .order_by(CustomerOptIn.opted_in_at.desc(), CustomerOptIn.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
