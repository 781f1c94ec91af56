from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.db.models.vendors import Vendor


class VendorsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, vendor: Vendor) -> Vendor:
        session.add(vendor)
        await session.flush()
        return vendor

    @staticmethod
    async def get_by_id(session: AsyncSession, vendor_id: UUID) -> Vendor | None:
        return await session.get(Vendor, vendor_id)

    @staticmethod
    async def list_existing_ids(session: AsyncSession, vendor_ids: list[UUID]) -> set[UUID]:
        if not vendor_ids:
            return set()
        stmt = select(Vendor.id).where(Vendor.id.in_(vendor_ids))
        result = await session.execute(stmt)
        return set(result.scalars().all())

    @staticmethod
    async def list_vendors(
        session: AsyncSession,
        *,
        city: str | None = None,
        category: str | None = None,
        limit: int = 100,
    ) -> list[Vendor]:
        stmt = select(Vendor).order_by(Vendor.created_at.desc(), Vendor.id.asc()).limit(limit)
        if city:
            stmt = stmt.where(Vendor.city == city)
        if category:
            stmt = stmt.where(Vendor.category == category)
        result = await session.execute(stmt)
        return list(result.scalars().all())
