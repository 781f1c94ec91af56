from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.db.models.offer_broadcasts import OfferBroadcast
from qr_offers.db.models.offers import Offer
from qr_offers.db.models.vendor_offer_decisions import VendorOfferDecision


class OffersRepo:
    @staticmethod
    async def create(session: AsyncSession, *, offer: Offer) -> Offer:
        session.add(offer)
        await session.flush()
        return offer

    @staticmethod
    async def get_by_id(session: AsyncSession, offer_id: UUID) -> Offer | None:
        return await session.get(Offer, offer_id)

    @staticmethod
    async def list_offers(session: AsyncSession, *, limit: int = 100) -> list[Offer]:
        stmt = select(Offer).order_by(Offer.created_at.desc(), Offer.id.asc()).limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def publish_if_draft(
        session: AsyncSession,
        *,
        offer_id: UUID,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(Offer)
            .where(
                Offer.id == offer_id,
                Offer.lifecycle_status == "draft",
            )
            .values(
                lifecycle_status="published",
                published_at=now_utc,
                updated_at=now_utc,
            )
            .returning(Offer.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def insert_pending_decisions(
        session: AsyncSession,
        *,
        offer_id: UUID,
        vendor_ids: list[UUID],
        now_utc: datetime,
    ) -> int:
        if not vendor_ids:
            return 0
        stmt = (
            pg_insert(VendorOfferDecision)
            .values(
                [
                    {
                        "offer_id": offer_id,
                        "vendor_id": vendor_id,
                        "decision": "pending",
                        "created_at": now_utc,
                        "decided_at": None,
                    }
                    for vendor_id in vendor_ids
                ]
            )
            .on_conflict_do_nothing(
                index_elements=[VendorOfferDecision.offer_id, VendorOfferDecision.vendor_id]
            )
            .returning(VendorOfferDecision.vendor_id)
        )
        result = await session.execute(stmt)
        return len(result.scalars().all())

    @staticmethod
    async def get_decision(
        session: AsyncSession,
        *,
        offer_id: UUID,
        vendor_id: UUID,
    ) -> VendorOfferDecision | None:
        return await session.get(VendorOfferDecision, (offer_id, vendor_id))

    @staticmethod
    async def decide_if_pending(
        session: AsyncSession,
        *,
        offer_id: UUID,
        vendor_id: UUID,
        decision: str,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(VendorOfferDecision)
            .where(
                VendorOfferDecision.offer_id == offer_id,
                VendorOfferDecision.vendor_id == vendor_id,
                VendorOfferDecision.decision == "pending",
            )
            .values(decision=decision, decided_at=now_utc)
            .returning(VendorOfferDecision.offer_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_for_vendor(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        decision: str | None = None,
    ) -> list[tuple[Offer, VendorOfferDecision]]:
        stmt = (
            select(Offer, VendorOfferDecision)
            .join(VendorOfferDecision, VendorOfferDecision.offer_id == Offer.id)
            .where(VendorOfferDecision.vendor_id == vendor_id)
            .order_by(Offer.published_at.desc().nullslast(), Offer.id.asc())
        )
        if decision is not None:
            stmt = stmt.where(VendorOfferDecision.decision == decision)
        result = await session.execute(stmt)
        return [(offer, decision_row) for offer, decision_row in result.all()]

    @staticmethod
    async def list_live_accepted_for_vendor(
        session: AsyncSession,
        *,
        vendor_id: UUID,
        now_utc: datetime,
    ) -> list[Offer]:
        stmt = (
            select(Offer)
            .join(VendorOfferDecision, VendorOfferDecision.offer_id == Offer.id)
            .where(
                VendorOfferDecision.vendor_id == vendor_id,
                VendorOfferDecision.decision == "accepted",
                Offer.expiry_date > now_utc,
            )
            .order_by(Offer.expiry_date.asc(), Offer.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_decisions_by_offer(
        session: AsyncSession,
        *,
        offer_ids: list[UUID],
    ) -> dict[UUID, dict[str, int]]:
        if not offer_ids:
            return {}
        stmt = (
            select(
                VendorOfferDecision.offer_id,
                func.count().label("total"),
                func.sum(case((VendorOfferDecision.decision == "accepted", 1), else_=0)),
                func.sum(case((VendorOfferDecision.decision == "rejected", 1), else_=0)),
                func.sum(case((VendorOfferDecision.decision == "pending", 1), else_=0)),
            )
            .where(VendorOfferDecision.offer_id.in_(offer_ids))
            .group_by(VendorOfferDecision.offer_id)
        )
        result = await session.execute(stmt)
        return {
            offer_id: {
                "total": int(total or 0),
                "accepted": int(accepted or 0),
                "rejected": int(rejected or 0),
                "pending": int(pending or 0),
            }
            for offer_id, total, accepted, rejected, pending in result.all()
        }

    @staticmethod
    async def create_broadcast(
        session: AsyncSession,
        *,
        broadcast: OfferBroadcast,
    ) -> OfferBroadcast:
        session.add(broadcast)
        await session.flush()
        return broadcast

    @staticmethod
    async def list_broadcasts(
        session: AsyncSession,
        *,
        offer_id: UUID | None = None,
        vendor_id: UUID | None = None,
        limit: int = 100,
    ) -> list[OfferBroadcast]:
        stmt = (
            select(OfferBroadcast)
            .order_by(OfferBroadcast.created_at.desc(), OfferBroadcast.id.desc())
            .limit(limit)
        )
        if offer_id is not None:
            stmt = stmt.where(OfferBroadcast.offer_id == offer_id)
        if vendor_id is not None:
            stmt = stmt.where(OfferBroadcast.vendor_id == vendor_id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def sum_broadcasts(
        session: AsyncSession,
        *,
        offer_id: UUID,
        vendor_id: UUID,
    ) -> tuple[int, int]:
        stmt = select(
            func.count(OfferBroadcast.id),
            func.coalesce(func.sum(OfferBroadcast.sent_count), 0),
        ).where(
            OfferBroadcast.offer_id == offer_id,
            OfferBroadcast.vendor_id == vendor_id,
        )
        result = await session.execute(stmt)
        broadcasts, sent = result.one()
        return int(broadcasts or 0), int(sent or 0)
