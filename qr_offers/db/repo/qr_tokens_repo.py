from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.db.models.qr_token_batches import QRTokenBatch
from qr_offers.db.models.qr_tokens import QRToken


class QRTokensRepo:
    @staticmethod
    async def create_batch(session: AsyncSession, *, batch: QRTokenBatch) -> QRTokenBatch:
        session.add(batch)
        await session.flush()
        return batch

    @staticmethod
    async def insert_tokens_if_absent(
        session: AsyncSession,
        *,
        token_ids: list[str],
        batch_id: int,
        layout_variant: str,
        now_utc: datetime,
    ) -> list[str]:
        if not token_ids:
            return []

        stmt = (
            pg_insert(QRToken)
            .values(
                [
                    {
                        "id": token_id,
                        "batch_id": batch_id,
                        "layout_variant": layout_variant,
                        "claim_status": "unclaimed",
                        "claimed_by_vendor_id": None,
                        "claimed_at": None,
                        "created_at": now_utc,
                    }
                    for token_id in token_ids
                ]
            )
            .on_conflict_do_nothing(index_elements=[QRToken.id])
            .returning(QRToken.id)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_by_id(session: AsyncSession, token_id: str) -> QRToken | None:
        return await session.get(QRToken, token_id)

    @staticmethod
    async def list_tokens(
        session: AsyncSession,
        *,
        claim_status: str | None = None,
        limit: int = 100,
    ) -> list[QRToken]:
        stmt = select(QRToken).order_by(QRToken.created_at.desc(), QRToken.id.asc()).limit(limit)
        if claim_status is not None:
            stmt = stmt.where(QRToken.claim_status == claim_status)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def claim_if_unclaimed(
        session: AsyncSession,
        *,
        token_id: str,
        vendor_id: UUID,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(QRToken)
            .where(
                QRToken.id == token_id,
                QRToken.claim_status == "unclaimed",
            )
            .values(
                claim_status="claimed",
                claimed_by_vendor_id=vendor_id,
                claimed_at=now_utc,
            )
            .returning(QRToken.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
