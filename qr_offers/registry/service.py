from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from qr_offers.db.models.qr_token_batches import QRTokenBatch
from qr_offers.db.models.qr_tokens import QRToken
from qr_offers.db.repo.qr_tokens_repo import QRTokensRepo
from qr_offers.registry.batch import generate_token_ids, normalize_token_id, validate_batch_request
from qr_offers.registry.constants import MAX_TOKEN_INSERT_ROUNDS
from qr_offers.registry.errors import TokenAlreadyClaimedError, TokenNotFoundError
from qr_offers.registry.types import ClaimStatus, GeneratedBatch, TokenValidation

logger = structlog.get_logger(__name__)


class TokenRegistry:
    """Owns QR token identity and the one-way unclaimed -> claimed transition."""

    @staticmethod
    async def generate_batch(
        session: AsyncSession,
        *,
        count: int,
        layout_variant: str,
        created_by: str,
        max_count: int,
        now_utc: datetime | None = None,
    ) -> GeneratedBatch:
        now_utc = now_utc or datetime.now(timezone.utc)
        layout = validate_batch_request(
            count=count,
            layout_variant=layout_variant,
            max_count=max_count,
        )

        batch = await QRTokensRepo.create_batch(
            session,
            batch=QRTokenBatch(
                layout_variant=layout.value,
                total_tokens=count,
                created_by=created_by,
                created_at=now_utc,
            ),
        )

        inserted: list[str] = []
        seen: set[str] = set()
        for _ in range(MAX_TOKEN_INSERT_ROUNDS):
            missing = count - len(inserted)
            if missing == 0:
                break
            candidates = generate_token_ids(count=missing, exclude=seen)
            seen.update(candidates)
            inserted.extend(
                await QRTokensRepo.insert_tokens_if_absent(
                    session,
                    token_ids=candidates,
                    batch_id=batch.id,
                    layout_variant=layout.value,
                    now_utc=now_utc,
                )
            )

        if len(inserted) != count:
            raise RuntimeError("unable to allocate unique qr tokens for batch")

        logger.info(
            "qr_token_batch_generated",
            batch_id=batch.id,
            layout_variant=layout.value,
            total_tokens=count,
            created_by=created_by,
        )
        return GeneratedBatch(
            batch_id=batch.id,
            layout_variant=layout,
            token_ids=sorted(inserted),
            created_at=now_utc,
        )

    @staticmethod
    async def validate(session: AsyncSession, *, token_id: str) -> TokenValidation:
        token = await QRTokensRepo.get_by_id(session, normalize_token_id(token_id))
        if token is None:
            raise TokenNotFoundError

        claimed = token.claim_status == ClaimStatus.CLAIMED
        return TokenValidation(
            token_id=token.id,
            valid=True,
            claimed=claimed,
            vendor_id=token.claimed_by_vendor_id if claimed else None,
        )

    @staticmethod
    async def claim(
        session: AsyncSession,
        *,
        token_id: str,
        vendor_id: UUID,
        now_utc: datetime | None = None,
    ) -> None:
        now_utc = now_utc or datetime.now(timezone.utc)
        normalized = normalize_token_id(token_id)

        # Single conditional write; a concurrent claim blocks on the row lock and
        # then re-evaluates the predicate against the committed winner.
        claimed = await QRTokensRepo.claim_if_unclaimed(
            session,
            token_id=normalized,
            vendor_id=vendor_id,
            now_utc=now_utc,
        )
        if claimed:
            logger.info("qr_token_claimed", token_id=normalized, vendor_id=str(vendor_id))
            return

        if await QRTokensRepo.get_by_id(session, normalized) is None:
            raise TokenNotFoundError
        logger.info("qr_token_claim_conflict", token_id=normalized, vendor_id=str(vendor_id))
        raise TokenAlreadyClaimedError

    @staticmethod
    async def list_tokens(
        session: AsyncSession,
        *,
        claim_status: ClaimStatus | None = None,
        limit: int = 100,
    ) -> list[QRToken]:
        return await QRTokensRepo.list_tokens(
            session,
            claim_status=claim_status.value if claim_status is not None else None,
            limit=limit,
        )
