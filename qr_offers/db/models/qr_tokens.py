from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from qr_offers.db.models.base import Base


class QRToken(Base):
    __tablename__ = "qr_tokens"
    __table_args__ = (
        CheckConstraint(
            "claim_status IN ('unclaimed','claimed')",
            name="ck_qr_tokens_claim_status",
        ),
        CheckConstraint(
            "layout_variant IN ('layout1','layout2','layout3','layout4','layout5','layout6')",
            name="ck_qr_tokens_layout_variant",
        ),
        CheckConstraint(
            "((claim_status = 'claimed' AND claimed_by_vendor_id IS NOT NULL AND claimed_at IS NOT NULL) "
            "OR (claim_status = 'unclaimed' AND claimed_by_vendor_id IS NULL AND claimed_at IS NULL))",
            name="ck_qr_tokens_claim_consistency",
        ),
        Index("idx_qr_tokens_status_created", "claim_status", "created_at"),
        Index("idx_qr_tokens_batch", "batch_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    batch_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("qr_token_batches.id"),
        nullable=True,
    )
    layout_variant: Mapped[str] = mapped_column(String(16), nullable=False)
    claim_status: Mapped[str] = mapped_column(String(16), nullable=False)
    claimed_by_vendor_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        unique=True,
        nullable=True,
    )
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
