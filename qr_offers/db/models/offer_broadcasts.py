from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from qr_offers.db.models.base import Base


class OfferBroadcast(Base):
    __tablename__ = "offer_broadcasts"
    __table_args__ = (
        CheckConstraint("target_count >= 0", name="ck_offer_broadcasts_target_non_negative"),
        CheckConstraint(
            "sent_count >= 0 AND failed_count >= 0 AND sent_count + failed_count = target_count",
            name="ck_offer_broadcasts_counts_consistency",
        ),
        Index("idx_offer_broadcasts_offer_vendor", "offer_id", "vendor_id"),
        Index("idx_offer_broadcasts_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    offer_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("offers.id"),
        nullable=False,
    )
    vendor_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("vendors.id"),
        nullable=False,
    )
    target_count: Mapped[int] = mapped_column(Integer, nullable=False)
    sent_count: Mapped[int] = mapped_column(Integer, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
