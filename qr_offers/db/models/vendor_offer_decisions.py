from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from qr_offers.db.models.base import Base


class VendorOfferDecision(Base):
    __tablename__ = "vendor_offer_decisions"
    __table_args__ = (
        CheckConstraint(
            "decision IN ('pending','accepted','rejected')",
            name="ck_vendor_offer_decisions_decision",
        ),
        CheckConstraint(
            "(decision = 'pending') = (decided_at IS NULL)",
            name="ck_vendor_offer_decisions_decided_at_consistency",
        ),
        Index("idx_vendor_offer_decisions_vendor", "vendor_id", "decision"),
    )

    offer_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("offers.id"),
        primary_key=True,
    )
    vendor_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("vendors.id"),
        primary_key=True,
    )
    decision: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
