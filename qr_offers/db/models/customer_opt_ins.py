from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from qr_offers.db.models.base import Base


class CustomerOptIn(Base):
    __tablename__ = "customer_opt_ins"
    __table_args__ = (
        CheckConstraint(
            "source IN ('qr_scan','join','offer')",
            name="ck_customer_opt_ins_source",
        ),
        UniqueConstraint("phone_number", "vendor_id", name="uq_customer_opt_ins_phone_vendor"),
        Index("idx_customer_opt_ins_vendor", "vendor_id", "opted_in_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    vendor_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("vendors.id"),
        nullable=False,
    )
    source: Mapped[str] = mapped_column(String(16), nullable=False)
    opted_in_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
