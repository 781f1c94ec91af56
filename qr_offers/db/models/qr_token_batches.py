from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from qr_offers.db.models.base import Base


class QRTokenBatch(Base):
    __tablename__ = "qr_token_batches"
    __table_args__ = (
        CheckConstraint("total_tokens > 0", name="ck_qr_token_batches_total_positive"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    layout_variant: Mapped[str] = mapped_column(String(16), nullable=False)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
