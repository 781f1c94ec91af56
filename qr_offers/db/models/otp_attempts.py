from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from qr_offers.db.models.base import Base


class OtpAttempt(Base):
    __tablename__ = "otp_attempts"
    __table_args__ = (
        CheckConstraint(
            "result IN ('accepted','mismatch','expired','not_found','locked')",
            name="ck_otp_attempts_result",
        ),
        Index("idx_otp_attempts_session_time", "otp_session_id", "attempted_at"),
        Index("idx_otp_attempts_phone_time", "phone_number", "attempted_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    otp_session_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("otp_sessions.id"),
        nullable=True,
    )
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    vendor_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    result: Mapped[str] = mapped_column(String(16), nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
