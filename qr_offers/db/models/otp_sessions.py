from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CHAR, CheckConstraint, DateTime, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from qr_offers.db.models.base import Base


class OtpSession(Base):
    __tablename__ = "otp_sessions"
    __table_args__ = (
        CheckConstraint(
            "verify_status IN ('issued','verified','expired')",
            name="ck_otp_sessions_verify_status",
        ),
        CheckConstraint(
            "invalidated_reason IS NULL OR invalidated_reason IN ('superseded','expired','locked')",
            name="ck_otp_sessions_invalidated_reason",
        ),
        CheckConstraint("expires_at > issued_at", name="ck_otp_sessions_expires_after_issue"),
        Index(
            "uq_otp_sessions_active_triple",
            "phone_number",
            "vendor_id",
            "offer_id",
            unique=True,
            postgresql_where=text("verify_status = 'issued'"),
        ),
        Index("idx_otp_sessions_vendor_hash", "vendor_id", "otp_hash"),
        Index(
            "uq_otp_sessions_active_join",
            "phone_number",
            "vendor_id",
            unique=True,
            postgresql_where=text("verify_status = 'issued' AND offer_id IS NULL"),
        ),
        Index(
            "uq_otp_sessions_live_vendor_hash",
            "vendor_id",
            "otp_hash",
            unique=True,
            postgresql_where=text("verify_status = 'issued'"),
        ),
        Index("idx_otp_sessions_expires_at", "expires_at"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(128), nullable=False)
    vendor_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("vendors.id"),
        nullable=False,
    )
    offer_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("offers.id"),
        nullable=True,
    )
    otp_hash: Mapped[str] = mapped_column(CHAR(64), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    verify_status: Mapped[str] = mapped_column(String(16), nullable=False)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    invalidated_reason: Mapped[str | None] = mapped_column(String(16), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
