"""join_otp_and_live_code_index

Revision ID: 8e3f6b1c2d57
Revises: 5c1e2a7b9d40
Create Date: 2026-10-19 10:30:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "8e3f6b1c2d57"
down_revision: str | None = "5c1e2a7b9d40"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    # Join sessions prove phone ownership for a vendor without an offer.
    op.alter_column(
        "otp_sessions",
        "offer_id",
        existing_type=postgresql.UUID(as_uuid=True),
        nullable=True,
    )
    op.create_index(
        "uq_otp_sessions_active_join",
        "otp_sessions",
        ["phone_number", "vendor_id"],
        unique=True,
        postgresql_where=sa.text("verify_status = 'issued' AND offer_id IS NULL"),
    )
    op.create_index(
        "uq_otp_sessions_live_vendor_hash",
        "otp_sessions",
        ["vendor_id", "otp_hash"],
        unique=True,
        postgresql_where=sa.text("verify_status = 'issued'"),
    )


def downgrade() -> None:
    op.drop_index("uq_otp_sessions_live_vendor_hash", table_name="otp_sessions")
    op.drop_index("uq_otp_sessions_active_join", table_name="otp_sessions")
    op.execute(
        "DELETE FROM otp_attempts WHERE otp_session_id IN "
        "(SELECT id FROM otp_sessions WHERE offer_id IS NULL)"
    )
    op.execute("DELETE FROM otp_sessions WHERE offer_id IS NULL")
    op.alter_column(
        "otp_sessions",
        "offer_id",
        existing_type=postgresql.UUID(as_uuid=True),
        nullable=False,
    )
