"""qr_offers_core_schema

Revision ID: 5c1e2a7b9d40
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5c1e2a7b9d40"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "qr_token_batches",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("layout_variant", sa.String(16), nullable=False),
        sa.Column("total_tokens", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("total_tokens > 0", name="ck_qr_token_batches_total_positive"),
    )

    op.create_table(
        "qr_tokens",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("batch_id", sa.BigInteger(), nullable=True),
        sa.Column("layout_variant", sa.String(16), nullable=False),
        sa.Column("claim_status", sa.String(16), nullable=False),
        sa.Column("claimed_by_vendor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("claim_status IN ('unclaimed','claimed')", name="ck_qr_tokens_claim_status"),
        sa.CheckConstraint(
            "layout_variant IN ('layout1','layout2','layout3','layout4','layout5','layout6')",
            name="ck_qr_tokens_layout_variant",
        ),
        sa.CheckConstraint(
            "((claim_status = 'claimed' AND claimed_by_vendor_id IS NOT NULL AND claimed_at IS NOT NULL) "
            "OR (claim_status = 'unclaimed' AND claimed_by_vendor_id IS NULL AND claimed_at IS NULL))",
            name="ck_qr_tokens_claim_consistency",
        ),
        sa.ForeignKeyConstraint(["batch_id"], ["qr_token_batches.id"]),
        sa.UniqueConstraint("claimed_by_vendor_id", name="uq_qr_tokens_claimed_by_vendor_id"),
    )
    op.create_index("idx_qr_tokens_status_created", "qr_tokens", ["claim_status", "created_at"])
    op.create_index("idx_qr_tokens_batch", "qr_tokens", ["batch_id"])

    op.create_table(
        "vendors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("city", sa.String(64), nullable=False),
        sa.Column("contact_phone", sa.String(20), nullable=False),
        sa.Column("contact_email", sa.String(254), nullable=True),
        sa.Column("address", sa.String(256), nullable=True),
        sa.Column("qr_token_id", sa.String(32), nullable=False),
        sa.Column("access_token_hash", sa.CHAR(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["qr_token_id"], ["qr_tokens.id"]),
        sa.UniqueConstraint("qr_token_id", name="uq_vendors_qr_token_id"),
        sa.UniqueConstraint("access_token_hash", name="uq_vendors_access_token_hash"),
    )
    op.create_index("idx_vendors_city_category", "vendors", ["city", "category"])
    op.create_index("idx_vendors_created_at", "vendors", ["created_at"])

    op.create_table(
        "offers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("lifecycle_status", sa.String(16), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "lifecycle_status IN ('draft','published')",
            name="ck_offers_lifecycle_status",
        ),
        sa.CheckConstraint(
            "(lifecycle_status = 'published') = (published_at IS NOT NULL)",
            name="ck_offers_published_at_consistency",
        ),
    )
    op.create_index("idx_offers_created_at", "offers", ["created_at"])
    op.create_index("idx_offers_expiry_date", "offers", ["expiry_date"])

    op.create_table(
        "vendor_offer_decisions",
        sa.Column("offer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("decision", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "decision IN ('pending','accepted','rejected')",
            name="ck_vendor_offer_decisions_decision",
        ),
        sa.CheckConstraint(
            "(decision = 'pending') = (decided_at IS NULL)",
            name="ck_vendor_offer_decisions_decided_at_consistency",
        ),
        sa.ForeignKeyConstraint(["offer_id"], ["offers.id"]),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"]),
        sa.PrimaryKeyConstraint("offer_id", "vendor_id"),
    )
    op.create_index(
        "idx_vendor_offer_decisions_vendor",
        "vendor_offer_decisions",
        ["vendor_id", "decision"],
    )

    op.create_table(
        "offer_broadcasts",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("offer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("target_count", sa.Integer(), nullable=False),
        sa.Column("sent_count", sa.Integer(), nullable=False),
        sa.Column("failed_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("target_count >= 0", name="ck_offer_broadcasts_target_non_negative"),
        sa.CheckConstraint(
            "sent_count >= 0 AND failed_count >= 0 AND sent_count + failed_count = target_count",
            name="ck_offer_broadcasts_counts_consistency",
        ),
        sa.ForeignKeyConstraint(["offer_id"], ["offers.id"]),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"]),
    )
    op.create_index(
        "idx_offer_broadcasts_offer_vendor",
        "offer_broadcasts",
        ["offer_id", "vendor_id"],
    )
    op.create_index("idx_offer_broadcasts_created_at", "offer_broadcasts", ["created_at"])

    op.create_table(
        "customer_opt_ins",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("phone_number", sa.String(20), nullable=False),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source", sa.String(16), nullable=False),
        sa.Column("opted_in_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "source IN ('qr_scan','join','offer')",
            name="ck_customer_opt_ins_source",
        ),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"]),
        sa.UniqueConstraint("phone_number", "vendor_id", name="uq_customer_opt_ins_phone_vendor"),
    )
    op.create_index("idx_customer_opt_ins_vendor", "customer_opt_ins", ["vendor_id", "opted_in_at"])

    op.create_table(
        "otp_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("phone_number", sa.String(20), nullable=False),
        sa.Column("customer_name", sa.String(128), nullable=False),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("offer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("otp_hash", sa.CHAR(64), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verify_status", sa.String(16), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invalidated_reason", sa.String(16), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "verify_status IN ('issued','verified','expired')",
            name="ck_otp_sessions_verify_status",
        ),
        sa.CheckConstraint(
            "invalidated_reason IS NULL OR invalidated_reason IN ('superseded','expired','locked')",
            name="ck_otp_sessions_invalidated_reason",
        ),
        sa.CheckConstraint("expires_at > issued_at", name="ck_otp_sessions_expires_after_issue"),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"]),
        sa.ForeignKeyConstraint(["offer_id"], ["offers.id"]),
    )
    op.create_index(
        "uq_otp_sessions_active_triple",
        "otp_sessions",
        ["phone_number", "vendor_id", "offer_id"],
        unique=True,
        postgresql_where=sa.text("verify_status = 'issued'"),
    )
    op.create_index("idx_otp_sessions_vendor_hash", "otp_sessions", ["vendor_id", "otp_hash"])
    op.create_index("idx_otp_sessions_expires_at", "otp_sessions", ["expires_at"])

    op.create_table(
        "otp_attempts",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("otp_session_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("phone_number", sa.String(20), nullable=False),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("result", sa.String(16), nullable=False),
        sa.Column("attempted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.CheckConstraint(
            "result IN ('accepted','mismatch','expired','not_found','locked')",
            name="ck_otp_attempts_result",
        ),
        sa.ForeignKeyConstraint(["otp_session_id"], ["otp_sessions.id"]),
    )
    op.create_index(
        "idx_otp_attempts_session_time",
        "otp_attempts",
        ["otp_session_id", "attempted_at"],
    )
    op.create_index("idx_otp_attempts_phone_time", "otp_attempts", ["phone_number", "attempted_at"])

    op.create_table(
        "redemptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(24), nullable=False),
        sa.Column("otp_session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("offer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_phone", sa.String(20), nullable=False),
        sa.Column("customer_name", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending','redeemed','expired')",
            name="ck_redemptions_status",
        ),
        sa.CheckConstraint(
            "(status = 'redeemed') = (redeemed_at IS NOT NULL)",
            name="ck_redemptions_redeemed_at_consistency",
        ),
        sa.ForeignKeyConstraint(["otp_session_id"], ["otp_sessions.id"]),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"]),
        sa.ForeignKeyConstraint(["offer_id"], ["offers.id"]),
        sa.UniqueConstraint("code", name="uq_redemptions_code"),
        sa.UniqueConstraint("otp_session_id", name="uq_redemptions_otp_session_id"),
    )
    op.create_index("idx_redemptions_vendor_status", "redemptions", ["vendor_id", "status"])
    op.create_index("idx_redemptions_offer", "redemptions", ["offer_id"])


def downgrade() -> None:
    op.drop_index("idx_redemptions_offer", table_name="redemptions")
    op.drop_index("idx_redemptions_vendor_status", table_name="redemptions")
    op.drop_table("redemptions")

    op.drop_index("idx_otp_attempts_phone_time", table_name="otp_attempts")
    op.drop_index("idx_otp_attempts_session_time", table_name="otp_attempts")
    op.drop_table("otp_attempts")

    op.drop_index("idx_otp_sessions_expires_at", table_name="otp_sessions")
    op.drop_index("idx_otp_sessions_vendor_hash", table_name="otp_sessions")
    op.drop_index("uq_otp_sessions_active_triple", table_name="otp_sessions")
    op.drop_table("otp_sessions")

    op.drop_index("idx_customer_opt_ins_vendor", table_name="customer_opt_ins")
    op.drop_table("customer_opt_ins")

    op.drop_index("idx_offer_broadcasts_created_at", table_name="offer_broadcasts")
    op.drop_index("idx_offer_broadcasts_offer_vendor", table_name="offer_broadcasts")
    op.drop_table("offer_broadcasts")

    op.drop_index("idx_vendor_offer_decisions_vendor", table_name="vendor_offer_decisions")
    op.drop_table("vendor_offer_decisions")

    op.drop_index("idx_offers_expiry_date", table_name="offers")
    op.drop_index("idx_offers_created_at", table_name="offers")
    op.drop_table("offers")

    op.drop_index("idx_vendors_created_at", table_name="vendors")
    op.drop_index("idx_vendors_city_category", table_name="vendors")
    op.drop_table("vendors")

    op.drop_index("idx_qr_tokens_batch", table_name="qr_tokens")
    op.drop_index("idx_qr_tokens_status_created", table_name="qr_tokens")
    op.drop_table("qr_tokens")

    op.drop_table("qr_token_batches")
