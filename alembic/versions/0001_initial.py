"""Initial schema: wallets, transactions, webhook_events.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "wallets",
        sa.Column("address", sa.String(44), primary_key=True),
        sa.Column("webhook_url", sa.Text(), nullable=True),
        sa.Column("watermark", sa.String(88), nullable=True),
        sa.Column("sync_cursor", sa.String(88), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "transactions",
        sa.Column("signature", sa.String(88), primary_key=True),
        sa.Column(
            "wallet_address",
            sa.String(44),
            sa.ForeignKey("wallets.address", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tx_type", sa.String(10), nullable=False),
        sa.Column("amount", sa.Numeric(20, 6), nullable=False),
        sa.Column("token_mint", sa.String(44), nullable=False),
        sa.Column("counterparty", sa.String(44), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("slot", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("block_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("tx_type IN ('send', 'receive')", name="ck_transactions_tx_type"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'failed')", name="ck_transactions_status"
        ),
    )
    op.create_index("ix_transactions_wallet_address", "transactions", ["wallet_address"])
    op.create_index("ix_transactions_block_time", "transactions", ["block_time"])
    op.create_index(
        "idx_transactions_wallet_time", "transactions", ["wallet_address", "block_time"]
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "wallet_address",
            sa.String(44),
            sa.ForeignKey("wallets.address", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "transaction_signature",
            sa.String(88),
            sa.ForeignKey("transactions.signature", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("locked_by", sa.String(64), nullable=True),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'delivered', 'failed')", name="ck_webhook_events_status"
        ),
    )
    op.create_index(
        "ix_webhook_events_transaction_signature", "webhook_events", ["transaction_signature"]
    )
    op.create_index("idx_webhook_events_due", "webhook_events", ["status", "next_attempt_at"])
    op.create_index(
        "idx_webhook_events_wallet", "webhook_events", ["wallet_address", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_table("transactions")
    op.drop_table("wallets")
