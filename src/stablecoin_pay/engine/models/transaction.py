"""Ledger transaction model — reconciled USDC transfers."""

from __future__ import annotations

import enum
from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]
from decimal import Decimal  # noqa: TC003
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stablecoin_pay.engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from stablecoin_pay.engine.models.wallet import Wallet


class TxType(enum.StrEnum):
    """Direction of a transfer relative to the owning wallet."""

    SEND = "send"
    RECEIVE = "receive"


class TxStatus(enum.StrEnum):
    """Finality of a ledger transaction.

    ``PENDING`` may move to either terminal value; terminal values never move.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TxStatus.PENDING

    def can_transition_to(self, new: TxStatus) -> bool:
        """Whether a row in this status may be updated to *new*."""
        return self is TxStatus.PENDING and new is not TxStatus.PENDING


class LedgerTransaction(Base, TimestampMixin):
    """One observed transfer, keyed by its chain signature."""

    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("tx_type IN ('send', 'receive')", name="ck_transactions_tx_type"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'failed')", name="ck_transactions_status"
        ),
        Index("idx_transactions_wallet_time", "wallet_address", "block_time"),
    )

    signature: Mapped[str] = mapped_column(
        String(88), primary_key=True, comment="Chain-assigned transaction signature"
    )
    wallet_address: Mapped[str] = mapped_column(
        String(44),
        ForeignKey("wallets.address", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tx_type: Mapped[str] = mapped_column(String(10), nullable=False, comment="send | receive")
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    token_mint: Mapped[str] = mapped_column(String(44), nullable=False)
    counterparty: Mapped[str] = mapped_column(String(44), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, comment="pending | confirmed | failed"
    )
    slot: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    block_time: Mapped[datetime] = mapped_column(nullable=False, index=True)

    wallet: Mapped[Wallet] = relationship("Wallet", back_populates="transactions")

    def __repr__(self) -> str:
        return f"<LedgerTransaction signature={self.signature[:16]}... status={self.status}>"
