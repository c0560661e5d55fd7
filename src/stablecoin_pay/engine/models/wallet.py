"""Wallet model — registered addresses to monitor."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]
from typing import TYPE_CHECKING

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stablecoin_pay.engine.models.base import Base, CreatedAtMixin

if TYPE_CHECKING:
    from stablecoin_pay.engine.models.transaction import LedgerTransaction
    from stablecoin_pay.engine.models.webhook_event import WebhookEvent


class Wallet(Base, CreatedAtMixin):
    """A Solana address whose USDC activity is watched.

    ``watermark`` is the newest signature whose batch has been durably
    reconciled; polling resumes after it.
    ``sync_cursor`` is set while a backlog deeper than one poll cycle is
    being paged through; it is cleared whenever the watermark moves.
    """

    __tablename__ = "wallets"

    address: Mapped[str] = mapped_column(
        String(44), primary_key=True, comment="Base58 Solana public key"
    )
    webhook_url: Mapped[str | None] = mapped_column(
        Text, nullable=True, default=None, comment="Subscriber endpoint"
    )
    watermark: Mapped[str | None] = mapped_column(
        String(88), nullable=True, default=None, comment="Last processed signature"
    )
    sync_cursor: Mapped[str | None] = mapped_column(
        String(88),
        nullable=True,
        default=None,
        comment="Resume point of an unfinished walk back to the watermark",
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(nullable=True, default=None)

    transactions: Mapped[list[LedgerTransaction]] = relationship(
        "LedgerTransaction",
        back_populates="wallet",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    webhook_events: Mapped[list[WebhookEvent]] = relationship(
        "WebhookEvent",
        back_populates="wallet",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Wallet address={self.address}>"
