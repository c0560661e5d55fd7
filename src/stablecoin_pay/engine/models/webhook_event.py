"""Webhook event model — durable outbox of subscriber notifications."""

from __future__ import annotations

import enum
from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]
from typing import TYPE_CHECKING, Any

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stablecoin_pay.engine.models.base import Base, CreatedAtMixin, utcnow

if TYPE_CHECKING:
    from stablecoin_pay.engine.models.wallet import Wallet


class WebhookStatus(enum.StrEnum):
    """Delivery state of a webhook event; DELIVERED and FAILED are terminal."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class WebhookEvent(Base, CreatedAtMixin):
    """A notification owed to a wallet's webhook endpoint.

    ``locked_by``/``locked_until`` form the delivery lease: a worker owns
    the row until the lease expires, so one event is never attempted by
    two workers at once.
    """

    __tablename__ = "webhook_events"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'delivered', 'failed')", name="ck_webhook_events_status"
        ),
        Index("idx_webhook_events_due", "status", "next_attempt_at"),
        Index("idx_webhook_events_wallet", "wallet_address", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, comment="uuid4")
    wallet_address: Mapped[str] = mapped_column(
        String(44),
        ForeignKey("wallets.address", ondelete="CASCADE"),
        nullable=False,
    )
    transaction_signature: Mapped[str | None] = mapped_column(
        String(88),
        ForeignKey("transactions.signature", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WebhookStatus.PENDING.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_attempt_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    locked_by: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)
    locked_until: Mapped[datetime | None] = mapped_column(nullable=True, default=None)
    last_attempt_at: Mapped[datetime | None] = mapped_column(nullable=True, default=None)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True, default=None)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    wallet: Mapped[Wallet] = relationship("Wallet", back_populates="webhook_events")

    def __repr__(self) -> str:
        return f"<WebhookEvent id={self.id[:8]}... type={self.event_type} status={self.status}>"
