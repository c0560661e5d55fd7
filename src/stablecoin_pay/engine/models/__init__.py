"""ORM models — importing this package registers every table on ``Base.metadata``."""

from __future__ import annotations

from stablecoin_pay.engine.models.base import Base
from stablecoin_pay.engine.models.transaction import LedgerTransaction, TxStatus, TxType
from stablecoin_pay.engine.models.wallet import Wallet
from stablecoin_pay.engine.models.webhook_event import WebhookEvent, WebhookStatus

ALL_MODELS = [Wallet, LedgerTransaction, WebhookEvent]

__all__ = [
    "ALL_MODELS",
    "Base",
    "LedgerTransaction",
    "TxStatus",
    "TxType",
    "Wallet",
    "WebhookEvent",
    "WebhookStatus",
]
