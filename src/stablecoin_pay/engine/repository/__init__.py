"""Persistence layer — one repository per table."""

from __future__ import annotations

from stablecoin_pay.engine.repository.transactions import TransactionRepository
from stablecoin_pay.engine.repository.wallets import WalletRepository
from stablecoin_pay.engine.repository.webhook_events import WebhookEventRepository

__all__ = ["TransactionRepository", "WalletRepository", "WebhookEventRepository"]
