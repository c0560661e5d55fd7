"""API request/response schemas (Pydantic models)."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from decimal import Decimal  # noqa: TC003
from typing import Any

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Common
# ---------------------------------------------------------------------------


class PaginationParams(BaseModel):
    """``limit``/``offset`` query parameters; ``limit`` is capped at 100."""

    limit: int = Field(50, ge=1, description="Items per page (max 100)")
    offset: int = Field(0, ge=0, description="Items to skip")


class ErrorResponse(BaseModel):
    """Standard error response."""

    code: str
    message: str


# ---------------------------------------------------------------------------
# Wallets
# ---------------------------------------------------------------------------


class WalletCreateRequest(BaseModel):
    """Register a wallet for monitoring."""

    address: str = Field(..., description="Base58 Solana address")
    webhook_url: str | None = Field(None, description="Endpoint receiving transaction events")


class WalletUpdateRequest(BaseModel):
    """Set or clear (``null``) a wallet's webhook URL."""

    webhook_url: str | None = None


class WalletResponse(BaseModel):
    address: str
    webhook_url: str | None = None
    watermark: str | None = None
    last_synced_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    """Confirmed balance; amounts are decimal strings."""

    address: str
    token: str
    symbol: str
    amount: Decimal
    usd_value: Decimal

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TransactionResponse(BaseModel):
    signature: str
    wallet_address: str
    tx_type: str
    amount: Decimal
    token_mint: str
    counterparty: str
    status: str
    slot: int
    block_time: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    count: int


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class WebhookEventResponse(BaseModel):
    id: str
    wallet_address: str
    transaction_signature: str | None = None
    event_type: str
    payload: dict[str, Any]
    status: str
    attempts: int
    next_attempt_at: datetime
    last_attempt_at: datetime | None = None
    delivered_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class WebhookEventListResponse(BaseModel):
    events: list[WebhookEventResponse]
    count: int


class WebhookTestResponse(BaseModel):
    success: bool
    message: str
