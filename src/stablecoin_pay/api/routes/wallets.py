"""Wallet endpoints — registration, balance and transaction history."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from stablecoin_pay.api.dependencies import get_engine
from stablecoin_pay.api.routes.schemas import (
    BalanceResponse,
    PaginationParams,
    TransactionListResponse,
    TransactionResponse,
    WalletCreateRequest,
    WalletResponse,
    WalletUpdateRequest,
)
from stablecoin_pay.engine.client import PaymentEngine  # noqa: TC001

router = APIRouter(tags=["wallets"])


@router.post("/wallets", status_code=201)
async def register_wallet(
    body: WalletCreateRequest,
    engine: Annotated[PaymentEngine, Depends(get_engine)],
) -> WalletResponse:
    """Register a wallet (idempotent; an existing wallet is returned as is)."""
    wallet = await engine.wallet_registry.register(body.address, body.webhook_url)
    return WalletResponse.model_validate(wallet)


@router.get("/wallets")
async def list_wallets(
    engine: Annotated[PaymentEngine, Depends(get_engine)],
) -> list[WalletResponse]:
    wallets = await engine.wallet_registry.list()
    return [WalletResponse.model_validate(w) for w in wallets]


@router.get("/wallets/{address}")
async def get_wallet(
    address: str,
    engine: Annotated[PaymentEngine, Depends(get_engine)],
) -> WalletResponse:
    wallet = await engine.wallet_registry.get(address)
    return WalletResponse.model_validate(wallet)


@router.patch("/wallets/{address}")
async def update_wallet(
    address: str,
    body: WalletUpdateRequest,
    engine: Annotated[PaymentEngine, Depends(get_engine)],
) -> WalletResponse:
    """Set, replace or clear the wallet's webhook URL."""
    wallet = await engine.wallet_registry.update_webhook(address, body.webhook_url)
    return WalletResponse.model_validate(wallet)


@router.delete("/wallets/{address}", status_code=204)
async def delete_wallet(
    address: str,
    engine: Annotated[PaymentEngine, Depends(get_engine)],
) -> None:
    """Stop watching a wallet; its transactions and events are deleted."""
    await engine.wallet_registry.remove(address)


@router.get("/wallets/{address}/balance")
async def get_balance(
    address: str,
    engine: Annotated[PaymentEngine, Depends(get_engine)],
) -> BalanceResponse:
    """Confirmed USDC balance derived from the ledger."""
    balance = await engine.query_service.get_balance(address)
    return BalanceResponse.model_validate(balance)


@router.get("/wallets/{address}/transactions")
async def list_transactions(
    address: str,
    engine: Annotated[PaymentEngine, Depends(get_engine)],
    pagination: Annotated[PaginationParams, Depends()],
) -> TransactionListResponse:
    """Ledger page for the wallet, newest block time first."""
    txs = await engine.query_service.list_transactions(
        address, limit=pagination.limit, offset=pagination.offset
    )
    items = [TransactionResponse.model_validate(tx) for tx in txs]
    return TransactionListResponse(transactions=items, count=len(items))
