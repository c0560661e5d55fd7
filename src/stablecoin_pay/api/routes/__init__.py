"""HTTP routes — wallets, balances, transactions, webhooks."""

from __future__ import annotations

from fastapi import APIRouter

from stablecoin_pay.api.routes.wallets import router as wallets_router
from stablecoin_pay.api.routes.webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(wallets_router)
api_router.include_router(webhooks_router)

__all__ = ["api_router"]
