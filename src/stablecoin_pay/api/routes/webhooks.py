"""Webhook endpoints — event history and test delivery."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from stablecoin_pay.api.dependencies import get_engine
from stablecoin_pay.api.routes.schemas import (
    PaginationParams,
    WebhookEventListResponse,
    WebhookEventResponse,
    WebhookTestResponse,
)
from stablecoin_pay.engine.client import PaymentEngine  # noqa: TC001

router = APIRouter(tags=["webhooks"])


@router.get("/wallets/{address}/webhook-events")
async def list_webhook_events(
    address: str,
    engine: Annotated[PaymentEngine, Depends(get_engine)],
    pagination: Annotated[PaginationParams, Depends()],
) -> WebhookEventListResponse:
    """Webhook events for the wallet, newest first."""
    events = await engine.query_service.list_webhook_events(
        address, limit=pagination.limit, offset=pagination.offset
    )
    items = [WebhookEventResponse.model_validate(e) for e in events]
    return WebhookEventListResponse(events=items, count=len(items))


@router.post("/wallets/{address}/webhook/test")
async def send_test_webhook(
    address: str,
    engine: Annotated[PaymentEngine, Depends(get_engine)],
) -> WebhookTestResponse:
    """Send a signed ``test`` event to the wallet's webhook URL once."""
    wallet = await engine.wallet_registry.get(address)
    success, message = await engine.dispatcher.send_test(wallet)
    return WebhookTestResponse(success=success, message=message)
