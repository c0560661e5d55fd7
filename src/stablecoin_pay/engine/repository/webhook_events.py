"""Webhook events repository (read side; the dispatcher owns writes)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select

from stablecoin_pay.engine.models.webhook_event import WebhookEvent

if TYPE_CHECKING:
    from stablecoin_pay.datastore.client import Datastore


class WebhookEventRepository:
    """Data access layer for webhook events."""

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

    async def get(self, event_id: str) -> WebhookEvent | None:
        async with self._ds.session() as session:
            return await session.get(WebhookEvent, event_id)

    async def list_by_wallet(
        self,
        address: str,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WebhookEvent]:
        """List a wallet's events, newest first."""
        async with self._ds.session() as session:
            stmt = (
                select(WebhookEvent)
                .where(WebhookEvent.wallet_address == address)
                .order_by(WebhookEvent.created_at.desc(), WebhookEvent.id)
                .offset(offset)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_by_signature(self, signature: str) -> list[WebhookEvent]:
        async with self._ds.session() as session:
            stmt = (
                select(WebhookEvent)
                .where(WebhookEvent.transaction_signature == signature)
                .order_by(WebhookEvent.created_at)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_by_wallet(self, address: str) -> int:
        async with self._ds.session() as session:
            stmt = (
                select(func.count())
                .select_from(WebhookEvent)
                .where(WebhookEvent.wallet_address == address)
            )
            return (await session.execute(stmt)).scalar_one()
