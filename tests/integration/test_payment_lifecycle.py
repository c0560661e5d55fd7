"""Integration test — a USDC payment from first sight to webhook delivery.

Flow:
  1. Register a wallet with a webhook URL
  2. The payment lands at ``confirmed`` commitment (ledger row, pending)
  3. The payment reaches ``finalized`` (status promoted, event enqueued)
  4. Delivery fails once, then succeeds on the retry
  5. Balance and history reflect the confirmed payment
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from stablecoin_pay.engine.models.webhook_event import WebhookEvent, WebhookStatus
from tests.fakes import C1, W1


@pytest.mark.integration
class TestPaymentLifecycle:
    """End-to-end payment flow using a real engine (in-memory SQLite)."""

    async def test_payment_lifecycle(self, live_engine, node, endpoint) -> None:
        await live_engine.wallet_registry.register(W1, "https://hooks.test/w1")
        node.transfer("PAY1", sender=C1, receiver=W1, amount=25_000_000, commitment="confirmed")

        first = await live_engine.sync_service.sync_all()
        assert first.new_transactions == 1
        assert first.webhooks_enqueued == 0
        row = await live_engine.transaction_repository.get("PAY1")
        assert row.status == "pending"
        assert row.amount == Decimal("25.000000")
        assert (await live_engine.query_service.get_balance(W1)).amount == Decimal("0")

        node.set_commitment("PAY1", "finalized")
        second = await live_engine.sync_service.sync_all()
        assert second.transitions == 1
        assert second.webhooks_enqueued == 1
        assert "getSignatureStatuses" in node.methods

        endpoint.script = [503]
        assert (await live_engine.dispatcher.deliver_pending()).retried == 1
        (event,) = await live_engine.query_service.list_webhook_events(W1)
        assert event.status == WebhookStatus.PENDING.value
        assert event.attempts == 1

        # Pull the retry forward instead of waiting out the backoff
        async with live_engine.datastore.session() as session:
            stored = await session.get(WebhookEvent, event.id)
            stored.next_attempt_at = stored.created_at
            await session.commit()

        assert (await live_engine.dispatcher.deliver_pending()).delivered == 1
        (event,) = await live_engine.query_service.list_webhook_events(W1)
        assert event.status == WebhookStatus.DELIVERED.value
        assert event.attempts == 2
        assert event.payload["data"]["previous_status"] == "pending"
        assert len(endpoint.requests) == 2

        balance = await live_engine.query_service.get_balance(W1)
        assert balance.amount == Decimal("25.000000")
        (tx,) = await live_engine.query_service.list_transactions(W1)
        assert tx.counterparty == C1
        assert tx.tx_type == "receive"

    async def test_resync_is_idempotent(self, live_engine, node) -> None:
        await live_engine.wallet_registry.register(W1, "https://hooks.test/w1")
        node.transfer("PAY1", sender=C1, receiver=W1, amount=1_000_000, commitment="finalized")
        node.transfer("PAY2", sender=W1, receiver=C1, amount=400_000, commitment="finalized")

        await live_engine.sync_service.sync_all()
        again = await live_engine.sync_service.sync_all()

        assert again.new_transactions == 0
        assert again.transitions == 0
        balance = await live_engine.query_service.get_balance(W1)
        assert balance.amount == Decimal("0.600000")
        assert len(await live_engine.query_service.list_webhook_events(W1)) == 2

    async def test_health_reports_slot(self, live_engine) -> None:
        health = await live_engine.health_check()
        assert health["solana_rpc"] == "ok"
        assert health["solana_slot"] == 1002
