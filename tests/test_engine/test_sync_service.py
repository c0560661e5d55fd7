"""End-to-end sync cycles: watcher → reconciler → outbox, against fakes."""

from __future__ import annotations

import asyncio
import gc
from decimal import Decimal

from stablecoin_pay.chain.solana.models import SignatureStatus
from stablecoin_pay.engine.models.transaction import TxStatus
from stablecoin_pay.engine.models.webhook_event import WebhookStatus
from stablecoin_pay.errors.chain_errors import SolanaRPCError
from tests.fakes import W1, W2, make_raw


class TestSyncWallet:
    async def test_pending_receive_is_recorded_without_event(self, pipeline, wallet, chain) -> None:
        chain.add(make_raw("SIG1"), confirmation_status="confirmed")

        result = await pipeline.sync.sync_wallet(wallet)

        assert result.new_transactions == 1
        assert result.webhooks_enqueued == 0
        row = await pipeline.transactions.get("SIG1")
        assert row.status == "pending"
        assert row.amount == Decimal("10.000000")
        assert await pipeline.events.count_by_wallet(W1) == 0
        assert (await pipeline.wallets.get(W1)).watermark == "SIG1"

    async def test_confirmation_produces_exactly_one_event(self, pipeline, wallet, chain) -> None:
        chain.add(make_raw("SIG1"), confirmation_status="confirmed")
        await pipeline.sync.sync_wallet(wallet)

        chain.statuses["SIG1"] = SignatureStatus(slot=101, confirmation_status="finalized")
        result = await pipeline.sync.sync_wallet(wallet)

        assert result.transitions == 1
        assert result.new_transactions == 0
        assert result.webhooks_enqueued == 1
        assert (await pipeline.transactions.get("SIG1")).status == "confirmed"
        (event,) = await pipeline.events.list_by_signature("SIG1")
        assert event.event_type == "transaction.confirmed"

        # A later cycle finds nothing pending and nothing new
        again = await pipeline.sync.sync_wallet(wallet)
        assert again.transitions == 0
        assert len(await pipeline.events.list_by_signature("SIG1")) == 1

    async def test_replayed_confirmed_signature_is_a_noop(self, pipeline, wallet, chain) -> None:
        chain.add(make_raw("SIG1", status=TxStatus.CONFIRMED))
        await pipeline.sync.sync_wallet(wallet)

        # Lose the cursor so the watcher delivers SIG1 a second time
        replay = await pipeline.wallets.get(W1)
        replay.watermark = None
        result = await pipeline.sync.sync_wallet(replay)

        assert result.transitions == 0
        assert await pipeline.transactions.count_by_wallet(W1) == 1
        assert len(await pipeline.events.list_by_signature("SIG1")) == 1

    async def test_watermark_stops_before_unavailable_signature(
        self, pipeline, wallet, chain
    ) -> None:
        chain.add(make_raw("s1", status=TxStatus.CONFIRMED))
        chain.add(None, signature="s2")
        chain.add(make_raw("s3", status=TxStatus.CONFIRMED))

        await pipeline.sync.sync_wallet(wallet)
        assert (await pipeline.wallets.get(W1)).watermark == "s1"
        assert await pipeline.transactions.get("s3") is None

        chain.transactions["s2"] = make_raw("s2", status=TxStatus.CONFIRMED)
        await pipeline.sync.sync_wallet(wallet)

        assert (await pipeline.wallets.get(W1)).watermark == "s3"
        assert await pipeline.transactions.count_by_wallet(W1) == 3

    async def test_full_flow_to_delivery(self, pipeline, wallet, chain, endpoint) -> None:
        chain.add(make_raw("SIG1", status=TxStatus.CONFIRMED))
        await pipeline.sync.sync_wallet(wallet)

        report = await pipeline.dispatcher.deliver_pending()

        assert report.delivered == 1
        (event,) = await pipeline.events.list_by_signature("SIG1")
        assert event.status == WebhookStatus.DELIVERED.value
        assert endpoint.requests[0].headers["x-webhook-event"] == "transaction.confirmed"

    async def test_overlapping_cycle_is_skipped(self, pipeline, wallet) -> None:
        lock = asyncio.Lock()
        await lock.acquire()
        pipeline.sync._locks[W1] = lock

        assert await pipeline.sync.sync_wallet(wallet) is None
        lock.release()

    async def test_removed_wallet_leaves_no_lock_behind(self, pipeline, wallet, chain) -> None:
        chain.add(make_raw("SIG1", status=TxStatus.CONFIRMED))
        await pipeline.sync.sync_wallet(wallet)
        await pipeline.registry.remove(W1)
        gc.collect()

        assert W1 not in pipeline.sync._locks
        assert len(pipeline.sync._locks) == 0


class TestSyncAll:
    async def test_report(self, pipeline, wallet, chain, clock) -> None:
        chain.add(make_raw("SIG1", status=TxStatus.CONFIRMED))

        report = await pipeline.sync.sync_all()

        assert report.wallets_synced == 1
        assert report.new_transactions == 1
        assert report.webhooks_enqueued == 1
        assert report.errors == []
        assert report.completed_at == clock()
        assert pipeline.sync.last_report is report
        assert report.to_dict()["wallets_synced"] == 1

    async def test_one_wallet_failure_does_not_stop_others(self, pipeline, wallet, chain) -> None:
        await pipeline.registry.register(W2, "https://hooks.test/w2")
        chain.add(make_raw("SIG2", receiver=W2, status=TxStatus.CONFIRMED))
        # W1 is polled first and hits the permanent error
        chain.errors = [SolanaRPCError("invalid params", transient=False)]

        report = await pipeline.sync.sync_all()

        assert report.wallets_synced == 1
        assert len(report.errors) == 1
        assert report.errors[0].startswith(W1)
        assert (await pipeline.transactions.get("SIG2")).wallet_address == W2
        assert (await pipeline.wallets.get(W1)).watermark is None

    async def test_unexpected_exception_is_isolated(self, pipeline, wallet, chain) -> None:
        chain.errors = [RuntimeError("boom")]

        report = await pipeline.sync.sync_all()

        assert report.wallets_synced == 0
        assert report.errors == [f"{W1}: boom"]

    async def test_no_wallets(self, pipeline) -> None:
        report = await pipeline.sync.sync_all()
        assert report.wallets_synced == 0
        assert report.errors == []
