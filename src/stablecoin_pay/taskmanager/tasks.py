"""Background task definitions — cron job handlers.

- ``sync_wallets`` (``watcher.poll_interval``) — poll every wallet and reconcile
- ``deliver_webhooks`` (``webhook.delivery_interval``) — drain due webhook events
- ``calculate_metrics`` (15 s) — count entities for Prometheus gauges
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stablecoin_pay.engine.client import PaymentEngine
    from stablecoin_pay.metrics.collector import EngineMetrics

logger = logging.getLogger(__name__)

CALCULATE_METRICS_PERIOD = 15


async def task_sync_wallets(engine: PaymentEngine) -> None:
    """Run one watch/reconcile pass over all registered wallets."""
    try:
        await engine.sync_service.sync_all()
    except Exception:
        logger.exception("sync_wallets failed")


async def task_deliver_webhooks(engine: PaymentEngine) -> None:
    """Attempt delivery of every due ``pending`` webhook event."""
    try:
        with engine.metrics.track_delivery():
            await engine.dispatcher.deliver_pending()
    except Exception:
        logger.exception("deliver_webhooks failed")


async def task_calculate_metrics(engine: PaymentEngine, metrics: EngineMetrics) -> None:
    """Count entities and push them to Prometheus gauges."""
    try:
        wallets = await engine.wallet_repository.count()
        tx_counts = await engine.transaction_repository.counts_by_status()
        event_counts = await engine.dispatcher.stats()

        metrics.set_stat("wallets", wallets)
        metrics.set_stat("transactions", sum(tx_counts.values()))
        for status, count in tx_counts.items():
            metrics.set_stat(f"transactions_{status}", count)
        metrics.set_stat("webhook_events", event_counts.pop("total"))
        for status, count in event_counts.items():
            metrics.set_stat(f"webhook_events_{status}", count)
    except Exception:
        logger.exception("calculate_metrics failed")
