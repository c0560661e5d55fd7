"""Sync service — one watch/reconcile cycle across all registered wallets."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from stablecoin_pay.engine.models.base import utcnow
from stablecoin_pay.errors.payment_errors import PaymentError

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from stablecoin_pay.config.settings import WatcherConfig
    from stablecoin_pay.engine.models.wallet import Wallet
    from stablecoin_pay.engine.repository.wallets import WalletRepository
    from stablecoin_pay.engine.services.reconciler import Reconciler
    from stablecoin_pay.engine.services.watcher import ChainWatcher
    from stablecoin_pay.metrics.collector import EngineMetrics

logger = logging.getLogger(__name__)


@dataclass
class WalletSyncResult:
    """Counts for a single wallet's cycle."""

    address: str
    new_transactions: int = 0
    transitions: int = 0
    webhooks_enqueued: int = 0


@dataclass
class SyncReport:
    """Summary of a ``sync_all`` pass."""

    started_at: datetime
    completed_at: datetime | None = None
    wallets_synced: int = 0
    new_transactions: int = 0
    transitions: int = 0
    webhooks_enqueued: int = 0
    errors: list[str] = field(default_factory=list)

    def add(self, result: WalletSyncResult) -> None:
        self.wallets_synced += 1
        self.new_transactions += result.new_transactions
        self.transitions += result.transitions
        self.webhooks_enqueued += result.webhooks_enqueued

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "wallets_synced": self.wallets_synced,
            "new_transactions": self.new_transactions,
            "transitions": self.transitions,
            "webhooks_enqueued": self.webhooks_enqueued,
            "errors": list(self.errors),
        }


class SyncService:
    """Drives the watcher and reconciler for every registered wallet.

    Wallets are processed concurrently up to ``watcher.concurrency``.  A
    per-wallet lock keeps cycles for the same wallet from overlapping; one
    wallet's failure never stops the others.
    """

    def __init__(
        self,
        wallets: WalletRepository,
        watcher: ChainWatcher,
        reconciler: Reconciler,
        config: WatcherConfig,
        *,
        metrics: EngineMetrics | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._wallets = wallets
        self._watcher = watcher
        self._reconciler = reconciler
        self._config = config
        self._metrics = metrics
        self._clock = clock
        # Entries live only while a cycle holds the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._last_report: SyncReport | None = None

    @property
    def last_report(self) -> SyncReport | None:
        """Report of the most recent completed ``sync_all`` pass."""
        return self._last_report

    async def sync_all(self) -> SyncReport:
        """Poll and reconcile every registered wallet once."""
        report = SyncReport(started_at=self._clock())
        wallets = await self._wallets.list_all()
        semaphore = asyncio.Semaphore(max(self._config.concurrency, 1))

        async def _one(wallet: Wallet) -> None:
            async with semaphore:
                try:
                    result = await self.sync_wallet(wallet)
                except PaymentError as exc:
                    logger.warning("Sync failed for wallet %s: %s", wallet.address, exc.message)
                    report.errors.append(f"{wallet.address}: {exc.message}")
                    return
                except Exception as exc:
                    logger.exception("Sync failed for wallet %s", wallet.address)
                    report.errors.append(f"{wallet.address}: {exc}")
                    return
                if result is not None:
                    report.add(result)

        tracker = self._metrics.track_sync() if self._metrics else contextlib.nullcontext()
        with tracker:
            await asyncio.gather(*(_one(w) for w in wallets))

        report.completed_at = self._clock()
        self._last_report = report
        logger.info(
            "Sync complete: %d/%d wallets, %d new transactions, %d transitions, "
            "%d webhooks, %d errors",
            report.wallets_synced,
            len(wallets),
            report.new_transactions,
            report.transitions,
            report.webhooks_enqueued,
            len(report.errors),
        )
        return report

    async def sync_wallet(self, wallet: Wallet) -> WalletSyncResult | None:
        """Run one cycle for *wallet*; ``None`` if a cycle is already running."""
        lock = self._locks.setdefault(wallet.address, asyncio.Lock())
        if lock.locked():
            logger.debug("Sync for wallet %s already in progress; skipping", wallet.address)
            return None

        async with lock:
            result = WalletSyncResult(address=wallet.address)
            tracker = self._metrics.track_poll() if self._metrics else contextlib.nullcontext()
            with tracker:
                async for batch in self._watcher.poll(wallet):
                    reconcile_tracker = (
                        self._metrics.track_reconcile()
                        if self._metrics
                        else contextlib.nullcontext()
                    )
                    with reconcile_tracker:
                        transitions = await self._reconciler.reconcile(
                            wallet, batch.transactions
                        )
                    await self._watcher.commit(wallet, batch)

                    result.transitions += len(transitions)
                    result.new_transactions += sum(1 for t in transitions if t.old_status is None)
                    result.webhooks_enqueued += sum(1 for t in transitions if t.notified)
                await self._watcher.mark_synced(wallet)
            return result
