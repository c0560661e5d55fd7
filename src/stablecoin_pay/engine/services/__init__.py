"""Engine services — registry, watcher, reconciler, sync, queries."""

from __future__ import annotations

from stablecoin_pay.engine.services.query_service import Balance, QueryService
from stablecoin_pay.engine.services.reconciler import Reconciler, Transition
from stablecoin_pay.engine.services.sync_service import SyncReport, SyncService
from stablecoin_pay.engine.services.wallet_service import WalletRegistry
from stablecoin_pay.engine.services.watcher import ChainWatcher, PollBatch

__all__ = [
    "Balance",
    "ChainWatcher",
    "PollBatch",
    "QueryService",
    "Reconciler",
    "SyncReport",
    "SyncService",
    "Transition",
    "WalletRegistry",
]
