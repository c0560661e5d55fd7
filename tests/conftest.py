"""Shared test fixtures for the stablecoin-pay test suite."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import pytest

from stablecoin_pay.config.settings import DatabaseEngine
from tests.fakes import W1, FakeChain, FakeClock, WebhookEndpoint

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from stablecoin_pay.datastore.client import Datastore
    from stablecoin_pay.engine.repository import (
        TransactionRepository,
        WalletRepository,
        WebhookEventRepository,
    )
    from stablecoin_pay.engine.services import (
        ChainWatcher,
        Reconciler,
        SyncService,
        WalletRegistry,
    )
    from stablecoin_pay.notifications.dispatcher import WebhookDispatcher


@pytest.fixture
def app_config():
    """Provide a test AppConfig with safe defaults."""
    from stablecoin_pay.config.settings import (
        AppConfig,
        DatabaseConfig,
        TaskConfig,
        WatcherConfig,
        WebhookConfig,
    )

    return AppConfig(
        debug=True,
        db=DatabaseConfig(
            engine=DatabaseEngine.SQLITE,
            dsn="sqlite+aiosqlite:///:memory:",
        ),
        watcher=WatcherConfig(concurrency=1, batch_size=2, page_limit=3, max_rpc_attempts=3),
        webhook=WebhookConfig(secret="test-secret", concurrency=1, max_attempts=5, batch_size=5),
        task=TaskConfig(enabled=False),
    )


@pytest.fixture
async def datastore(app_config) -> AsyncIterator[Datastore]:
    """Open an in-memory SQLite datastore with all tables created."""
    from stablecoin_pay.datastore.client import Datastore

    ds = Datastore(app_config.db)
    await ds.open(migrate=True)
    yield ds
    await ds.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def endpoint() -> WebhookEndpoint:
    return WebhookEndpoint()


@pytest.fixture
def no_sleep():
    """Replacement for ``asyncio.sleep`` that records delays instead of waiting."""
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@dataclass
class Pipeline:
    """Engine components wired against fakes."""

    wallets: WalletRepository
    transactions: TransactionRepository
    events: WebhookEventRepository
    registry: WalletRegistry
    dispatcher: WebhookDispatcher
    reconciler: Reconciler
    watcher: ChainWatcher
    sync: SyncService


@pytest.fixture
async def pipeline(app_config, datastore, chain, clock, endpoint, no_sleep) -> AsyncIterator[Pipeline]:
    """Registry, watcher, reconciler, dispatcher and sync service sharing one datastore."""
    from stablecoin_pay.engine.repository import (
        TransactionRepository,
        WalletRepository,
        WebhookEventRepository,
    )
    from stablecoin_pay.engine.services import (
        ChainWatcher,
        Reconciler,
        SyncService,
        WalletRegistry,
    )
    from stablecoin_pay.notifications.dispatcher import WebhookDispatcher

    wallets = WalletRepository(datastore)
    transactions = TransactionRepository(datastore)
    events = WebhookEventRepository(datastore)
    dispatcher = WebhookDispatcher(
        datastore,
        app_config.webhook,
        sender=endpoint.sender(),
        clock=clock,
        worker_id="worker-a",
    )
    await dispatcher.connect()
    reconciler = Reconciler(datastore, transactions, dispatcher, clock=clock)
    watcher = ChainWatcher(
        chain, wallets, transactions, app_config.watcher, sleep=no_sleep, clock=clock
    )
    sync = SyncService(wallets, watcher, reconciler, app_config.watcher, clock=clock)
    yield Pipeline(
        wallets=wallets,
        transactions=transactions,
        events=events,
        registry=WalletRegistry(wallets),
        dispatcher=dispatcher,
        reconciler=reconciler,
        watcher=watcher,
        sync=sync,
    )
    await dispatcher.close()


@pytest.fixture
async def wallet(pipeline):
    """Wallet ``W1`` registered with a webhook URL."""
    return await pipeline.registry.register(W1, "https://hooks.test/w1")


@pytest.fixture
async def engine(app_config, chain, endpoint):
    """Initialized PaymentEngine wired to the fake chain and scripted endpoint."""
    from stablecoin_pay.engine.client import PaymentEngine

    eng = PaymentEngine(app_config, chain=chain, sender=endpoint.sender())
    await eng.initialize()
    yield eng
    await eng.close()
