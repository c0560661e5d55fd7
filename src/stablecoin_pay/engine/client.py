"""PaymentEngine — central engine client owning all services."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from stablecoin_pay.metrics.collector import EngineMetrics

if TYPE_CHECKING:
    from stablecoin_pay.config.settings import AppConfig
    from stablecoin_pay.datastore.client import Datastore
    from stablecoin_pay.engine.repository.transactions import TransactionRepository
    from stablecoin_pay.engine.repository.wallets import WalletRepository
    from stablecoin_pay.engine.repository.webhook_events import WebhookEventRepository
    from stablecoin_pay.engine.services.query_service import QueryService
    from stablecoin_pay.engine.services.reconciler import Reconciler
    from stablecoin_pay.engine.services.sync_service import SyncService
    from stablecoin_pay.engine.services.wallet_service import WalletRegistry
    from stablecoin_pay.engine.services.watcher import ChainClient, ChainWatcher
    from stablecoin_pay.notifications.dispatcher import WebhookDispatcher
    from stablecoin_pay.notifications.webhook import WebhookSender
    from stablecoin_pay.taskmanager.manager import TaskManager

logger = logging.getLogger(__name__)

_ERR_NOT_INITIALIZED = "Engine not initialized. Call initialize() first."


class PaymentEngine:
    """Central engine that owns the datastore, chain client and services.

    Collaborators can be injected (a fake chain client, a webhook sender
    bound to a mock transport); anything not injected is built from the
    configuration during :meth:`initialize`.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        chain: ChainClient | None = None,
        sender: WebhookSender | None = None,
        metrics: EngineMetrics | None = None,
    ) -> None:
        """Initialize engine with configuration.

        Args:
            config: Application configuration.
            chain: Chain client to use instead of a ``SolanaClient``.
            sender: Webhook transport to use instead of a fresh ``WebhookSender``.
            metrics: Shared metrics; a private registry is created when omitted.
        """
        self._config = config
        self._initialized = False

        self._datastore: Datastore | None = None
        self._chain: Any = chain
        self._owns_chain = chain is None
        self._sender = sender
        self._metrics = metrics or EngineMetrics()

        self._wallet_repo: WalletRepository | None = None
        self._transaction_repo: TransactionRepository | None = None
        self._event_repo: WebhookEventRepository | None = None

        self._registry: WalletRegistry | None = None
        self._dispatcher: WebhookDispatcher | None = None
        self._reconciler: Reconciler | None = None
        self._watcher: ChainWatcher | None = None
        self._sync: SyncService | None = None
        self._query: QueryService | None = None
        self._task_manager: TaskManager | None = None

    async def initialize(self) -> None:
        """Open the datastore, create tables, wire services and start cron jobs.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        from stablecoin_pay.datastore.client import Datastore

        self._datastore = Datastore(self._config.db)
        await self._datastore.open(migrate=self._config.db.auto_migrate)

        if self._chain is None:
            from stablecoin_pay.chain.solana.client import SolanaClient

            self._chain = SolanaClient(self._config.solana)
        if self._owns_chain:
            await self._chain.connect()

        from stablecoin_pay.engine.repository import (
            TransactionRepository,
            WalletRepository,
            WebhookEventRepository,
        )
        from stablecoin_pay.engine.services.query_service import QueryService
        from stablecoin_pay.engine.services.reconciler import Reconciler
        from stablecoin_pay.engine.services.sync_service import SyncService
        from stablecoin_pay.engine.services.wallet_service import WalletRegistry
        from stablecoin_pay.engine.services.watcher import ChainWatcher
        from stablecoin_pay.notifications.dispatcher import WebhookDispatcher

        self._wallet_repo = WalletRepository(self._datastore)
        self._transaction_repo = TransactionRepository(self._datastore)
        self._event_repo = WebhookEventRepository(self._datastore)

        self._registry = WalletRegistry(self._wallet_repo)
        self._dispatcher = WebhookDispatcher(
            self._datastore,
            self._config.webhook,
            sender=self._sender,
            metrics=self._metrics,
        )
        await self._dispatcher.connect()
        self._reconciler = Reconciler(
            self._datastore,
            self._transaction_repo,
            self._dispatcher,
            metrics=self._metrics,
        )
        self._watcher = ChainWatcher(
            self._chain,
            self._wallet_repo,
            self._transaction_repo,
            self._config.watcher,
            metrics=self._metrics,
        )
        self._sync = SyncService(
            self._wallet_repo,
            self._watcher,
            self._reconciler,
            self._config.watcher,
            metrics=self._metrics,
        )
        self._query = QueryService(
            self._wallet_repo,
            self._transaction_repo,
            self._event_repo,
            self._config.solana,
        )

        from functools import partial

        from stablecoin_pay.taskmanager.manager import CronJob, TaskManager
        from stablecoin_pay.taskmanager.tasks import (
            CALCULATE_METRICS_PERIOD,
            task_calculate_metrics,
            task_deliver_webhooks,
            task_sync_wallets,
        )

        if self._config.task.enabled:
            self._task_manager = TaskManager(metrics=self._metrics)
            if self._config.watcher.enabled:
                self._task_manager.register(
                    "sync_wallets",
                    CronJob(
                        handler=partial(task_sync_wallets, self),
                        period=self._config.watcher.poll_interval,
                        run_immediately=True,
                    ),
                )
            self._task_manager.register(
                "deliver_webhooks",
                CronJob(
                    handler=partial(task_deliver_webhooks, self),
                    period=self._config.webhook.delivery_interval,
                ),
            )
            self._task_manager.register(
                "calculate_metrics",
                CronJob(
                    handler=partial(task_calculate_metrics, self, self._metrics),
                    period=CALCULATE_METRICS_PERIOD,
                ),
            )
            await self._task_manager.start()

        self._initialized = True
        logger.info("Payment engine initialized (%s)", self._config.environment)

    async def close(self) -> None:
        """Gracefully shut down all services and connections.

        Can be called multiple times (idempotent).
        """
        if not self._initialized:
            return

        # Stop cron jobs first; in-flight work records its own outcome
        if self._task_manager is not None:
            await self._task_manager.stop()
            self._task_manager = None

        if self._dispatcher is not None:
            await self._dispatcher.close()
            self._dispatcher = None

        self._registry = None
        self._reconciler = None
        self._watcher = None
        self._sync = None
        self._query = None
        self._wallet_repo = None
        self._transaction_repo = None
        self._event_repo = None

        if self._chain is not None and self._owns_chain:
            await self._chain.close()
            self._chain = None

        if self._datastore is not None:
            await self._datastore.close()
            self._datastore = None

        self._initialized = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        """Check if the engine is initialized."""
        return self._initialized

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def datastore(self) -> Datastore:
        """Get the datastore instance.

        Raises:
            RuntimeError: If engine not initialized.
        """
        if self._datastore is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._datastore

    @property
    def chain(self) -> ChainClient:
        if self._chain is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._chain

    @property
    def wallet_registry(self) -> WalletRegistry:
        if self._registry is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._registry

    @property
    def dispatcher(self) -> WebhookDispatcher:
        if self._dispatcher is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._dispatcher

    @property
    def reconciler(self) -> Reconciler:
        if self._reconciler is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._reconciler

    @property
    def watcher(self) -> ChainWatcher:
        if self._watcher is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._watcher

    @property
    def sync_service(self) -> SyncService:
        if self._sync is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._sync

    @property
    def query_service(self) -> QueryService:
        if self._query is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._query

    @property
    def wallet_repository(self) -> WalletRepository:
        if self._wallet_repo is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._wallet_repo

    @property
    def transaction_repository(self) -> TransactionRepository:
        if self._transaction_repo is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._transaction_repo

    @property
    def metrics(self) -> EngineMetrics:
        """Get the engine metrics."""
        return self._metrics

    @property
    def task_manager(self) -> TaskManager | None:
        """Get the task manager (None if not enabled)."""
        return self._task_manager

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        """Check health status of all engine components.

        Returns:
            Component statuses (``ok``, ``error``, ``not_initialized``), the
            last sync report, cron job counters when the task manager runs
            and webhook event counts by status.
        """
        status: dict[str, Any] = {
            "engine": "ok" if self._initialized else "not_initialized",
            "database": "unknown",
            "solana_rpc": "unknown",
            "last_sync": None,
            "webhooks": None,
        }
        if not self._initialized:
            return status

        try:
            await self.datastore.ping()
            status["database"] = "ok"
        except Exception as exc:
            logger.warning("Database health check failed: %s", exc)
            status["database"] = "error"

        get_slot = getattr(self._chain, "get_slot", None)
        if get_slot is None:
            status["solana_rpc"] = "not_connected"
        else:
            try:
                status["solana_slot"] = await get_slot()
                status["solana_rpc"] = "ok"
            except Exception as exc:
                logger.warning("Solana RPC health check failed: %s", exc)
                status["solana_rpc"] = "error"

        report = self.sync_service.last_report
        status["last_sync"] = report.to_dict() if report else None

        if self._task_manager is not None:
            status["tasks"] = self._task_manager.status()

        if status["database"] == "ok":
            status["webhooks"] = await self.dispatcher.stats()
        return status
