"""Metrics collector — Prometheus counters, gauges, histograms.

Exposed series:
- ``stablepay_stats_total`` gauge-vec  (wallets, transactions, pending_webhooks, ...)
- ``stablepay_sync_histogram`` / ``stablepay_poll_wallet_histogram`` /
  ``stablepay_reconcile_histogram`` / ``stablepay_delivery_histogram``
- ``stablepay_transactions_recorded_total`` counter by status
- ``stablepay_reconciliation_conflicts_total`` counter
- ``stablepay_webhook_deliveries_total`` counter by outcome
- ``stablepay_rpc_errors_total`` counter by transience
- ``stablepay_cron_histogram`` / ``stablepay_cron_last_execution_gauge``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator


_PREFIX = "stablepay"

_STAT_LABELS = ("entity",)


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`EngineMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        return Counter(name, doc, labels, registry=self._registry)


class EngineMetrics:
    """High-level payment engine metrics.

    All histograms track operation duration in seconds.
    """

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._stats = self._collector.gauge(
            f"{_PREFIX}_stats_total",
            "Entity counts in the payment engine",
            _STAT_LABELS,
        )

        self._sync = self._collector.histogram(
            f"{_PREFIX}_sync_histogram",
            "Duration of full wallet sync passes",
        )
        self._poll = self._collector.histogram(
            f"{_PREFIX}_poll_wallet_histogram",
            "Duration of a single wallet poll",
        )
        self._reconcile = self._collector.histogram(
            f"{_PREFIX}_reconcile_histogram",
            "Duration of reconciling one poll batch",
        )
        self._delivery = self._collector.histogram(
            f"{_PREFIX}_delivery_histogram",
            "Duration of webhook delivery passes",
        )

        self._recorded = self._collector.counter(
            f"{_PREFIX}_transactions_recorded",
            "Ledger transitions applied, by new status",
            ("status",),
        )
        self._conflicts = self._collector.counter(
            f"{_PREFIX}_reconciliation_conflicts",
            "Observed status changes rejected by the ledger",
        )
        self._deliveries = self._collector.counter(
            f"{_PREFIX}_webhook_deliveries",
            "Webhook delivery attempts, by outcome",
            ("outcome",),
        )
        self._rpc_errors = self._collector.counter(
            f"{_PREFIX}_rpc_errors",
            "Solana RPC errors, by transience",
            ("kind",),
        )

        self._cron_histogram = self._collector.histogram(
            f"{_PREFIX}_cron_histogram",
            "Duration of cron job executions",
            ("job_name",),
        )
        self._cron_last = self._collector.gauge(
            f"{_PREFIX}_cron_last_execution_gauge",
            "Timestamp of last cron execution",
            ("job_name",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Stat setters --

    def set_stat(self, entity: str, count: int) -> None:
        """Set the current count for *entity* (``wallets``, ``transactions``...)."""
        self._stats.labels(entity=entity).set(count)

    # -- Counters --

    def record_transition(self, status: str) -> None:
        self._recorded.labels(status=status).inc()

    def record_conflict(self) -> None:
        self._conflicts.inc()

    def record_delivery(self, outcome: str) -> None:
        """Count a delivery attempt (``delivered``, ``retry``, ``failed``)."""
        self._deliveries.labels(outcome=outcome).inc()

    def record_rpc_error(self, *, transient: bool) -> None:
        self._rpc_errors.labels(kind="transient" if transient else "permanent").inc()

    # -- Operation trackers (context managers) --

    @contextmanager
    def track_sync(self) -> Iterator[None]:
        """Track the duration of a sync pass."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._sync.observe(time.monotonic() - start)

    @contextmanager
    def track_poll(self) -> Iterator[None]:
        start = time.monotonic()
        try:
            yield
        finally:
            self._poll.observe(time.monotonic() - start)

    @contextmanager
    def track_reconcile(self) -> Iterator[None]:
        start = time.monotonic()
        try:
            yield
        finally:
            self._reconcile.observe(time.monotonic() - start)

    @contextmanager
    def track_delivery(self) -> Iterator[None]:
        """Track the duration of a webhook delivery pass."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._delivery.observe(time.monotonic() - start)

    @contextmanager
    def track_cron(self, job_name: str) -> Iterator[None]:
        """Track the duration of a cron job and record last execution time."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._cron_histogram.labels(job_name=job_name).observe(time.monotonic() - start)
            self._cron_last.labels(job_name=job_name).set(time.time())
