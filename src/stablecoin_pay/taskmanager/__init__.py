"""Task manager — periodic background jobs.

Provides ``TaskManager`` for the engine's recurring work:
- Wallet sync (watch the chain and reconcile into the ledger)
- Webhook delivery (drain due ``pending`` events)
- Metrics calculation (entity counts for Prometheus gauges)

Jobs are plain asyncio tasks; all progress lives in the database, so a
restarted process resumes from stored watermarks and leases.
"""

from __future__ import annotations

from stablecoin_pay.taskmanager.manager import CronJob, TaskManager

__all__ = ["CronJob", "TaskManager"]
