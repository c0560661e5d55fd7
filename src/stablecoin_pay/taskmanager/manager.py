"""Task manager lifecycle — start, stop, schedule.

Each registered ``CronJob`` runs on its own asyncio task, sleeping
``period`` seconds between runs.  Nothing is carried over between runs:
sync progress lives in wallet watermarks and delivery progress in event
leases, so a run that fails (or is cancelled at shutdown) is simply retried
on the next tick.  ``TaskManager.status()`` reports per-job run counters
for the detailed health check.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING, Any

from stablecoin_pay.engine.models.base import utcnow

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from stablecoin_pay.metrics.collector import EngineMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CronJob:
    """A recurring background job.

    Attributes:
        handler: Coroutine function run on every tick.
        period: Seconds between the end of one run and the start of the next.
        name: Filled in by :meth:`TaskManager.register`.
        run_immediately: Run once on start instead of waiting a period first.
    """

    handler: Callable[[], Awaitable[None]]
    period: float
    name: str = ""
    run_immediately: bool = False


@dataclass
class JobState:
    """Run counters for one job."""

    runs: int = 0
    failures: int = 0
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "runs": self.runs,
            "failures": self.failures,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": (
                self.last_finished_at.isoformat() if self.last_finished_at else None
            ),
            "last_error": self.last_error,
        }


class TaskManager:
    """Runs the engine's periodic jobs on the current event loop.

    Usage::

        tm = TaskManager(metrics=engine_metrics)
        tm.register("sync_wallets", CronJob(handler=..., period=30))
        await tm.start()
        ...
        await tm.stop()
    """

    def __init__(self, *, metrics: EngineMetrics | None = None) -> None:
        self._metrics = metrics
        self._jobs: dict[str, CronJob] = {}
        self._states: dict[str, JobState] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> dict[str, CronJob]:
        """Registered jobs by name (a copy)."""
        return dict(self._jobs)

    def status(self) -> dict[str, dict[str, Any]]:
        """Run counters of every registered job."""
        return {name: state.to_dict() for name, state in self._states.items()}

    def register(self, name: str, job: CronJob) -> None:
        """Add *job* under *name*; it is scheduled at once when already running.

        Raises:
            ValueError: If ``job.period`` is not positive.
        """
        if job.period <= 0:
            msg = f"Cron job {name!r} needs a positive period"
            raise ValueError(msg)
        job = replace(job, name=name)
        self._jobs[name] = job
        self._states.setdefault(name, JobState())
        if self._running:
            self._schedule(job)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for job in self._jobs.values():
            self._schedule(job)
        logger.info("TaskManager started: %s", ", ".join(self._jobs) or "no jobs")

    async def stop(self) -> None:
        """Cancel every job task and wait until all of them have exited."""
        if not self._running:
            return
        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task, outcome in zip(
            tasks, await asyncio.gather(*tasks, return_exceptions=True), strict=True
        ):
            if isinstance(outcome, Exception):
                logger.error("Job %s raised during shutdown: %s", task.get_name(), outcome)
        logger.info("TaskManager stopped")

    async def run_once(self, name: str) -> None:
        """Run job *name* now, outside its schedule; errors propagate.

        Raises:
            KeyError: If no job is registered under *name*.
        """
        await self._run(self._jobs[name])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _schedule(self, job: CronJob) -> None:
        self._tasks[job.name] = asyncio.create_task(self._loop(job), name=job.name)

    async def _run(self, job: CronJob) -> None:
        state = self._states.setdefault(job.name, JobState())
        state.runs += 1
        state.last_started_at = utcnow()
        try:
            if self._metrics is None:
                await job.handler()
            else:
                with self._metrics.track_cron(job.name):
                    await job.handler()
        except Exception as exc:
            state.failures += 1
            state.last_error = str(exc) or type(exc).__name__
            raise
        else:
            state.last_error = None
        finally:
            state.last_finished_at = utcnow()

    async def _loop(self, job: CronJob) -> None:
        if not job.run_immediately:
            await asyncio.sleep(job.period)
        while self._running:
            try:
                await self._run(job)
            except Exception:
                logger.exception("Cron job %r failed", job.name)
            await asyncio.sleep(job.period)
