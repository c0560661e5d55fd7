"""Webhook dispatcher — durable outbox with leased, retried delivery.

Events are written to ``webhook_events`` in the same transaction as the
ledger change that caused them.  A periodic ``deliver_pending`` pass claims
due events with a compare-and-set lease, renews the lease right before each
post, and records the outcome under the same lease.  A worker that lost its
lease neither sends nor records, and a delivered event is never sent again.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select, update

from stablecoin_pay.engine.models.base import utcnow
from stablecoin_pay.engine.models.wallet import Wallet
from stablecoin_pay.engine.models.webhook_event import WebhookEvent, WebhookStatus
from stablecoin_pay.errors.definitions import err_no_webhook_url
from stablecoin_pay.errors.payment_errors import WebhookDeliveryError
from stablecoin_pay.notifications.backoff import ExponentialBackoff
from stablecoin_pay.notifications.webhook import WebhookSender, is_valid_webhook_url

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from stablecoin_pay.config.settings import WebhookConfig
    from stablecoin_pay.datastore.client import Datastore
    from stablecoin_pay.engine.services.reconciler import Transition
    from stablecoin_pay.metrics.collector import EngineMetrics

logger = logging.getLogger(__name__)

TEST_EVENT_TYPE = "test"


def _default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class DeliveryReport:
    """Outcome counts of one ``deliver_pending`` pass."""

    claimed: int = 0
    delivered: int = 0
    retried: int = 0
    failed: int = 0
    lost: int = 0


@dataclass(frozen=True)
class _Claimed:
    """Detached snapshot of a leased event plus its wallet's endpoint."""

    id: str
    event_type: str
    payload: dict[str, Any]
    attempts: int
    webhook_url: str | None


class WebhookDispatcher:
    """Creates webhook events and drives their delivery.

    Args:
        datastore: Open datastore.
        config: Webhook configuration section.
        sender: Transport for a single attempt (defaults to a ``WebhookSender``).
        metrics: Optional engine metrics.
        clock: Returns the current aware UTC time.
        worker_id: Lease owner name; unique per process by default.
    """

    def __init__(
        self,
        datastore: Datastore,
        config: WebhookConfig,
        *,
        sender: WebhookSender | None = None,
        metrics: EngineMetrics | None = None,
        clock: Callable[[], datetime] = utcnow,
        worker_id: str | None = None,
    ) -> None:
        self._ds = datastore
        self._config = config
        self._sender = sender or WebhookSender(config.secret, timeout=config.request_timeout)
        self._metrics = metrics
        self._clock = clock
        self._worker_id = worker_id or _default_worker_id()
        self._backoff = ExponentialBackoff(
            base=config.backoff_base,
            factor=config.backoff_factor,
            cap=config.backoff_cap,
            jitter=config.backoff_jitter,
        )
        self._notify_on = frozenset(config.notify_on)

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def backoff(self) -> ExponentialBackoff:
        return self._backoff

    async def connect(self) -> None:
        await self._sender.connect()

    async def close(self) -> None:
        await self._sender.close()

    def should_notify(self, status: str) -> bool:
        """Whether a transition into *status* produces a webhook event."""
        return str(status) in self._notify_on

    # ------------------------------------------------------------------
    # Event creation
    # ------------------------------------------------------------------

    async def enqueue(self, transition: Transition, *, session: AsyncSession) -> WebhookEvent:
        """Add a pending event for *transition* to *session*.

        The caller commits; the event becomes durable together with the
        ledger change it describes.
        """
        now = self._clock()
        event_id = str(uuid.uuid4())
        event_type = f"transaction.{transition.new_status}"
        payload = {
            "id": event_id,
            "event_type": event_type,
            "created_at": now.isoformat(),
            "data": {
                "signature": transition.signature,
                "wallet_address": transition.wallet_address,
                "tx_type": str(transition.tx_type),
                "amount": str(transition.amount),
                "token_mint": transition.token_mint,
                "counterparty": transition.counterparty,
                "status": str(transition.new_status),
                "previous_status": (
                    str(transition.old_status) if transition.old_status is not None else None
                ),
                "block_time": _iso(transition.block_time),
            },
        }
        event = WebhookEvent(
            id=event_id,
            wallet_address=transition.wallet_address,
            transaction_signature=transition.signature,
            event_type=event_type,
            payload=payload,
            status=WebhookStatus.PENDING.value,
            attempts=0,
            next_attempt_at=now,
            created_at=now,
        )
        session.add(event)
        return event

    # ------------------------------------------------------------------
    # Delivery loop
    # ------------------------------------------------------------------

    async def deliver_pending(self) -> DeliveryReport:
        """Run one delivery pass over due events.

        Returns:
            Counts of claimed events and their outcomes.
        """
        report = DeliveryReport()
        claimed = await self._claim()
        report.claimed = len(claimed)
        if not claimed:
            return report

        semaphore = asyncio.Semaphore(self._config.concurrency)

        async def _bounded(item: _Claimed) -> str:
            async with semaphore:
                return await self._deliver_one(item)

        outcomes = await asyncio.gather(*(_bounded(item) for item in claimed))
        for outcome in outcomes:
            setattr(report, outcome, getattr(report, outcome) + 1)

        logger.info(
            "Webhook pass: %d claimed, %d delivered, %d retried, %d failed, %d lost",
            report.claimed,
            report.delivered,
            report.retried,
            report.failed,
            report.lost,
        )
        return report

    async def _claim(self) -> list[_Claimed]:
        """Lease up to ``batch_size`` due events for this worker."""
        now = self._clock()
        lease_until = now + timedelta(seconds=self._config.lease_seconds)
        lease_free = or_(WebhookEvent.locked_until.is_(None), WebhookEvent.locked_until <= now)

        async with self._ds.session() as session:
            candidates = (
                await session.execute(
                    select(WebhookEvent.id)
                    .where(
                        WebhookEvent.status == WebhookStatus.PENDING.value,
                        WebhookEvent.next_attempt_at <= now,
                        lease_free,
                    )
                    .order_by(WebhookEvent.next_attempt_at, WebhookEvent.created_at)
                    .limit(self._config.batch_size)
                )
            ).scalars().all()

            won: list[str] = []
            for event_id in candidates:
                result = await session.execute(
                    update(WebhookEvent)
                    .where(
                        WebhookEvent.id == event_id,
                        WebhookEvent.status == WebhookStatus.PENDING.value,
                        lease_free,
                    )
                    .values(locked_by=self._worker_id, locked_until=lease_until)
                )
                if result.rowcount == 1:
                    won.append(event_id)
            await session.commit()

            if not won:
                return []
            rows = (
                await session.execute(
                    select(WebhookEvent, Wallet.webhook_url)
                    .join(Wallet, Wallet.address == WebhookEvent.wallet_address)
                    .where(WebhookEvent.id.in_(won))
                    .order_by(WebhookEvent.next_attempt_at, WebhookEvent.created_at)
                )
            ).all()

        return [
            _Claimed(
                id=event.id,
                event_type=event.event_type,
                payload=event.payload,
                attempts=event.attempts,
                webhook_url=url,
            )
            for event, url in rows
        ]

    async def _deliver_one(self, item: _Claimed) -> str:
        """Attempt *item* once and record the outcome; returns the report field."""
        if not is_valid_webhook_url(item.webhook_url):
            # Nothing was sent, so the attempt counter stays put
            reason = f"No usable webhook URL: {item.webhook_url!r}"
            return await self._record_failure(item, WebhookDeliveryError(reason, permanent=True))

        if not await self._renew_lease(item):
            return "lost"

        try:
            await self._sender.send(
                item.webhook_url,  # type: ignore[arg-type]
                item.payload,
                event_id=item.id,
                event_type=item.event_type,
            )
        except WebhookDeliveryError as exc:
            return await self._record_failure(item, exc)
        except asyncio.CancelledError:
            await asyncio.shield(
                self._record_failure(item, WebhookDeliveryError("delivery cancelled"))
            )
            raise
        except Exception as exc:
            logger.exception("Unexpected error delivering webhook event %s", item.id)
            return await self._record_failure(
                item, WebhookDeliveryError(f"Unexpected delivery error: {exc!r}")
            )
        return await self._record_success(item)

    async def _record_success(self, item: _Claimed) -> str:
        now = self._clock()
        won = await self._guarded_update(
            item.id,
            status=WebhookStatus.DELIVERED.value,
            attempts=item.attempts + 1,
            delivered_at=now,
            last_attempt_at=now,
            last_error=None,
            locked_by=None,
            locked_until=None,
        )
        if not won:
            return "lost"
        if self._metrics:
            self._metrics.record_delivery("delivered")
        return "delivered"

    async def _record_failure(self, item: _Claimed, exc: WebhookDeliveryError) -> str:
        now = self._clock()
        attempted = is_valid_webhook_url(item.webhook_url)
        attempts = item.attempts + 1 if attempted else item.attempts

        values: dict[str, Any] = {
            "attempts": attempts,
            "last_error": exc.message[:1000],
            "locked_by": None,
            "locked_until": None,
        }
        if attempted:
            values["last_attempt_at"] = now

        if exc.permanent or attempts >= self._config.max_attempts:
            values["status"] = WebhookStatus.FAILED.value
            outcome = "failed"
            logger.warning(
                "Webhook event %s failed after %d attempts: %s", item.id, attempts, exc.message
            )
        else:
            delay = self._backoff.delay(attempts)
            values["next_attempt_at"] = now + timedelta(seconds=delay)
            outcome = "retried"
            logger.info(
                "Webhook event %s attempt %d failed (%s); retrying in %.0fs",
                item.id,
                attempts,
                exc.message,
                delay,
            )

        if not await self._guarded_update(item.id, **values):
            return "lost"
        if self._metrics:
            self._metrics.record_delivery("failed" if outcome == "failed" else "retry")
        return outcome

    async def _renew_lease(self, item: _Claimed) -> bool:
        """Extend our lease on *item* right before sending it.

        Returns False when another worker reclaimed the event after our lease
        ran out; the event must not be sent then.
        """
        lease_until = self._clock() + timedelta(seconds=self._config.lease_seconds)
        return await self._guarded_update(item.id, locked_until=lease_until)

    async def _guarded_update(self, event_id: str, **values: Any) -> bool:
        """Write *values* only while the event is pending and leased by us."""
        async with self._ds.session() as session:
            result = await session.execute(
                update(WebhookEvent)
                .where(
                    WebhookEvent.id == event_id,
                    WebhookEvent.status == WebhookStatus.PENDING.value,
                    WebhookEvent.locked_by == self._worker_id,
                )
                .values(**values)
            )
            await session.commit()
        if result.rowcount != 1:
            logger.warning("Lost lease on webhook event %s; leaving it to its current owner", event_id)
            return False
        return True

    # ------------------------------------------------------------------
    # Test delivery & stats
    # ------------------------------------------------------------------

    async def send_test(self, wallet: Wallet) -> tuple[bool, str]:
        """Record a ``test`` event for *wallet* and attempt it once.

        Returns:
            ``(success, message)`` describing the single attempt.

        Raises:
            ValidationError: If the wallet has no webhook URL.
        """
        if not wallet.webhook_url:
            raise err_no_webhook_url(wallet.address)

        now = self._clock()
        event_id = str(uuid.uuid4())
        payload = {
            "id": event_id,
            "event_type": TEST_EVENT_TYPE,
            "created_at": now.isoformat(),
            "data": {
                "wallet_address": wallet.address,
                "message": "Test webhook from stablecoin-pay",
            },
        }

        error: str | None = None
        try:
            status = await self._sender.send(
                wallet.webhook_url, payload, event_id=event_id, event_type=TEST_EVENT_TYPE
            )
        except WebhookDeliveryError as exc:
            error = exc.message

        finished = self._clock()
        async with self._ds.session() as session:
            session.add(
                WebhookEvent(
                    id=event_id,
                    wallet_address=wallet.address,
                    transaction_signature=None,
                    event_type=TEST_EVENT_TYPE,
                    payload=payload,
                    status=(WebhookStatus.FAILED if error else WebhookStatus.DELIVERED).value,
                    attempts=1,
                    next_attempt_at=now,
                    last_attempt_at=finished,
                    delivered_at=None if error else finished,
                    last_error=error,
                    created_at=now,
                )
            )
            await session.commit()

        if error:
            return False, f"Test webhook failed: {error}"
        return True, f"Test webhook delivered (HTTP {status})"

    async def stats(self) -> dict[str, int]:
        """Count webhook events by status, plus ``total``."""
        counts = {status.value: 0 for status in WebhookStatus}
        async with self._ds.session() as session:
            rows = (
                await session.execute(
                    select(WebhookEvent.status, func.count()).group_by(WebhookEvent.status)
                )
            ).all()
        for status, count in rows:
            counts[status] = count
        counts["total"] = sum(counts.values())
        return counts
