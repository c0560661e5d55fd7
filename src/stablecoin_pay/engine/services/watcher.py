"""Chain watcher — per-wallet polling of the Solana chain since a watermark.

Each ``poll`` call yields a finite stream of :class:`PollBatch` objects.  A
batch carries the transfers found in a run of signatures and the signature
to store as the wallet's new watermark; the caller commits it with
:meth:`ChainWatcher.commit` only after the batch has been reconciled, so a
crash between fetch and reconcile replays the batch instead of skipping it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol, TypeVar

from stablecoin_pay.chain.solana.models import (
    RawChainTx,
    SignatureInfo,
    SignatureStatus,
    chain_status,
)
from stablecoin_pay.engine.models.base import utcnow
from stablecoin_pay.engine.models.transaction import TxStatus, TxType
from stablecoin_pay.errors.chain_errors import SolanaRPCError
from stablecoin_pay.notifications.backoff import ExponentialBackoff

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable
    from datetime import datetime

    from stablecoin_pay.config.settings import WatcherConfig
    from stablecoin_pay.engine.models.transaction import LedgerTransaction
    from stablecoin_pay.engine.models.wallet import Wallet
    from stablecoin_pay.engine.repository.transactions import TransactionRepository
    from stablecoin_pay.engine.repository.wallets import WalletRepository
    from stablecoin_pay.metrics.collector import EngineMetrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Ledger amounts carry six fractional digits
_LEDGER_DECIMALS = 6


class ChainClient(Protocol):
    """The subset of :class:`~stablecoin_pay.chain.solana.client.SolanaClient` used here."""

    @property
    def finality(self) -> str: ...

    async def get_signatures_for_address(
        self,
        address: str,
        *,
        limit: int,
        before: str | None = None,
        until: str | None = None,
    ) -> list[SignatureInfo]: ...

    async def get_signature_statuses(
        self, signatures: list[str]
    ) -> dict[str, SignatureStatus | None]: ...

    async def get_transaction(
        self,
        signature: str,
        *,
        wallet_address: str,
        confirmation_status: str | None = None,
    ) -> RawChainTx | bool | None: ...


@dataclass
class PollBatch:
    """Transfers to reconcile and the watermark to store afterwards.

    ``watermark`` is ``None`` for batches that re-check already known
    signatures and must not move the cursor.
    """

    transactions: list[RawChainTx] = field(default_factory=list)
    watermark: str | None = None


class ChainWatcher:
    """Fetches a wallet's new and changed transfers from the chain."""

    def __init__(
        self,
        chain: ChainClient,
        wallets: WalletRepository,
        transactions: TransactionRepository,
        config: WatcherConfig,
        *,
        metrics: EngineMetrics | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._chain = chain
        self._wallets = wallets
        self._transactions = transactions
        self._config = config
        self._metrics = metrics
        self._sleep = sleep
        self._clock = clock
        self._backoff = ExponentialBackoff(
            base=config.rpc_backoff_base,
            factor=2.0,
            cap=config.rpc_backoff_cap,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def poll(self, wallet: Wallet) -> AsyncIterator[PollBatch]:
        """Yield batches of transfers observed for *wallet*.

        Known pending signatures are re-checked first; then signatures newer
        than the wallet's watermark are fetched oldest-first in chunks of
        ``batch_size``.  A backlog deeper than ``max_pages`` pages is walked
        over several calls before any of it is yielded.  A signature whose
        transaction the node cannot serve yet ends the stream, so the
        watermark never passes it.

        Raises:
            SolanaRPCError: When an RPC call fails permanently or keeps
                failing transiently after ``max_rpc_attempts``.
        """
        promoted = await self._recheck_pending(wallet)
        if promoted:
            yield PollBatch(transactions=promoted, watermark=None)

        signatures = await self._new_signatures(wallet)
        size = max(self._config.batch_size, 1)
        for start in range(0, len(signatures), size):
            chunk = signatures[start : start + size]
            batch = PollBatch()
            stalled = False
            for info in chunk:
                result = await self._with_retry(
                    "getTransaction",
                    lambda info=info: self._chain.get_transaction(
                        info.signature,
                        wallet_address=wallet.address,
                        confirmation_status=info.confirmation_status,
                    ),
                )
                if result is None:
                    stalled = True
                    logger.info(
                        "Transaction %s for wallet %s not available yet; stopping here",
                        info.signature,
                        wallet.address,
                    )
                    break
                if isinstance(result, RawChainTx):
                    batch.transactions.append(result)
                batch.watermark = info.signature

            if batch.watermark is not None:
                yield batch
            if stalled:
                return

    async def commit(self, wallet: Wallet, batch: PollBatch) -> None:
        """Durably advance *wallet*'s watermark past a reconciled batch."""
        if batch.watermark is None:
            return
        await self._wallets.set_watermark(wallet.address, batch.watermark, self._clock())
        wallet.watermark = batch.watermark
        wallet.sync_cursor = None

    async def mark_synced(self, wallet: Wallet) -> None:
        """Record that a poll cycle for *wallet* finished."""
        now = self._clock()
        await self._wallets.set_watermark(wallet.address, None, now)
        wallet.last_synced_at = now

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _recheck_pending(self, wallet: Wallet) -> list[RawChainTx]:
        """Rebuild transfers for pending ledger rows whose status moved on."""
        pending = await self._transactions.list_pending(wallet.address)
        if not pending:
            return []

        statuses = await self._with_retry(
            "getSignatureStatuses",
            lambda: self._chain.get_signature_statuses([row.signature for row in pending]),
        )
        promoted: list[RawChainTx] = []
        for row in pending:
            status = statuses.get(row.signature)
            if status is None:
                continue
            observed = chain_status(
                status.err, status.confirmation_status, self._chain.finality
            )
            if observed is TxStatus.PENDING:
                continue
            promoted.append(self._from_ledger(row, observed, status.slot))
        return promoted

    async def _new_signatures(self, wallet: Wallet) -> list[SignatureInfo]:
        """Signatures newer than the watermark, oldest first.

        At most ``max_pages`` pages are fetched per cycle, walking back from
        ``wallet.sync_cursor`` (or from the chain tip) towards the watermark.
        When the watermark is not reached, nothing is returned; the cursor is
        stored one signature short of the oldest fetched, so the next cycle
        continues the walk and always gets at least one signature back.
        Returned signatures therefore always continue directly from the
        watermark.
        """
        if wallet.watermark is None:
            page = await self._with_retry(
                "getSignaturesForAddress",
                lambda: self._chain.get_signatures_for_address(
                    wallet.address, limit=self._config.backfill_limit
                ),
            )
            return list(reversed(page))

        collected: list[SignatureInfo] = []
        before = wallet.sync_cursor
        for _ in range(self._config.max_pages):
            page = await self._with_retry(
                "getSignaturesForAddress",
                lambda before=before: self._chain.get_signatures_for_address(
                    wallet.address,
                    limit=self._config.page_limit,
                    before=before,
                    until=wallet.watermark,
                ),
            )
            collected.extend(page)
            if len(page) < self._config.page_limit:
                return list(reversed(collected))
            before = page[-1].signature

        cursor = collected[-2].signature
        logger.info(
            "Wallet %s has more than %d pages of new signatures; resuming before %s next cycle",
            wallet.address,
            self._config.max_pages,
            cursor,
        )
        await self._wallets.set_sync_cursor(wallet.address, cursor)
        wallet.sync_cursor = cursor
        return []

    def _from_ledger(self, row: LedgerTransaction, status: TxStatus, slot: int) -> RawChainTx:
        amount_raw = int(Decimal(row.amount).scaleb(_LEDGER_DECIMALS))
        if row.tx_type == TxType.RECEIVE.value:
            sender, receiver = row.counterparty, row.wallet_address
        else:
            sender, receiver = row.wallet_address, row.counterparty
        return RawChainTx(
            signature=row.signature,
            sender=sender,
            receiver=receiver,
            amount_raw=amount_raw,
            decimals=_LEDGER_DECIMALS,
            token_mint=row.token_mint,
            status=status,
            slot=slot or row.slot,
            block_time=row.block_time,
        )

    async def _with_retry(self, method: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run *call*, retrying transient RPC errors with exponential backoff."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except SolanaRPCError as exc:
                if self._metrics:
                    self._metrics.record_rpc_error(transient=exc.transient)
                if not exc.transient or attempt >= self._config.max_rpc_attempts:
                    raise
                delay = self._backoff.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    method,
                    attempt,
                    self._config.max_rpc_attempts,
                    exc.message,
                    delay,
                )
                await self._sleep(delay)
