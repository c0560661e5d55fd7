"""Reconciler — idempotent merge of observed transfers into the ledger.

Every ``RawChainTx`` is applied in its own database transaction:

1. normalize it into direction, fixed-point amount and counterparty;
2. ``INSERT ... ON CONFLICT DO NOTHING`` by signature;
3. if the row already existed, apply an allowed status change with a
   compare-and-set update, or log a :class:`ReconciliationConflict`;
4. for a change in the notify set, enqueue the webhook event in the same
   transaction.

A transition is emitted only when a row was inserted or its status moved,
which makes re-observing unchanged chain state a no-op.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from typing import TYPE_CHECKING

from stablecoin_pay.engine.models.base import utcnow
from stablecoin_pay.engine.models.transaction import TxStatus, TxType
from stablecoin_pay.errors.payment_errors import (
    PrecisionError,
    ReconciliationConflict,
    ValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from stablecoin_pay.chain.solana.models import RawChainTx
    from stablecoin_pay.datastore.client import Datastore
    from stablecoin_pay.engine.models.wallet import Wallet
    from stablecoin_pay.engine.repository.transactions import TransactionRepository
    from stablecoin_pay.metrics.collector import EngineMetrics
    from stablecoin_pay.notifications.dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

LEDGER_SCALE = 6
_QUANTUM = Decimal(1).scaleb(-LEDGER_SCALE)
# Largest value a Numeric(20, 6) column holds
MAX_AMOUNT = Decimal("99999999999999.999999")

UNKNOWN_COUNTERPARTY = "unknown"


@dataclass(frozen=True)
class Transition:
    """A detected change of a ledger row's status.

    ``old_status`` is ``None`` for the first observation of a signature.
    ``notified`` records whether a webhook event was enqueued for it.
    """

    signature: str
    wallet_address: str
    old_status: TxStatus | None
    new_status: TxStatus
    tx_type: TxType
    amount: Decimal
    token_mint: str
    counterparty: str
    block_time: datetime
    notified: bool = False


@dataclass(frozen=True)
class Normalized:
    """A ``RawChainTx`` expressed relative to one wallet."""

    tx_type: TxType
    amount: Decimal
    counterparty: str


def normalize_amount(amount_raw: int, decimals: int) -> Decimal:
    """Convert base units to a ledger amount with six fractional digits.

    Raises:
        PrecisionError: If the value is not positive, would lose digits at
            ledger precision, or exceeds the column's range.
    """
    if amount_raw <= 0:
        raise PrecisionError(f"Amount must be positive, got {amount_raw} base units")
    if decimals < 0:
        raise PrecisionError(f"Invalid token decimals: {decimals}")

    with localcontext() as ctx:
        ctx.prec = 80
        value = Decimal(amount_raw).scaleb(-decimals)
        if value > MAX_AMOUNT:
            raise PrecisionError(f"Amount {value} exceeds ledger range")
        try:
            quantized = value.quantize(_QUANTUM)
        except InvalidOperation as exc:
            raise PrecisionError(f"Amount {value} cannot be represented") from exc
    if quantized != value:
        raise PrecisionError(
            f"Amount {value} has more than {LEDGER_SCALE} fractional digits"
        )
    return quantized


def normalize(wallet_address: str, raw: RawChainTx) -> Normalized:
    """Derive direction, amount and counterparty of *raw* for *wallet_address*.

    Raises:
        ValidationError: If the wallet is neither sender nor receiver.
        PrecisionError: If the amount is not representable.
    """
    if raw.receiver == wallet_address:
        tx_type, counterparty = TxType.RECEIVE, raw.sender
    elif raw.sender == wallet_address:
        tx_type, counterparty = TxType.SEND, raw.receiver
    else:
        raise ValidationError(
            f"Wallet {wallet_address} is neither sender nor receiver of {raw.signature}",
            code="not-a-party",
        )
    return Normalized(
        tx_type=tx_type,
        amount=normalize_amount(raw.amount_raw, raw.decimals),
        counterparty=counterparty or UNKNOWN_COUNTERPARTY,
    )


class Reconciler:
    """Applies watcher output to the transaction ledger.

    Args:
        datastore: Open datastore; one session per observed transfer.
        transactions: Ledger repository.
        dispatcher: Receives transitions in the notify set; ``None`` disables
            webhook creation.
        metrics: Optional engine metrics.
        clock: Fallback timestamp source for transfers without a block time.
    """

    def __init__(
        self,
        datastore: Datastore,
        transactions: TransactionRepository,
        dispatcher: WebhookDispatcher | None = None,
        *,
        metrics: EngineMetrics | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ds = datastore
        self._transactions = transactions
        self._dispatcher = dispatcher
        self._metrics = metrics
        self._clock = clock

    async def reconcile(self, wallet: Wallet, raw_txs: list[RawChainTx]) -> list[Transition]:
        """Merge *raw_txs* observed for *wallet* into the ledger, in order.

        Invalid transfers and conflicts are logged and skipped; storage
        errors propagate.

        Returns:
            The transitions that were applied.
        """
        transitions: list[Transition] = []
        for raw in raw_txs:
            try:
                transition = await self._apply(wallet.address, raw)
            except ValidationError as exc:
                logger.warning("Skipping %s for wallet %s: %s", raw.signature, wallet.address, exc)
                continue
            if transition is not None:
                transitions.append(transition)
        return transitions

    async def _apply(self, address: str, raw: RawChainTx) -> Transition | None:
        normalized = normalize(address, raw)
        now = self._clock()
        block_time = raw.block_time or now

        async with self._ds.session() as session:
            inserted = await self._transactions.insert_ignore(
                session,
                {
                    "signature": raw.signature,
                    "wallet_address": address,
                    "tx_type": normalized.tx_type.value,
                    "amount": normalized.amount,
                    "token_mint": raw.token_mint,
                    "counterparty": normalized.counterparty,
                    "status": raw.status.value,
                    "slot": raw.slot,
                    "block_time": block_time,
                    "created_at": now,
                    "updated_at": now,
                },
            )

            if inserted:
                transition = Transition(
                    signature=raw.signature,
                    wallet_address=address,
                    old_status=None,
                    new_status=raw.status,
                    tx_type=normalized.tx_type,
                    amount=normalized.amount,
                    token_mint=raw.token_mint,
                    counterparty=normalized.counterparty,
                    block_time=block_time,
                )
            else:
                existing = await self._transactions.find(session, raw.signature)
                if existing is None:
                    self._conflict(raw.signature, "-", raw.status, "row vanished during upsert")
                    return None
                current = TxStatus(existing.status)
                if existing.wallet_address != address:
                    self._conflict(
                        raw.signature,
                        current,
                        raw.status,
                        f"signature already recorded for wallet {existing.wallet_address}",
                    )
                    return None
                if current is raw.status:
                    return None
                if not current.can_transition_to(raw.status):
                    self._conflict(raw.signature, current, raw.status)
                    return None
                moved = await self._transactions.compare_and_set_status(
                    session,
                    raw.signature,
                    old=current,
                    new=raw.status,
                    slot=raw.slot or existing.slot,
                )
                if not moved:
                    await session.rollback()
                    self._conflict(
                        raw.signature, current, raw.status, "concurrent status change"
                    )
                    return None
                transition = Transition(
                    signature=existing.signature,
                    wallet_address=address,
                    old_status=current,
                    new_status=raw.status,
                    tx_type=TxType(existing.tx_type),
                    amount=existing.amount,
                    token_mint=existing.token_mint,
                    counterparty=existing.counterparty,
                    block_time=existing.block_time,
                )

            if self._dispatcher is not None and self._dispatcher.should_notify(raw.status):
                await self._dispatcher.enqueue(transition, session=session)
                transition = dataclasses.replace(transition, notified=True)
            await session.commit()

        logger.info(
            "Ledger %s: %s -> %s (%s %s)",
            transition.signature,
            transition.old_status or "none",
            transition.new_status,
            transition.tx_type,
            transition.amount,
        )
        if self._metrics:
            self._metrics.record_transition(transition.new_status.value)
        return transition

    def _conflict(
        self,
        signature: str,
        current: str,
        observed: str,
        reason: str = "disallowed status transition",
    ) -> None:
        conflict = ReconciliationConflict(
            signature, current=str(current), observed=str(observed), reason=reason
        )
        logger.warning("Reconciliation conflict: %s", conflict.message)
        if self._metrics:
            self._metrics.record_conflict()
