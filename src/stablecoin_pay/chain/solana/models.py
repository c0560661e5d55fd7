"""Solana data models — signature listings, statuses and parsed transfers.

Data classes representing the subset of the Solana JSON-RPC responses the
watcher consumes, plus ``RawChainTx``: one token transfer observed on chain,
expressed relative to the watched wallet.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from stablecoin_pay.engine.models.transaction import TxStatus

# ---------------------------------------------------------------------------
# Signature listing (getSignaturesForAddress / getSignatureStatuses)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignatureInfo:
    """One entry of ``getSignaturesForAddress``.

    Attributes:
        signature: Base58 transaction signature.
        slot: Slot the transaction landed in.
        err: Transaction error object, ``None`` when it succeeded.
        block_time: Unix timestamp, if known.
        confirmation_status: ``processed`` | ``confirmed`` | ``finalized``.
    """

    signature: str
    slot: int = 0
    err: Any = None
    block_time: int | None = None
    confirmation_status: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignatureInfo:
        """Create SignatureInfo from a JSON-RPC result entry."""
        return cls(
            signature=data["signature"],
            slot=data.get("slot", 0),
            err=data.get("err"),
            block_time=data.get("blockTime"),
            confirmation_status=data.get("confirmationStatus"),
        )


@dataclass(frozen=True)
class SignatureStatus:
    """One entry of ``getSignatureStatuses`` (``None`` entries are unknown)."""

    slot: int = 0
    err: Any = None
    confirmation_status: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignatureStatus:
        return cls(
            slot=data.get("slot", 0),
            err=data.get("err"),
            confirmation_status=data.get("confirmationStatus"),
        )


def chain_status(err: Any, confirmation_status: str | None, finality: str) -> TxStatus:
    """Map a chain-side error/commitment pair onto a ledger status."""
    if err is not None:
        return TxStatus.FAILED
    if confirmation_status == finality or confirmation_status == "finalized":
        return TxStatus.CONFIRMED
    return TxStatus.PENDING


# ---------------------------------------------------------------------------
# RawChainTx: watcher output, reconciler input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawChainTx:
    """A token transfer as observed on chain.

    Attributes:
        signature: Transaction signature.
        sender: Owner whose token balance decreased.
        receiver: Owner whose token balance increased.
        amount_raw: Transferred amount in base units.
        decimals: Mint's declared decimals.
        token_mint: Mint address of the transferred asset.
        status: Observed finality.
        slot: Slot the transaction landed in.
        block_time: Chain timestamp (ingestion time when the chain has none).
    """

    signature: str
    sender: str
    receiver: str
    amount_raw: int
    decimals: int
    token_mint: str
    status: TxStatus
    slot: int = 0
    block_time: datetime | None = None


# ---------------------------------------------------------------------------
# getTransaction parsing
# ---------------------------------------------------------------------------

UNKNOWN_PARTY = "unknown"


def _owner_balances(balances: list[dict[str, Any]], mint: str) -> dict[str, int]:
    """Sum base-unit balances per owner for *mint* from a token balance list."""
    totals: dict[str, int] = {}
    for entry in balances:
        if entry.get("mint") != mint or not entry.get("owner"):
            continue
        ui = entry.get("uiTokenAmount") or {}
        try:
            amount = int(ui.get("amount", "0"))
        except (TypeError, ValueError):
            continue
        totals[entry["owner"]] = totals.get(entry["owner"], 0) + amount
    return totals


def _mint_decimals(balances: list[dict[str, Any]], mint: str, default: int) -> int:
    for entry in balances:
        if entry.get("mint") == mint:
            ui = entry.get("uiTokenAmount") or {}
            if "decimals" in ui:
                return int(ui["decimals"])
    return default


def parse_transfer(
    result: dict[str, Any],
    *,
    signature: str,
    wallet_address: str,
    mint: str,
    default_decimals: int,
    status: TxStatus,
) -> RawChainTx | None:
    """Extract the wallet's transfer of *mint* from a ``getTransaction`` result.

    The direction comes from the sign of the wallet's balance delta; the
    counterparty is the owner with the largest opposite delta.  Returns
    ``None`` when the wallet's balance of *mint* did not change.
    """
    meta = result.get("meta") or {}
    pre_list = meta.get("preTokenBalances") or []
    post_list = meta.get("postTokenBalances") or []
    pre = _owner_balances(pre_list, mint)
    post = _owner_balances(post_list, mint)

    owners = set(pre) | set(post)
    deltas = {owner: post.get(owner, 0) - pre.get(owner, 0) for owner in owners}
    delta = deltas.get(wallet_address, 0)
    if delta == 0:
        return None

    others = {o: d for o, d in deltas.items() if o != wallet_address}
    if delta > 0:
        losers = {o: d for o, d in others.items() if d < 0}
        sender = min(losers, key=lambda o: losers[o]) if losers else UNKNOWN_PARTY
        receiver = wallet_address
    else:
        gainers = {o: d for o, d in others.items() if d > 0}
        receiver = max(gainers, key=lambda o: gainers[o]) if gainers else UNKNOWN_PARTY
        sender = wallet_address

    block_time = result.get("blockTime")
    return RawChainTx(
        signature=signature,
        sender=sender,
        receiver=receiver,
        amount_raw=abs(delta),
        decimals=_mint_decimals(post_list or pre_list, mint, default_decimals),
        token_mint=mint,
        status=status,
        slot=result.get("slot", 0),
        block_time=datetime.fromtimestamp(block_time, tz=UTC) if block_time else None,
    )
