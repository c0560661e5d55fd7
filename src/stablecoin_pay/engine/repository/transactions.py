"""Ledger transactions repository.

Write helpers take the caller's session so a ledger change and the webhook
event it triggers commit in one transaction.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, func, select, update

from stablecoin_pay.engine.models.transaction import LedgerTransaction, TxStatus, TxType

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from stablecoin_pay.datastore.client import Datastore

_MICRO = Decimal("0.000001")


class TransactionRepository:
    """Data access layer for the transaction ledger."""

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

    # -- Writes (caller-owned session) --

    async def insert_ignore(self, session: AsyncSession, values: dict[str, Any]) -> bool:
        """Insert a ledger row unless the signature exists. Returns True if inserted."""
        stmt = self._ds.insert_ignore(LedgerTransaction, values, key="signature")
        result = await session.execute(stmt)
        return result.rowcount == 1  # type: ignore[union-attr]

    async def find(self, session: AsyncSession, signature: str) -> LedgerTransaction | None:
        stmt = select(LedgerTransaction).where(LedgerTransaction.signature == signature)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def compare_and_set_status(
        self,
        session: AsyncSession,
        signature: str,
        *,
        old: TxStatus,
        new: TxStatus,
        **fields: Any,
    ) -> bool:
        """Move *signature* from *old* to *new*; False if the row was not in *old*."""
        stmt = (
            update(LedgerTransaction)
            .where(
                LedgerTransaction.signature == signature,
                LedgerTransaction.status == old.value,
            )
            .values(status=new.value, **fields)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1  # type: ignore[union-attr]

    # -- Reads --

    async def get(self, signature: str) -> LedgerTransaction | None:
        async with self._ds.session() as session:
            return await session.get(LedgerTransaction, signature)

    async def list_by_wallet(
        self,
        address: str,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerTransaction]:
        """List a wallet's transactions, newest block time first."""
        async with self._ds.session() as session:
            stmt = (
                select(LedgerTransaction)
                .where(LedgerTransaction.wallet_address == address)
                .order_by(LedgerTransaction.block_time.desc(), LedgerTransaction.signature)
                .offset(offset)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_pending(self, address: str) -> list[LedgerTransaction]:
        """Rows of *address* still awaiting finality, oldest first."""
        async with self._ds.session() as session:
            stmt = (
                select(LedgerTransaction)
                .where(
                    LedgerTransaction.wallet_address == address,
                    LedgerTransaction.status == TxStatus.PENDING.value,
                )
                .order_by(LedgerTransaction.slot, LedgerTransaction.block_time)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_by_wallet(self, address: str) -> int:
        async with self._ds.session() as session:
            stmt = (
                select(func.count())
                .select_from(LedgerTransaction)
                .where(LedgerTransaction.wallet_address == address)
            )
            return (await session.execute(stmt)).scalar_one()

    async def confirmed_balance(self, address: str, token_mint: str) -> Decimal:
        """Confirmed receives minus confirmed sends of *token_mint*."""
        signed = case(
            (LedgerTransaction.tx_type == TxType.RECEIVE.value, LedgerTransaction.amount),
            else_=-LedgerTransaction.amount,
        )
        async with self._ds.session() as session:
            stmt = select(func.coalesce(func.sum(signed), 0)).where(
                LedgerTransaction.wallet_address == address,
                LedgerTransaction.token_mint == token_mint,
                LedgerTransaction.status == TxStatus.CONFIRMED.value,
            )
            total = (await session.execute(stmt)).scalar_one()
        return Decimal(str(total)).quantize(_MICRO)

    async def counts_by_status(self) -> dict[str, int]:
        async with self._ds.session() as session:
            stmt = select(LedgerTransaction.status, func.count()).group_by(
                LedgerTransaction.status
            )
            rows = (await session.execute(stmt)).all()
        return {status: count for status, count in rows}
