"""Wallets repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update

from stablecoin_pay.engine.models.wallet import Wallet

if TYPE_CHECKING:
    from datetime import datetime

    from stablecoin_pay.datastore.client import Datastore


class WalletRepository:
    """Data access layer for registered wallets."""

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

    async def insert_ignore(self, address: str, webhook_url: str | None) -> bool:
        """Insert a wallet unless the address exists. Returns True if inserted."""
        stmt = self._ds.insert_ignore(
            Wallet,
            {"address": address, "webhook_url": webhook_url},
            key="address",
        )
        async with self._ds.session() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1  # type: ignore[union-attr]

    async def get(self, address: str) -> Wallet | None:
        """Find a wallet by primary key."""
        async with self._ds.session() as session:
            return await session.get(Wallet, address)

    async def list_all(self) -> list[Wallet]:
        """All wallets, oldest registration first."""
        async with self._ds.session() as session:
            stmt = select(Wallet).order_by(Wallet.created_at, Wallet.address)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def set_webhook_url(self, address: str, webhook_url: str | None) -> bool:
        async with self._ds.session() as session:
            stmt = update(Wallet).where(Wallet.address == address).values(webhook_url=webhook_url)
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount > 0  # type: ignore[union-attr]

    async def set_watermark(self, address: str, watermark: str | None, synced_at: datetime) -> None:
        """Persist the newest reconciled signature and the sync time.

        Moving the watermark clears any stored sync cursor.
        """
        async with self._ds.session() as session:
            values: dict[str, object] = {"last_synced_at": synced_at}
            if watermark is not None:
                values["watermark"] = watermark
                values["sync_cursor"] = None
            await session.execute(update(Wallet).where(Wallet.address == address).values(**values))
            await session.commit()

    async def set_sync_cursor(self, address: str, cursor: str | None) -> None:
        async with self._ds.session() as session:
            await session.execute(
                update(Wallet).where(Wallet.address == address).values(sync_cursor=cursor)
            )
            await session.commit()

    async def delete(self, address: str) -> bool:
        """Delete a wallet; its transactions and events cascade."""
        async with self._ds.session() as session:
            result = await session.execute(delete(Wallet).where(Wallet.address == address))
            await session.commit()
            return result.rowcount > 0  # type: ignore[union-attr]

    async def count(self) -> int:
        async with self._ds.session() as session:
            return (await session.execute(select(func.count()).select_from(Wallet))).scalar_one()
