"""Wallet registry — registration and lookup of watched addresses."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from stablecoin_pay.chain.solana.address import validate_address
from stablecoin_pay.errors.definitions import (
    err_invalid_address,
    err_invalid_webhook_url,
    err_wallet_not_found,
)
from stablecoin_pay.notifications.webhook import is_valid_webhook_url

if TYPE_CHECKING:
    from stablecoin_pay.engine.models.wallet import Wallet
    from stablecoin_pay.engine.repository.wallets import WalletRepository

logger = logging.getLogger(__name__)


def ensure_address(address: str) -> str:
    """Return *address* stripped, raising ``ValidationError`` if malformed."""
    candidate = (address or "").strip()
    if not validate_address(candidate):
        raise err_invalid_address(address)
    return candidate


def _ensure_webhook_url(webhook_url: str | None) -> str | None:
    if webhook_url is None:
        return None
    url = webhook_url.strip()
    if not url:
        return None
    if not is_valid_webhook_url(url):
        raise err_invalid_webhook_url(webhook_url)
    return url


class WalletRegistry:
    """Business logic for wallet registration.

    Registration is idempotent: the first call for an address creates the
    row, later calls (including concurrent ones) return it unchanged.
    """

    def __init__(self, wallets: WalletRepository) -> None:
        self._wallets = wallets

    async def register(self, address: str, webhook_url: str | None = None) -> Wallet:
        """Register *address* for monitoring.

        Args:
            address: Base58 Solana public key.
            webhook_url: Optional absolute http(s) endpoint for notifications.

        Returns:
            The stored wallet (pre-existing rows are returned as they are).

        Raises:
            ValidationError: If the address or URL is malformed.
        """
        address = ensure_address(address)
        url = _ensure_webhook_url(webhook_url)

        created = await self._wallets.insert_ignore(address, url)
        wallet = await self._wallets.get(address)
        if wallet is None:
            # Deleted between insert and read
            raise err_wallet_not_found(address)
        if created:
            logger.info("Registered wallet %s", address)
        return wallet

    async def list(self) -> list[Wallet]:
        return await self._wallets.list_all()

    async def get(self, address: str) -> Wallet:
        """Look up a registered wallet.

        Raises:
            ValidationError: If the address is malformed.
            NotFoundError: If the wallet is not registered.
        """
        address = ensure_address(address)
        wallet = await self._wallets.get(address)
        if wallet is None:
            raise err_wallet_not_found(address)
        return wallet

    async def update_webhook(self, address: str, webhook_url: str | None) -> Wallet:
        """Set, replace or clear (``None``) a wallet's webhook URL."""
        address = ensure_address(address)
        url = _ensure_webhook_url(webhook_url)
        if not await self._wallets.set_webhook_url(address, url):
            raise err_wallet_not_found(address)
        logger.info("Updated webhook URL for wallet %s", address)
        return await self.get(address)

    async def remove(self, address: str) -> None:
        """Stop watching *address* and drop its history."""
        address = ensure_address(address)
        if not await self._wallets.delete(address):
            raise err_wallet_not_found(address)
        logger.info("Removed wallet %s", address)
