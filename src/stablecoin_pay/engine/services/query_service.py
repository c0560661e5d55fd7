"""Query service — read-only balance and history projections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from stablecoin_pay.engine.services.wallet_service import ensure_address
from stablecoin_pay.errors.definitions import err_wallet_not_found

if TYPE_CHECKING:
    from decimal import Decimal

    from stablecoin_pay.config.settings import SolanaConfig
    from stablecoin_pay.engine.models.transaction import LedgerTransaction
    from stablecoin_pay.engine.models.webhook_event import WebhookEvent
    from stablecoin_pay.engine.repository.transactions import TransactionRepository
    from stablecoin_pay.engine.repository.wallets import WalletRepository
    from stablecoin_pay.engine.repository.webhook_events import WebhookEventRepository

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


@dataclass(frozen=True)
class Balance:
    """Confirmed token balance of a wallet."""

    address: str
    token: str
    symbol: str
    amount: Decimal
    usd_value: Decimal


def _clamp(limit: int | None, offset: int | None) -> tuple[int, int]:
    size = DEFAULT_LIMIT if limit is None else max(1, min(limit, MAX_LIMIT))
    return size, max(offset or 0, 0)


class QueryService:
    """Serves ledger projections to API callers; never writes."""

    def __init__(
        self,
        wallets: WalletRepository,
        transactions: TransactionRepository,
        events: WebhookEventRepository,
        config: SolanaConfig,
    ) -> None:
        self._wallets = wallets
        self._transactions = transactions
        self._events = events
        self._config = config

    async def _require_wallet(self, address: str) -> str:
        address = ensure_address(address)
        if await self._wallets.get(address) is None:
            raise err_wallet_not_found(address)
        return address

    async def get_balance(self, address: str) -> Balance:
        """Confirmed receives minus confirmed sends of the configured mint.

        Raises:
            ValidationError: If the address is malformed.
            NotFoundError: If the wallet is not registered.
        """
        address = await self._require_wallet(address)
        amount = await self._transactions.confirmed_balance(address, self._config.usdc_mint)
        # USDC is a dollar stablecoin
        return Balance(
            address=address,
            token=self._config.token_name,
            symbol=self._config.token_symbol,
            amount=amount,
            usd_value=amount,
        )

    async def list_transactions(
        self,
        address: str,
        *,
        limit: int | None = DEFAULT_LIMIT,
        offset: int | None = 0,
    ) -> list[LedgerTransaction]:
        """A page of the wallet's ledger, newest block time first."""
        address = await self._require_wallet(address)
        size, start = _clamp(limit, offset)
        return await self._transactions.list_by_wallet(address, limit=size, offset=start)

    async def list_webhook_events(
        self,
        address: str,
        *,
        limit: int | None = DEFAULT_LIMIT,
        offset: int | None = 0,
    ) -> list[WebhookEvent]:
        """A page of the wallet's webhook events, newest first."""
        address = await self._require_wallet(address)
        size, start = _clamp(limit, offset)
        return await self._events.list_by_wallet(address, limit=size, offset=start)
