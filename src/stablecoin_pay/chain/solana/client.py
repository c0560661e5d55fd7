"""Solana JSON-RPC client — signatures, statuses, parsed transactions.

Provides an async HTTP client for the subset of the Solana JSON-RPC API
the chain watcher needs:
- ``getSignaturesForAddress`` — signature pages, newest first
- ``getSignatureStatuses`` — current commitment of known signatures
- ``getTransaction`` — jsonParsed transaction with token balance deltas
- ``getSlot`` — liveness check for the detailed health check
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any

import httpx

from stablecoin_pay.chain.solana.models import (
    RawChainTx,
    SignatureInfo,
    SignatureStatus,
    chain_status,
    parse_transfer,
)
from stablecoin_pay.errors.chain_errors import SolanaRPCError

if TYPE_CHECKING:
    from stablecoin_pay.config.settings import SolanaConfig

# getSignatureStatuses accepts at most 256 signatures per call
_MAX_STATUS_BATCH = 256

# Sentinel returned by ``get_transaction`` when the node cannot serve it yet
NOT_AVAILABLE = None


class SolanaClient:
    """Async JSON-RPC client for a Solana node.

    Usage::

        solana = SolanaClient(config)
        await solana.connect()
        try:
            page = await solana.get_signatures_for_address(address, limit=20)
        finally:
            await solana.close()
    """

    def __init__(self, config: SolanaConfig) -> None:
        """Initialize the Solana client.

        Args:
            config: Solana configuration (endpoint, mint, finality, timeout).
        """
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=self._config.request_timeout,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    @property
    def finality(self) -> str:
        return self._config.finality.value

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_signatures_for_address(
        self,
        address: str,
        *,
        limit: int,
        before: str | None = None,
        until: str | None = None,
    ) -> list[SignatureInfo]:
        """List signatures touching *address*, newest first.

        Args:
            address: Wallet address.
            limit: Page size (1-1000).
            before: Start searching backwards from this signature.
            until: Stop before reaching this signature (exclusive).

        Returns:
            Up to *limit* SignatureInfo entries.

        Raises:
            SolanaRPCError: On HTTP or RPC errors.
        """
        options: dict[str, Any] = {"limit": limit, "commitment": "confirmed"}
        if before:
            options["before"] = before
        if until:
            options["until"] = until
        result = await self._call("getSignaturesForAddress", [address, options])
        return [SignatureInfo.from_dict(entry) for entry in result or []]

    async def get_signature_statuses(
        self, signatures: list[str]
    ) -> dict[str, SignatureStatus | None]:
        """Look up the current status of each signature.

        Returns:
            Mapping of signature to its status, ``None`` when the node does
            not know the signature.
        """
        statuses: dict[str, SignatureStatus | None] = {}
        for start in range(0, len(signatures), _MAX_STATUS_BATCH):
            chunk = signatures[start : start + _MAX_STATUS_BATCH]
            result = await self._call(
                "getSignatureStatuses",
                [chunk, {"searchTransactionHistory": True}],
            )
            values = (result or {}).get("value") or []
            for signature, entry in zip(chunk, values, strict=False):
                statuses[signature] = SignatureStatus.from_dict(entry) if entry else None
        return statuses

    async def get_transaction(
        self,
        signature: str,
        *,
        wallet_address: str,
        confirmation_status: str | None = None,
    ) -> RawChainTx | bool | None:
        """Fetch and parse a transaction for the wallet's token transfer.

        Args:
            signature: Transaction signature.
            wallet_address: Wallet whose balance delta is extracted.
            confirmation_status: Commitment reported by the signature listing.

        Returns:
            A ``RawChainTx`` for a relevant transfer, ``False`` when the
            transaction resolved but does not move the configured mint for
            this wallet, or ``None`` when the node has no data yet.

        Raises:
            SolanaRPCError: On HTTP or RPC errors.
        """
        result = await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": "confirmed",
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        if result is None:
            return NOT_AVAILABLE

        meta = result.get("meta") or {}
        # getTransaction only serves confirmed data; older slots are rooted
        status = chain_status(meta.get("err"), confirmation_status or "confirmed", self.finality)
        parsed = parse_transfer(
            result,
            signature=signature,
            wallet_address=wallet_address,
            mint=self._config.usdc_mint,
            default_decimals=self._config.token_decimals,
            status=status,
        )
        return parsed if parsed is not None else False

    async def get_slot(self) -> int:
        """Return the current slot at the configured finality."""
        result = await self._call("getSlot", [{"commitment": self.finality}])
        return int(result)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call(self, method: str, params: list[Any]) -> Any:
        """Perform a JSON-RPC call and return its ``result`` member."""
        client = self._ensure_connected()
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        try:
            response = await client.post(self._config.endpoint, json=body)
        except httpx.TimeoutException as exc:
            raise SolanaRPCError(f"Solana {method} timed out: {exc}", transient=True) from exc
        except httpx.HTTPError as exc:
            raise SolanaRPCError(f"Solana {method} failed: {exc}", transient=True) from exc

        self._raise_for_status(response, method)

        try:
            data = response.json()
        except ValueError as exc:
            raise SolanaRPCError(f"Solana {method} returned invalid JSON") from exc

        error = data.get("error")
        if error:
            code = error.get("code")
            # -32005 node behind, -32004 block not available
            transient = code in (-32004, -32005, -32603)
            raise SolanaRPCError(
                f"Solana {method} error {code}: {error.get('message', '')}",
                transient=transient,
            )
        return data.get("result")

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "Solana client not connected. Call connect() first."
            raise SolanaRPCError(msg, status_code=500)
        return self._client

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str) -> None:
        """Raise ``SolanaRPCError`` for non-2xx responses."""
        status = response.status_code
        if 200 <= status < 300:
            return
        transient = status == 429 or status >= 500
        raise SolanaRPCError(
            f"Solana {operation} HTTP {status}: {response.text[:200]}",
            transient=transient,
        )
