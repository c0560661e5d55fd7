"""Shared fixtures for integration tests.

These fixtures run a REAL PaymentEngine and SolanaClient against an
in-memory SQLite database.  Only the network edges are replaced: a scripted
JSON-RPC node and the webhook endpoint, both on ``httpx.MockTransport``.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from stablecoin_pay.chain.solana.client import SolanaClient
from stablecoin_pay.engine.client import PaymentEngine
from tests.fakes import USDC_MINT

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class RpcNode:
    """Minimal Solana JSON-RPC node holding USDC transfers, newest first."""

    def __init__(self) -> None:
        self.transfers: list[dict[str, Any]] = []
        self.methods: list[str] = []

    def transfer(
        self, signature: str, *, sender: str, receiver: str, amount: int, commitment: str
    ) -> None:
        self.transfers.insert(
            0,
            {
                "signature": signature,
                "sender": sender,
                "receiver": receiver,
                "amount": amount,
                "commitment": commitment,
                "block_time": 1767261600 + len(self.transfers),
            },
        )

    def set_commitment(self, signature: str, commitment: str) -> None:
        self._find(signature)["commitment"] = commitment

    def _find(self, signature: str) -> dict[str, Any] | None:
        return next((t for t in self.transfers if t["signature"] == signature), None)

    def _signatures(self, options: dict[str, Any]) -> list[dict[str, Any]]:
        names = [t["signature"] for t in self.transfers]
        start = names.index(options["before"]) + 1 if "before" in options else 0
        until = options.get("until")
        end = names.index(until) if until in names else len(names)
        return [
            {
                "signature": t["signature"],
                "slot": 1000 + start + i,
                "err": None,
                "blockTime": t["block_time"],
                "confirmationStatus": t["commitment"],
            }
            for i, t in enumerate(self.transfers[start:end][: options["limit"]])
        ]

    def _transaction(self, signature: str) -> dict[str, Any] | None:
        t = self._find(signature)
        if t is None:
            return None

        def balance(owner: str, amount: int) -> dict[str, Any]:
            return {
                "mint": USDC_MINT,
                "owner": owner,
                "uiTokenAmount": {"amount": str(amount), "decimals": 6},
            }

        return {
            "slot": 1000,
            "blockTime": t["block_time"],
            "meta": {
                "err": None,
                "preTokenBalances": [balance(t["sender"], t["amount"]), balance(t["receiver"], 0)],
                "postTokenBalances": [balance(t["sender"], 0), balance(t["receiver"], t["amount"])],
            },
        }

    def _statuses(self, signatures: list[str]) -> dict[str, Any]:
        value = []
        for signature in signatures:
            t = self._find(signature)
            value.append(
                {"slot": 1001, "err": None, "confirmationStatus": t["commitment"]} if t else None
            )
        return {"context": {"slot": 1002}, "value": value}

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        self.methods.append(method)
        if method == "getSignaturesForAddress":
            result: Any = self._signatures(params[1])
        elif method == "getTransaction":
            result = self._transaction(params[0])
        elif method == "getSignatureStatuses":
            result = self._statuses(params[0])
        elif method == "getSlot":
            result = 1002
        else:
            error = {"code": -32601, "message": "Method not found"}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": error})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


@pytest.fixture
def node() -> RpcNode:
    return RpcNode()


@pytest.fixture
async def live_engine(app_config, node, endpoint) -> AsyncIterator[PaymentEngine]:
    """Initialized engine whose SolanaClient talks to :class:`RpcNode`."""
    solana = SolanaClient(app_config.solana)
    solana._client = httpx.AsyncClient(transport=httpx.MockTransport(node.handler))
    eng = PaymentEngine(app_config, chain=solana, sender=endpoint.sender())
    await eng.initialize()
    yield eng
    await eng.close()
    await solana.close()
