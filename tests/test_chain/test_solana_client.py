"""Tests for the Solana JSON-RPC client — uses httpx mock transport."""

from __future__ import annotations

import json

import httpx
import pytest

from stablecoin_pay.chain.solana.client import SolanaClient
from stablecoin_pay.chain.solana.models import RawChainTx
from stablecoin_pay.config.settings import Finality, SolanaConfig
from stablecoin_pay.engine.models.transaction import TxStatus
from stablecoin_pay.errors.chain_errors import SolanaRPCError
from tests.fakes import C1, USDC_MINT, W1

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(**overrides) -> SolanaConfig:
    defaults = {"rpc_url": "https://rpc.test", "helius_api_key": ""}
    defaults.update(overrides)
    return SolanaConfig(**defaults)


def _rpc_result(result) -> dict:
    return {"jsonrpc": "2.0", "id": 1, "result": result}


async def _client(handler, **overrides) -> SolanaClient:
    client = SolanaClient(_config(**overrides))
    await client.connect()
    await client._client.aclose()
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


class TestSolanaClientLifecycle:
    async def test_not_connected_by_default(self):
        assert SolanaClient(_config()).is_connected is False

    async def test_connect_and_close(self):
        client = SolanaClient(_config())
        await client.connect()
        assert client.is_connected is True
        await client.close()
        assert client.is_connected is False

    async def test_not_connected_raises(self):
        client = SolanaClient(_config())
        with pytest.raises(SolanaRPCError, match="not connected"):
            await client.get_slot()

    def test_helius_endpoint_preferred(self):
        cfg = _config(helius_api_key="k123")
        assert cfg.endpoint == "https://mainnet.helius-rpc.com/?api-key=k123"
        assert _config().endpoint == "https://rpc.test"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestSignaturesForAddress:
    async def test_request_shape_and_parsing(self):
        seen = {}

        def handler(request: httpx.Request):
            seen.update(json.loads(request.content))
            return httpx.Response(
                200,
                json=_rpc_result(
                    [
                        {"signature": "s2", "slot": 2, "err": None, "confirmationStatus": "finalized"},
                        {"signature": "s1", "slot": 1, "err": None, "confirmationStatus": "confirmed"},
                    ]
                ),
            )

        client = await _client(handler)
        page = await client.get_signatures_for_address(W1, limit=10, until="s0", before="s9")
        assert seen["method"] == "getSignaturesForAddress"
        assert seen["params"][0] == W1
        assert seen["params"][1]["limit"] == 10
        assert seen["params"][1]["until"] == "s0"
        assert seen["params"][1]["before"] == "s9"
        assert [s.signature for s in page] == ["s2", "s1"]
        await client.close()

    async def test_omits_empty_cursors(self):
        seen = {}

        def handler(request: httpx.Request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json=_rpc_result([]))

        client = await _client(handler)
        assert await client.get_signatures_for_address(W1, limit=5) == []
        assert "until" not in seen["params"][1]
        assert "before" not in seen["params"][1]
        await client.close()


class TestSignatureStatuses:
    async def test_unknown_signatures_map_to_none(self):
        def handler(request: httpx.Request):
            return httpx.Response(
                200,
                json=_rpc_result(
                    {"context": {"slot": 1}, "value": [{"slot": 3, "confirmationStatus": "finalized", "err": None}, None]}
                ),
            )

        client = await _client(handler)
        statuses = await client.get_signature_statuses(["a", "b"])
        assert statuses["a"] is not None
        assert statuses["a"].confirmation_status == "finalized"
        assert statuses["b"] is None
        await client.close()


class TestGetTransaction:
    def _result(self, *, err=None) -> dict:
        return {
            "slot": 77,
            "blockTime": 1767225600,
            "meta": {
                "err": err,
                "preTokenBalances": [
                    {"mint": USDC_MINT, "owner": C1, "uiTokenAmount": {"amount": "10000000", "decimals": 6}}
                ],
                "postTokenBalances": [
                    {"mint": USDC_MINT, "owner": C1, "uiTokenAmount": {"amount": "0", "decimals": 6}},
                    {"mint": USDC_MINT, "owner": W1, "uiTokenAmount": {"amount": "10000000", "decimals": 6}},
                ],
            },
        }

    async def test_finalized_receive(self):
        def handler(request: httpx.Request):
            body = json.loads(request.content)
            assert body["params"][1]["encoding"] == "jsonParsed"
            assert body["params"][1]["maxSupportedTransactionVersion"] == 0
            return httpx.Response(200, json=_rpc_result(self._result()))

        client = await _client(handler)
        raw = await client.get_transaction("sig", wallet_address=W1, confirmation_status="finalized")
        assert isinstance(raw, RawChainTx)
        assert raw.status is TxStatus.CONFIRMED
        assert raw.amount_raw == 10_000_000
        assert raw.sender == C1
        await client.close()

    async def test_confirmed_commitment_is_pending_under_finalized(self):
        client = await _client(lambda r: httpx.Response(200, json=_rpc_result(self._result())))
        raw = await client.get_transaction("sig", wallet_address=W1, confirmation_status="confirmed")
        assert raw.status is TxStatus.PENDING
        await client.close()

    async def test_confirmed_finality_setting(self):
        client = await _client(
            lambda r: httpx.Response(200, json=_rpc_result(self._result())),
            finality=Finality.CONFIRMED,
        )
        raw = await client.get_transaction("sig", wallet_address=W1, confirmation_status="confirmed")
        assert raw.status is TxStatus.CONFIRMED
        await client.close()

    async def test_failed_transaction(self):
        client = await _client(
            lambda r: httpx.Response(200, json=_rpc_result(self._result(err={"x": 1})))
        )
        raw = await client.get_transaction("sig", wallet_address=W1, confirmation_status="finalized")
        assert raw.status is TxStatus.FAILED
        await client.close()

    async def test_not_available_returns_none(self):
        client = await _client(lambda r: httpx.Response(200, json=_rpc_result(None)))
        assert await client.get_transaction("sig", wallet_address=W1) is None
        await client.close()

    async def test_irrelevant_returns_false(self):
        client = await _client(lambda r: httpx.Response(200, json=_rpc_result(self._result())))
        assert await client.get_transaction("sig", wallet_address="unrelated") is False
        await client.close()


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_retryable_http_status(self, status):
        client = await _client(lambda r: httpx.Response(status, text="busy"))
        with pytest.raises(SolanaRPCError) as exc_info:
            await client.get_slot()
        assert exc_info.value.transient is True
        await client.close()

    async def test_client_error_is_permanent(self):
        client = await _client(lambda r: httpx.Response(401, text="bad key"))
        with pytest.raises(SolanaRPCError) as exc_info:
            await client.get_slot()
        assert exc_info.value.transient is False
        await client.close()

    async def test_network_error_is_transient(self):
        def handler(request: httpx.Request):
            raise httpx.ConnectError("refused", request=request)

        client = await _client(handler)
        with pytest.raises(SolanaRPCError) as exc_info:
            await client.get_slot()
        assert exc_info.value.transient is True
        await client.close()

    async def test_timeout_is_transient(self):
        def handler(request: httpx.Request):
            raise httpx.ReadTimeout("slow", request=request)

        client = await _client(handler)
        with pytest.raises(SolanaRPCError, match="timed out") as exc_info:
            await client.get_slot()
        assert exc_info.value.transient is True
        await client.close()

    async def test_rpc_error_member(self):
        client = await _client(
            lambda r: httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "bad params"}}
            )
        )
        with pytest.raises(SolanaRPCError, match="bad params") as exc_info:
            await client.get_slot()
        assert exc_info.value.transient is False
        await client.close()

    async def test_get_slot(self):
        client = await _client(lambda r: httpx.Response(200, json=_rpc_result(1234)))
        assert await client.get_slot() == 1234
        await client.close()
