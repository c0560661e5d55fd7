"""Tests for Solana RPC models and token-balance parsing."""

from __future__ import annotations

from stablecoin_pay.chain.solana.models import (
    UNKNOWN_PARTY,
    SignatureInfo,
    SignatureStatus,
    chain_status,
    parse_transfer,
)
from stablecoin_pay.engine.models.transaction import TxStatus
from tests.fakes import C1, USDC_MINT, W1

OTHER_MINT = "So11111111111111111111111111111111111111112"


def _balance(owner: str, amount: int, mint: str = USDC_MINT, index: int = 0) -> dict:
    return {
        "accountIndex": index,
        "mint": mint,
        "owner": owner,
        "uiTokenAmount": {"amount": str(amount), "decimals": 6},
    }


def _tx(pre: list[dict], post: list[dict], *, err=None, block_time=1767225600) -> dict:
    return {
        "slot": 321,
        "blockTime": block_time,
        "meta": {"err": err, "preTokenBalances": pre, "postTokenBalances": post},
    }


def _parse(result: dict, wallet: str = W1):
    return parse_transfer(
        result,
        signature="SIG",
        wallet_address=wallet,
        mint=USDC_MINT,
        default_decimals=6,
        status=TxStatus.CONFIRMED,
    )


# ---------------------------------------------------------------------------
# Signature listing
# ---------------------------------------------------------------------------


class TestSignatureModels:
    def test_signature_info_from_dict(self):
        info = SignatureInfo.from_dict(
            {
                "signature": "abc",
                "slot": 5,
                "err": None,
                "blockTime": 1700000000,
                "confirmationStatus": "finalized",
            }
        )
        assert info.signature == "abc"
        assert info.slot == 5
        assert info.block_time == 1700000000
        assert info.confirmation_status == "finalized"

    def test_signature_status_from_dict(self):
        status = SignatureStatus.from_dict({"slot": 9, "confirmationStatus": "confirmed"})
        assert status.slot == 9
        assert status.err is None


class TestChainStatus:
    def test_error_means_failed(self):
        assert chain_status({"InstructionError": [0, "Custom"]}, "finalized", "finalized") == (
            TxStatus.FAILED
        )

    def test_finalized_is_confirmed(self):
        assert chain_status(None, "finalized", "finalized") is TxStatus.CONFIRMED

    def test_confirmed_is_pending_when_finalized_required(self):
        assert chain_status(None, "confirmed", "finalized") is TxStatus.PENDING

    def test_confirmed_is_final_when_configured(self):
        assert chain_status(None, "confirmed", "confirmed") is TxStatus.CONFIRMED

    def test_processed_is_pending(self):
        assert chain_status(None, "processed", "confirmed") is TxStatus.PENDING


# ---------------------------------------------------------------------------
# Transfer parsing
# ---------------------------------------------------------------------------


class TestParseTransfer:
    def test_receive(self):
        raw = _parse(
            _tx(
                pre=[_balance(C1, 50_000_000), _balance(W1, 0, index=1)],
                post=[_balance(C1, 40_000_000), _balance(W1, 10_000_000, index=1)],
            )
        )
        assert raw is not None
        assert raw.receiver == W1
        assert raw.sender == C1
        assert raw.amount_raw == 10_000_000
        assert raw.decimals == 6
        assert raw.slot == 321
        assert raw.block_time is not None

    def test_send(self):
        raw = _parse(
            _tx(
                pre=[_balance(W1, 25_000_000), _balance(C1, 0, index=1)],
                post=[_balance(W1, 20_000_000), _balance(C1, 5_000_000, index=1)],
            )
        )
        assert raw is not None
        assert raw.sender == W1
        assert raw.receiver == C1
        assert raw.amount_raw == 5_000_000

    def test_new_token_account_has_no_pre_balance(self):
        raw = _parse(_tx(pre=[_balance(C1, 3_000_000)], post=[_balance(C1, 0), _balance(W1, 3_000_000, index=1)]))
        assert raw is not None
        assert raw.amount_raw == 3_000_000

    def test_unknown_counterparty(self):
        raw = _parse(_tx(pre=[], post=[_balance(W1, 1_000_000)]))
        assert raw is not None
        assert raw.sender == UNKNOWN_PARTY

    def test_other_mint_is_ignored(self):
        raw = _parse(
            _tx(
                pre=[_balance(W1, 0, mint=OTHER_MINT)],
                post=[_balance(W1, 9, mint=OTHER_MINT)],
            )
        )
        assert raw is None

    def test_no_delta_for_wallet(self):
        raw = _parse(_tx(pre=[_balance(W1, 7)], post=[_balance(W1, 7)]))
        assert raw is None

    def test_missing_block_time(self):
        raw = _parse(_tx(pre=[], post=[_balance(W1, 1)], block_time=None))
        assert raw is not None
        assert raw.block_time is None
