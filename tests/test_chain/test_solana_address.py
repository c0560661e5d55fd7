"""Tests for Solana Base58 address validation."""

from __future__ import annotations

import pytest

from stablecoin_pay.chain.solana.address import base58_decode, base58_encode, validate_address
from tests.fakes import C1, USDC_MINT, W1, W2


class TestBase58:
    def test_system_program_is_all_zero_bytes(self):
        assert base58_decode("11111111111111111111111111111111") == bytes(32)

    def test_encode_decode_preserves_leading_zeros(self):
        payload = b"\x00\x00" + bytes(range(1, 31))
        encoded = base58_encode(payload)
        assert encoded.startswith("11")
        assert base58_decode(encoded) == payload

    def test_decode_rejects_characters_outside_alphabet(self):
        with pytest.raises(ValueError):
            base58_decode("0OIl")


class TestValidateAddress:
    @pytest.mark.parametrize("address", [USDC_MINT, W1, W2, C1])
    def test_known_public_keys(self, address):
        assert validate_address(address) is True

    def test_encoded_32_byte_key(self):
        assert validate_address(base58_encode(bytes([7]) * 32)) is True

    @pytest.mark.parametrize(
        "address",
        [
            "",
            "not-an-address",
            "abc",
            USDC_MINT + "1",  # 33 bytes
            USDC_MINT[:-4],  # too short to be 32 bytes
            "0" * 44,
        ],
    )
    def test_rejects_malformed(self, address):
        assert validate_address(address) is False

    def test_rejects_31_byte_key(self):
        assert validate_address(base58_encode(bytes([9]) * 31)) is False
