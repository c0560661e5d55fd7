"""Solana address encoding — Base58 public keys.

A Solana address is the Base58 encoding (Bitcoin alphabet, no checksum) of
a 32-byte Ed25519 public key, so its text form is 32 to 44 characters.
"""

from __future__ import annotations

_B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

PUBKEY_LENGTH = 32


def base58_encode(payload: bytes) -> str:
    """Encode raw bytes to Base58 (no checksum)."""
    n = int.from_bytes(payload, "big")
    result: list[int] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_B58_ALPHABET[remainder])
    # Preserve leading zero bytes
    for byte in payload:
        if byte == 0:
            result.append(_B58_ALPHABET[0])
        else:
            break
    return bytes(reversed(result)).decode("ascii")


def base58_decode(s: str) -> bytes:
    """Decode Base58 string to raw bytes (no checksum).

    Raises:
        ValueError: If *s* contains a character outside the alphabet.
    """
    n = 0
    for char in s:
        n = n * 58 + _B58_ALPHABET.index(char.encode("ascii"))
    result = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    # Preserve leading '1' chars as 0x00 bytes
    pad_count = 0
    for char in s:
        if char == "1":
            pad_count += 1
        else:
            break
    return b"\x00" * pad_count + result


def validate_address(address: str) -> bool:
    """Check if *address* is a Base58-encoded 32-byte Solana public key."""
    if not address or not 32 <= len(address) <= 44:
        return False
    try:
        return len(base58_decode(address)) == PUBKEY_LENGTH
    except ValueError:
        return False
