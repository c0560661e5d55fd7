"""Chain services — Solana JSON-RPC client and chain data models."""

from __future__ import annotations

from stablecoin_pay.chain.solana.client import SolanaClient
from stablecoin_pay.chain.solana.models import RawChainTx, SignatureInfo

__all__ = ["RawChainTx", "SignatureInfo", "SolanaClient"]
