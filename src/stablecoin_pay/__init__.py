"""stablecoin-pay — Solana USDC payment reconciliation and webhook delivery engine."""

__version__ = "0.1.0"
