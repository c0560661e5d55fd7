"""Solana JSON-RPC integration."""
