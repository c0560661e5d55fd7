"""Solana RPC errors."""

from __future__ import annotations

from stablecoin_pay.errors.payment_errors import PaymentError


class SolanaRPCError(PaymentError):
    """Error from the Solana JSON-RPC endpoint.

    ``transient`` is set for timeouts, network failures, rate limiting and
    5xx responses; callers retry those with backoff.
    """

    def __init__(
        self,
        message: str,
        *,
        transient: bool = False,
        status_code: int = 502,
    ) -> None:
        super().__init__(message, status_code=status_code, code="solana-rpc-error")
        self.transient = transient
