"""Error factories for common API-facing failures."""

from __future__ import annotations

from stablecoin_pay.errors.payment_errors import NotFoundError, PaymentError, ValidationError

ErrEngineNotReady = PaymentError("engine not initialized", status_code=503, code="engine-not-ready")


def err_invalid_address(address: str) -> ValidationError:
    return ValidationError(f"Invalid Solana address: {address}", code="invalid-address")


def err_invalid_webhook_url(url: str) -> ValidationError:
    return ValidationError(f"Invalid webhook URL: {url}", code="invalid-webhook-url")


def err_wallet_not_found(address: str) -> NotFoundError:
    return NotFoundError(
        f"Wallet {address} not registered. POST /wallets to register it first.",
        code="wallet-not-found",
    )


def err_no_webhook_url(address: str) -> ValidationError:
    return ValidationError(
        f"No webhook URL configured for wallet {address}",
        code="no-webhook-url",
    )
