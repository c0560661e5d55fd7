"""PaymentError — base exception class and taxonomy for stablecoin-pay."""

from __future__ import annotations


class PaymentError(Exception):
    """Base error for all payment engine operations.

    Attributes:
        message: Human-readable error description.
        status_code: Suggested HTTP status code.
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "payment-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class ValidationError(PaymentError):
    """Input rejected immediately; never retried."""

    def __init__(self, message: str, *, code: str = "validation-error") -> None:
        super().__init__(message, status_code=400, code=code)


class PrecisionError(ValidationError):
    """An amount cannot be represented at the ledger's fixed-point precision."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="precision-error")


class NotFoundError(PaymentError):
    """A requested entity does not exist."""

    def __init__(self, message: str, *, code: str = "not-found") -> None:
        super().__init__(message, status_code=404, code=code)


class ReconciliationConflict(PaymentError):
    """An observed status change violates the ledger monotonicity invariant.

    Built and logged by the reconciler; it never escapes the pipeline.
    """

    def __init__(
        self,
        signature: str,
        *,
        current: str,
        observed: str,
        reason: str = "disallowed status transition",
    ) -> None:
        super().__init__(
            f"{reason} for {signature}: {current} -> {observed}",
            status_code=409,
            code="reconciliation-conflict",
        )
        self.signature = signature
        self.current = current
        self.observed = observed


class WebhookDeliveryError(PaymentError):
    """A webhook delivery attempt did not succeed.

    ``permanent`` marks conditions retrying cannot fix (4xx other than
    408/429, redirects, unusable endpoint URL).
    """

    def __init__(
        self,
        message: str,
        *,
        permanent: bool = False,
        status: int | None = None,
    ) -> None:
        super().__init__(message, status_code=502, code="webhook-delivery-failed")
        self.permanent = permanent
        self.status = status
