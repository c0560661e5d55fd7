"""Exponential backoff policy shared by webhook and RPC retries."""

from __future__ import annotations

import random
from dataclasses import dataclass, field

# Exponents beyond this always exceed any sane cap
_MAX_EXPONENT = 64


@dataclass(frozen=True)
class ExponentialBackoff:
    """Delay before retry *n*: ``min(cap, base * factor ** (n - 1))``.

    With ``jitter`` > 0 the delay is reduced by a random fraction up to
    ``jitter``, so it stays in ``(0, cap]``.

    Attributes:
        base: Delay before the first retry, in seconds.
        factor: Growth factor between consecutive attempts.
        cap: Upper bound on any delay, in seconds.
        jitter: Fraction in ``[0, 1)`` of random reduction.
    """

    base: float
    factor: float = 2.0
    cap: float = 3600.0
    jitter: float = 0.0
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.base <= 0 or self.cap <= 0:
            msg = "backoff base and cap must be positive"
            raise ValueError(msg)
        if self.factor < 1:
            msg = "backoff factor must be >= 1"
            raise ValueError(msg)
        if not 0 <= self.jitter < 1:
            msg = "backoff jitter must be in [0, 1)"
            raise ValueError(msg)

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the *attempt*-th failure (1-based)."""
        exponent = min(max(attempt, 1) - 1, _MAX_EXPONENT)
        raw = min(self.cap, self.base * self.factor**exponent)
        if self.jitter:
            raw *= 1 - self.jitter * self.rng.random()
        return raw
