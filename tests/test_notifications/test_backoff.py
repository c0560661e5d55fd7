"""Tests for the exponential backoff policy."""

from __future__ import annotations

import random

import pytest

from stablecoin_pay.notifications.backoff import ExponentialBackoff


class TestExponentialBackoff:
    def test_doubles_from_base(self) -> None:
        backoff = ExponentialBackoff(base=30.0)
        assert [backoff.delay(n) for n in range(1, 5)] == [30.0, 60.0, 120.0, 240.0]

    def test_strictly_increasing_until_cap(self) -> None:
        backoff = ExponentialBackoff(base=1.0, factor=3.0, cap=100.0)
        delays = [backoff.delay(n) for n in range(1, 10)]
        uncapped = [d for d in delays if d < 100.0]
        assert uncapped == sorted(set(uncapped))
        assert delays[-1] == 100.0
        assert max(delays) == 100.0

    def test_huge_attempt_numbers_stay_capped(self) -> None:
        backoff = ExponentialBackoff(base=0.5, cap=8.0)
        assert backoff.delay(10_000) == 8.0

    def test_attempt_below_one_uses_base(self) -> None:
        assert ExponentialBackoff(base=5.0).delay(0) == 5.0

    def test_jitter_only_shortens(self) -> None:
        backoff = ExponentialBackoff(base=10.0, jitter=0.5, rng=random.Random(42))
        for attempt in range(1, 8):
            undisturbed = min(3600.0, 10.0 * 2 ** (attempt - 1))
            delay = backoff.delay(attempt)
            assert undisturbed * 0.5 <= delay <= undisturbed

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base": 0.0},
            {"base": 1.0, "cap": 0.0},
            {"base": 1.0, "factor": 0.5},
            {"base": 1.0, "jitter": 1.0},
            {"base": 1.0, "jitter": -0.1},
        ],
    )
    def test_invalid_parameters(self, kwargs) -> None:
        with pytest.raises(ValueError):
            ExponentialBackoff(**kwargs)
