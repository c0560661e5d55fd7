"""Prometheus metrics — engine collectors and HTTP middleware."""

from __future__ import annotations

from stablecoin_pay.metrics.collector import EngineMetrics, MetricsCollector

__all__ = ["EngineMetrics", "MetricsCollector"]
