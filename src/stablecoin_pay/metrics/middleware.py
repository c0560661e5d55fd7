"""HTTP request metrics for the API.

``http_request_total`` counts requests by method, route and status code;
``http_request_duration_seconds`` observes their latency.  Requests are
labelled with the matched route template (``/wallets/{address}``), never the
raw path, so each wallet address does not become its own series.  Health and
metrics endpoints are not recorded.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from prometheus_client import CollectorRegistry
    from starlette.requests import Request
    from starlette.responses import Response
    from starlette.types import ASGIApp

APP_LABEL = "stablecoin-pay"
UNMATCHED = "unmatched"
DEFAULT_EXCLUDED = ("/metrics", "/health", "/health/detailed")


def route_template(request: Request) -> str:
    """The path template of the route that handled *request*."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Records request count and duration into *registry*."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        registry: CollectorRegistry,
        exclude: Iterable[str] = DEFAULT_EXCLUDED,
    ) -> None:
        super().__init__(app)
        self._exclude = frozenset(exclude)
        self._requests = Counter(
            "http_request_total",
            "Total HTTP requests",
            ("method", "path", "status_code", "app"),
            registry=registry,
        )
        self._latency = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ("method", "path", "app"),
            registry=registry,
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:  # type: ignore[type-arg]
        if request.url.path in self._exclude:
            return await call_next(request)

        started = time.perf_counter()
        response: Response = await call_next(request)
        path = route_template(request)

        self._latency.labels(request.method, path, APP_LABEL).observe(
            time.perf_counter() - started
        )
        self._requests.labels(request.method, path, str(response.status_code), APP_LABEL).inc()
        return response
