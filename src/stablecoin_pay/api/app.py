"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from starlette.responses import Response

from stablecoin_pay import __version__
from stablecoin_pay.api.dependencies import get_engine
from stablecoin_pay.api.middleware.cors import setup_cors
from stablecoin_pay.api.routes import api_router
from stablecoin_pay.config.settings import AppConfig
from stablecoin_pay.engine.client import PaymentEngine
from stablecoin_pay.errors.payment_errors import PaymentError
from stablecoin_pay.metrics.collector import EngineMetrics
from stablecoin_pay.metrics.middleware import PrometheusMiddleware

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle hooks.

    Uses a pre-built engine from ``app.state.engine`` when one was supplied
    to :func:`create_app`; otherwise builds one from the configuration.
    """
    engine: PaymentEngine | None = getattr(app.state, "engine", None)
    if engine is None:
        engine = PaymentEngine(app.state.config, metrics=app.state.metrics)
        app.state.engine = engine

    try:
        if not engine.is_initialized:
            await engine.initialize()
        logger.info("Payment engine started")
        yield
    finally:
        await engine.close()
        logger.info("Payment engine shut down")


def create_app(
    *,
    config: AppConfig | None = None,
    engine: PaymentEngine | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        config: Optional AppConfig. If *None*, a default config is created
            from environment variables.
        engine: Optional pre-built engine (tests inject fakes this way).
    """
    if config is None:
        config = engine.config if engine is not None else AppConfig()

    app = FastAPI(
        title="stablecoin-pay",
        version=__version__,
        description="Solana USDC payment reconciliation and webhook delivery",
        lifespan=_lifespan,
    )

    app.state.config = config
    metrics = engine.metrics if engine is not None else EngineMetrics()
    app.state.metrics = metrics
    if engine is not None:
        app.state.engine = engine

    # -- Middleware --
    setup_cors(app)
    if config.metrics.enabled:
        app.add_middleware(PrometheusMiddleware, registry=metrics.registry)

    # -- Error handler --
    @app.exception_handler(PaymentError)
    async def _payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    # -- Base routes --
    @app.get("/health", tags=["base"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/health/detailed", tags=["base"])
    async def health_detailed(request: Request) -> dict[str, Any]:
        """Database, Solana RPC, last sync and webhook queue status."""
        status = await get_engine(request).health_check()
        healthy = status["database"] == "ok" and status["solana_rpc"] == "ok"
        return {"status": "ok" if healthy else "degraded", "version": __version__, **status}

    @app.get("/metrics", tags=["base"], include_in_schema=False)
    async def metrics_endpoint() -> Response:
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(app.state.metrics.registry),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    app.include_router(api_router)

    return app
