"""FastAPI dependency injection helpers.

Usage in a route::

    @router.get("/wallets/{address}")
    async def get_wallet(
        address: str,
        engine: Annotated[PaymentEngine, Depends(get_engine)],
    ) -> ...:
        ...
"""

from __future__ import annotations

from fastapi import Request

from stablecoin_pay.engine.client import PaymentEngine  # noqa: TC001
from stablecoin_pay.errors.definitions import ErrEngineNotReady


def get_engine(request: Request) -> PaymentEngine:
    """Retrieve the engine stored on ``app.state.engine`` during startup.

    Raises:
        PaymentError: 503 if the engine is not initialized.
    """
    engine: PaymentEngine | None = getattr(request.app.state, "engine", None)
    if engine is None or not engine.is_initialized:
        raise ErrEngineNotReady
    return engine
