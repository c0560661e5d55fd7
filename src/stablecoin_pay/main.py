"""Application entry point for the stablecoin-pay server."""

from __future__ import annotations

import os

import uvicorn

from stablecoin_pay.config.settings import AppConfig


def main() -> None:
    """Start the stablecoin-pay server."""
    config = AppConfig()
    reload = os.getenv("STABLEPAY_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "stablecoin_pay.api.app:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        reload=reload,
        log_level=config.server.log_level,
    )


if __name__ == "__main__":
    main()
