"""API test fixtures — app served by TestClient with an engine wired to fakes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from stablecoin_pay.api.app import create_app
from stablecoin_pay.engine.client import PaymentEngine

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def client(app_config, chain, endpoint) -> Iterator[TestClient]:
    """TestClient with the lifespan running (engine initialized)."""
    engine = PaymentEngine(app_config, chain=chain, sender=endpoint.sender())
    app = create_app(config=app_config, engine=engine)
    with TestClient(app) as test_client:
        yield test_client

