"""API-specific test fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient

from app.llm.gateway import get_gateway
from app.main import app


@pytest.fixture
async def client(engine, gateway_fake):
    """In-process client against the real app.

    The engine fixture installs the global session factory, so route
    handlers share the test database. The lifespan is not run. The LLM
    gateway is replaced by ``gateway_fake``.
    """
    app.dependency_overrides[get_gateway] = lambda: gateway_fake
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
