"""Pytest configuration and shared fixtures."""

import os
from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set testing mode BEFORE importing the app so the scheduler stays off
os.environ["WYGC_TESTING"] = "true"

from wygc.config import settings

settings.testing = True

from wygc.dispatcher import get_engine, get_opsgenie_client
from wygc.main import app
from wygc.services.escalation_engine import EscalationEngine

from tests.fakes import ScriptedAdapter, fast_channel, make_registry


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[EscalationEngine, None]:
    """Engine with a single tier-0 channel that always delivers."""
    registry = make_registry((fast_channel("pager", tier=0), ScriptedAdapter("pager")))
    engine = EscalationEngine(registry)
    yield engine
    await engine.shutdown()


@pytest_asyncio.fixture
async def client(engine) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client wired to the test engine."""
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_opsgenie_client] = lambda: None
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
