"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, patch
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient

from transit_rt.config import FeedSourceSettings
from transit_rt.main import app
from transit_rt.services.ingest.worker import reset_orchestrator

HELSINKI = ZoneInfo("Europe/Helsinki")


@pytest.fixture
def helsinki() -> ZoneInfo:
    return HELSINKI


@pytest.fixture
def trip_update_source() -> FeedSourceSettings:
    return FeedSourceSettings(
        region="tampere",
        kind="trip_updates",
        decoder="gtfs_rt",
        url="http://feeds.test/tampere/trip-updates",
    )


@pytest.fixture
def alert_source() -> FeedSourceSettings:
    return FeedSourceSettings(
        region="tampere",
        kind="alerts",
        decoder="gtfs_rt",
        url="http://feeds.test/tampere/alerts",
    )


@pytest.fixture(autouse=True)
def _reset_orchestrator() -> Any:
    reset_orchestrator()
    yield
    reset_orchestrator()


@pytest.fixture
def mock_db_connection() -> Any:
    """Mock database connection check."""
    with patch("transit_rt.main.check_database_connection", new_callable=AsyncMock) as mock:
        mock.return_value = True
        yield mock


@pytest.fixture
async def client(mock_db_connection: Any) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    """Async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
