"""Global pytest fixtures for the task board notification service.

This module provides shared fixtures for testing including:
- A JSON document store over a per-test temporary directory
- Notification engine, broadcaster and agent registry instances
- An HTTP client bound to a freshly built application
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from taskboard.agents.registry import AgentRegistry
from taskboard.config import Settings
from taskboard.main import create_app
from taskboard.notifications.broadcast import NotificationBroadcaster
from taskboard.notifications.service import NotificationEngine
from taskboard.storage.json_store import JsonDocumentStore


class FakeClock:
    """Deterministic clock; each call advances by ``step``."""

    def __init__(
        self,
        start: datetime | None = None,
        step: timedelta = timedelta(seconds=1),
    ) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


# ===========================================
# STORAGE / ENGINE FIXTURES
# ===========================================


@pytest.fixture
def data_dir(tmp_path):
    """Per-test data directory."""
    return tmp_path / "data"


@pytest.fixture
def store(data_dir) -> JsonDocumentStore:
    return JsonDocumentStore(data_dir, lock_timeout=2.0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def broadcaster() -> NotificationBroadcaster:
    return NotificationBroadcaster(queue_size=10)


@pytest.fixture
def engine(store, broadcaster, clock) -> NotificationEngine:
    """Notification engine with a deterministic clock."""
    return NotificationEngine(store, broadcaster=broadcaster, clock=clock)


@pytest.fixture
def registry(clock) -> AgentRegistry:
    """Fresh registry per test."""
    return AgentRegistry(clock=clock)


# ===========================================
# HTTP CLIENT FIXTURES
# ===========================================


@pytest.fixture
def test_settings(data_dir) -> Settings:
    return Settings(
        data_dir=str(data_dir),
        lock_timeout_seconds=2.0,
        log_json=False,
    )


@pytest.fixture
def app(test_settings):
    """Application built over the per-test data directory."""
    return create_app(test_settings)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for route tests."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
