"""Integration test fixtures: real SQLite file, feed mocked with respx."""

from __future__ import annotations

from pathlib import Path

import pytest

from fx_proxy.core.config import (
    APIConfig,
    FeedConfig,
    FxProxyConfig,
    StorageConfig,
)
from fx_proxy.core.models import StorageBackend
from fx_proxy.ingestion.store import SqliteStore

FEED_URL = "https://feed.example.com/v1/latest"


@pytest.fixture
def integration_config(tmp_path: Path) -> FxProxyConfig:
    """Config for integration tests: two symbols, budget of two calls a day."""
    return FxProxyConfig(
        feed=FeedConfig(
            base_currency="USD",
            symbols=["EUR", "GHS"],
            feed_url=FEED_URL,
            daily_call_budget=2,
            max_retries=2,
            rate_limit=50,
        ),
        storage=StorageConfig(
            backend=StorageBackend.SQLITE,
            sqlite_path=str(tmp_path / "integration.db"),
        ),
        api=APIConfig(),
    )


@pytest.fixture
async def integration_store(integration_config: FxProxyConfig) -> SqliteStore:
    """An initialized SqliteStore on the integration config's database file."""
    store = SqliteStore(integration_config.storage)
    await store.initialize()
    yield store
    await store.close()
