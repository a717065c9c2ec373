"""Shared pytest fixtures for fx-proxy."""

import pytest
from datetime import UTC, date, datetime

from fx_proxy.core.config import (
    CacheConfig,
    FeedConfig,
    FxProxyConfig,
    StorageConfig,
)
from fx_proxy.core.models import FeedResponse, RateSnapshot, StorageBackend
from fx_proxy.ingestion.store import SqliteStore

FEED_URL = "https://feed.example.com/v1/latest"


@pytest.fixture
def feed_config() -> FeedConfig:
    return FeedConfig(
        base_currency="USD",
        symbols=["EUR", "GHS", "NGN"],
        feed_url=FEED_URL,
        daily_call_budget=3,
        cache_ttl_seconds=60,
        max_retries=3,
        request_timeout=5,
        rate_limit=100,
    )


@pytest.fixture
def fx_config(feed_config: FeedConfig) -> FxProxyConfig:
    return FxProxyConfig(
        feed=feed_config,
        storage=StorageConfig(backend=StorageBackend.SQLITE, sqlite_path=":memory:"),
        cache=CacheConfig(max_entries=16),
    )


@pytest.fixture
async def store():
    """An in-memory SqliteStore."""
    s = SqliteStore(StorageConfig(backend=StorageBackend.SQLITE, sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def make_snapshot():
    """Factory for RateSnapshot with overridable defaults."""

    def _make(**overrides) -> RateSnapshot:
        defaults = dict(
            base="USD",
            rate_date=date(2024, 4, 1),
            rates={"EUR": 0.92, "GHS": 15.4},
            source_timestamp=datetime(2024, 4, 1, 0, 0, tzinfo=UTC),
            fetched_at=datetime(2024, 4, 1, 0, 5, tzinfo=UTC),
        )
        defaults.update(overrides)
        return RateSnapshot(**defaults)

    return _make


@pytest.fixture
def sample_feed_response() -> FeedResponse:
    return FeedResponse.model_validate(
        {
            "asOf": "2024-04-01T00:00:00Z",
            "rates": {"EUR": 0.92, "GHS": 15.4, "JPY": 120},
        }
    )
