"""Tests for fx_proxy.query.service (QueryService)."""

from __future__ import annotations

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock

import pytest

from fx_proxy.core.config import ConfigProvider
from fx_proxy.core.exceptions import NoDataError, StorageError, ValidationError
from fx_proxy.core.models import RateEntry, RatePoint
from fx_proxy.query.cache import ResolverCache
from fx_proxy.query.service import QueryService

NOW = datetime(2024, 4, 3, 12, 0, tzinfo=UTC)


@pytest.fixture
def cache() -> ResolverCache:
    return ResolverCache(max_entries=16)


@pytest.fixture
def service(store, cache, fx_config) -> QueryService:
    return QueryService(store, cache, ConfigProvider.fixed(fx_config), clock=lambda: NOW)


class TestGetLatest:
    async def test_filters_to_requested_symbols(self, service, store, make_snapshot):
        await store.put(make_snapshot(rates={"EUR": 0.92, "GHS": 15.4}))
        latest = await service.get_latest("USD", ["EUR", "NGN"])
        assert latest.base == "USD"
        assert latest.rates == [RateEntry(key="EUR", value=0.92)]
        assert latest.as_of == datetime(2024, 4, 1, tzinfo=UTC)

    async def test_keeps_requested_order(self, service, store, make_snapshot):
        await store.put(make_snapshot(rates={"EUR": 0.92, "GHS": 15.4}))
        latest = await service.get_latest("USD", ["GHS", "EUR"])
        assert [r.key for r in latest.rates] == ["GHS", "EUR"]

    async def test_uses_most_recent_snapshot(self, service, store, make_snapshot):
        await store.put(make_snapshot(rate_date=date(2024, 4, 1), rates={"EUR": 0.90}))
        await store.put(make_snapshot(rate_date=date(2024, 4, 2), rates={"EUR": 0.91}))
        latest = await service.get_latest("USD", ["EUR"])
        assert latest.rates[0].value == 0.91

    async def test_no_data(self, service):
        with pytest.raises(NoDataError, match="No rates found for base USD"):
            await service.get_latest("USD", ["EUR"])

    async def test_empty_match_is_not_an_error(self, service, store, make_snapshot):
        await store.put(make_snapshot(rates={"EUR": 0.92}))
        latest = await service.get_latest("USD", ["XAU"])
        assert latest.rates == []

    async def test_normalizes_case(self, service, store, make_snapshot):
        await store.put(make_snapshot(rates={"EUR": 0.92}))
        latest = await service.get_latest("usd", ["eur"])
        assert latest.base == "USD"
        assert latest.rates[0].key == "EUR"

    @pytest.mark.parametrize(
        "base,symbols,path",
        [
            ("", ["EUR"], "base"),
            ("  ", ["EUR"], "base"),
            ("USD", [], "symbols"),
            ("USD", "EUR", "symbols"),
            ("USD", ["EUR", ""], "symbols.1"),
            (None, ["EUR"], "base"),
        ],
    )
    async def test_validation(self, base, symbols, path):
        store = AsyncMock()
        svc = QueryService(store, ResolverCache(), AsyncMock())
        with pytest.raises(ValidationError) as exc_info:
            await svc.get_latest(base, symbols)
        assert exc_info.value.context["path"] == path
        store.query_latest.assert_not_called()

    async def test_cached_within_ttl(self, fx_config, make_snapshot):
        store = AsyncMock()
        store.query_latest.return_value = make_snapshot()
        svc = QueryService(store, ResolverCache(), ConfigProvider.fixed(fx_config))
        first = await svc.get_latest("USD", ["EUR"])
        second = await svc.get_latest("USD", ["EUR"])
        assert first == second
        store.query_latest.assert_awaited_once()

    async def test_different_args_not_shared(self, fx_config, make_snapshot):
        store = AsyncMock()
        store.query_latest.return_value = make_snapshot()
        svc = QueryService(store, ResolverCache(), ConfigProvider.fixed(fx_config))
        await svc.get_latest("USD", ["EUR"])
        await svc.get_latest("USD", ["GHS"])
        assert store.query_latest.await_count == 2

    async def test_no_data_not_cached(self, fx_config, make_snapshot):
        store = AsyncMock()
        store.query_latest.side_effect = [None, make_snapshot()]
        svc = QueryService(store, ResolverCache(), ConfigProvider.fixed(fx_config))
        with pytest.raises(NoDataError):
            await svc.get_latest("USD", ["EUR"])
        assert (await svc.get_latest("USD", ["EUR"])).rates

    async def test_storage_error_propagates(self, fx_config):
        store = AsyncMock()
        store.query_latest.side_effect = StorageError("disk I/O error")
        svc = QueryService(store, ResolverCache(), ConfigProvider.fixed(fx_config))
        with pytest.raises(StorageError):
            await svc.get_latest("USD", ["EUR"])


class TestGetHistory:
    async def test_skips_days_without_symbol(self, service, store, make_snapshot):
        await store.put(make_snapshot(rate_date=date(2024, 4, 1), rates={"EUR": 0.92}))
        await store.put(make_snapshot(rate_date=date(2024, 4, 2), rates={"GHS": 15.4}))
        await store.put(make_snapshot(rate_date=date(2024, 4, 3), rates={"EUR": 0.93}))
        points = await service.get_history("USD", "EUR", 3)
        assert points == [
            RatePoint(date="2024-04-01", value=0.92),
            RatePoint(date="2024-04-03", value=0.93),
        ]

    async def test_window_is_trailing_days_inclusive(self, service, store, make_snapshot):
        for d in (1, 2, 3):
            await store.put(make_snapshot(rate_date=date(2024, 4, d), rates={"EUR": float(d)}))
        points = await service.get_history("USD", "EUR", 2)
        assert [p.date for p in points] == ["2024-04-02", "2024-04-03"]

    async def test_single_day(self, service, store, make_snapshot):
        await store.put(make_snapshot(rate_date=date(2024, 4, 3), rates={"EUR": 0.93}))
        points = await service.get_history("USD", "EUR", 1)
        assert points == [RatePoint(date="2024-04-03", value=0.93)]

    async def test_default_days(self, service, store, make_snapshot):
        await store.put(make_snapshot(rate_date=date(2024, 3, 5), rates={"EUR": 0.9}))
        await store.put(make_snapshot(rate_date=date(2024, 3, 4), rates={"EUR": 0.8}))
        points = await service.get_history("USD", "EUR", None)
        assert [p.date for p in points] == ["2024-03-05"]

    async def test_empty_history_is_not_an_error(self, service):
        assert await service.get_history("USD", "EUR", 30) == []

    @pytest.mark.parametrize("days", [0, -1, 366, True, 1.5, "7"])
    async def test_invalid_days(self, service, days):
        with pytest.raises(ValidationError) as exc_info:
            await service.get_history("USD", "EUR", days)
        assert exc_info.value.context["path"] == "days"

    async def test_max_days_allowed(self, service):
        assert await service.get_history("USD", "EUR", 365) == []

    async def test_blank_symbol(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.get_history("USD", " ", 7)
        assert exc_info.value.context["path"] == "symbol"

    async def test_resolve_history_explicit_today(self, service, store, make_snapshot):
        await store.put(make_snapshot(rate_date=date(2024, 1, 10), rates={"EUR": 0.9}))
        points = await service.resolve_history("USD", "EUR", 1, today=date(2024, 1, 10))
        assert points == [RatePoint(date="2024-01-10", value=0.9)]
