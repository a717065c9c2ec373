"""Query flow: cache -> store -> shaped response."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime, timedelta

from fx_proxy.core.config import ConfigProvider
from fx_proxy.core.exceptions import NoDataError, ValidationError
from fx_proxy.core.models import LatestRates, RateEntry, RatePoint
from fx_proxy.ingestion.governor import utc_date
from fx_proxy.ingestion.store import TimeSeriesStore
from fx_proxy.query.cache import ResolverCache, make_cache_key

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_DAYS = 30
MAX_HISTORY_DAYS = 365


def _utc_now() -> datetime:
    return datetime.now(UTC)


class QueryService:
    """Read side consumed by the gateway: getLatest and getHistory.

    Arguments are validated before the cache or store is touched. Results are
    cached per argument set for `cache_ttl_seconds` from the runtime config.
    Reads never wait on ingestion; they see whatever snapshot is committed.
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        cache: ResolverCache,
        config_provider: ConfigProvider,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._cache = cache
        self._config_provider = config_provider
        self._clock = clock

    async def _ttl(self) -> int:
        config = await self._config_provider.load()
        return config.feed.cache_ttl_seconds

    # --- Public surface ---

    async def get_latest(self, base: str, symbols: Sequence[str]) -> LatestRates:
        """Latest rates for `base`, restricted to `symbols` in the given order.

        Raises:
            ValidationError: Empty base, or empty/blank symbol list.
            NoDataError: No snapshot has ever been stored for `base`.
        """
        base = _validate_base(base)
        symbols = _validate_symbols(symbols)
        key = make_cache_key("getLatest", {"base": base, "symbols": symbols})
        return await self._cache.get_or_load(
            key, lambda: self.resolve_latest(base, symbols), await self._ttl()
        )

    async def get_history(
        self, base: str, symbol: str, days: int | None = DEFAULT_HISTORY_DAYS
    ) -> list[RatePoint]:
        """Daily values of `symbol` over the last `days` UTC days, oldest first.

        Raises:
            ValidationError: Empty base/symbol, or days outside [1, 365].
        """
        base = _validate_base(base)
        symbol = _validate_symbol(symbol, "symbol")
        days = _validate_days(days)
        key = make_cache_key(
            "getHistory", {"base": base, "symbol": symbol, "days": days}
        )
        return await self._cache.get_or_load(
            key, lambda: self.resolve_history(base, symbol, days), await self._ttl()
        )

    # --- Resolvers (uncached) ---

    async def resolve_latest(self, base: str, symbols: Sequence[str]) -> LatestRates:
        snapshot = await self._store.query_latest(base)
        if snapshot is None:
            raise NoDataError(f"No rates found for base {base}", context={"base": base})

        rates = [
            RateEntry(key=symbol, value=snapshot.rates[symbol])
            for symbol in symbols
            if symbol in snapshot.rates
        ]
        return LatestRates(base=base, as_of=snapshot.source_timestamp, rates=rates)

    async def resolve_history(
        self, base: str, symbol: str, days: int, today: date | None = None
    ) -> list[RatePoint]:
        end = today or utc_date(self._clock())
        start = end - timedelta(days=days - 1)
        snapshots = await self._store.query_range(base, start, end)
        points = [
            RatePoint(date=s.rate_date.isoformat(), value=s.rates[symbol])
            for s in snapshots
            if symbol in s.rates
        ]
        logger.debug(
            "History %s/%s %s..%s: %d of %d days have data",
            base, symbol, start.isoformat(), end.isoformat(),
            len(points), len(snapshots),
        )
        return points


# --- Argument validation ---


def _validate_base(base: object) -> str:
    if not isinstance(base, str) or not base.strip():
        raise ValidationError(
            "base must be a non-empty string",
            context={"path": "base", "expected": "non-empty string"},
        )
    return base.strip().upper()


def _validate_symbol(symbol: object, path: str) -> str:
    if not isinstance(symbol, str) or not symbol.strip():
        raise ValidationError(
            f"{path} must be a non-empty string",
            context={"path": path, "expected": "non-empty string"},
        )
    return symbol.strip().upper()


def _validate_symbols(symbols: object) -> list[str]:
    if isinstance(symbols, str) or not isinstance(symbols, Sequence) or not symbols:
        raise ValidationError(
            "symbols must be a non-empty list of strings",
            context={"path": "symbols", "expected": "non-empty list of strings"},
        )
    return [_validate_symbol(s, f"symbols.{i}") for i, s in enumerate(symbols)]


def _validate_days(days: object) -> int:
    if days is None:
        return DEFAULT_HISTORY_DAYS
    if isinstance(days, bool) or not isinstance(days, int):
        raise ValidationError(
            "days must be an integer",
            context={"path": "days", "expected": f"integer in [1, {MAX_HISTORY_DAYS}]"},
        )
    if not 1 <= days <= MAX_HISTORY_DAYS:
        raise ValidationError(
            f"days must be between 1 and {MAX_HISTORY_DAYS}, got {days}",
            context={"path": "days", "expected": f"integer in [1, {MAX_HISTORY_DAYS}]"},
        )
    return days
