"""Projection of raw feed responses onto the configured symbol set."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from fx_proxy.core.models import FeedResponse, NormalizedRates


class RateNormalizer:
    """Keeps only the configured symbols from a feed response.

    Symbols the feed did not return are dropped, never zero-filled. An empty
    result is not an error; callers check `NormalizedRates.is_empty`.
    """

    def project(
        self, configured_symbols: Sequence[str], response: FeedResponse
    ) -> NormalizedRates:
        rate_date = date.fromisoformat(response.as_of[:10])
        rates: dict[str, float] = {}
        for symbol in configured_symbols:
            if symbol in response.rates:
                rates[symbol] = response.rates[symbol]
        return NormalizedRates(rate_date=rate_date, rates=rates)
