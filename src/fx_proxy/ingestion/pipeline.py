"""Ingest flow: governor -> fetch -> normalize -> store."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from fx_proxy.core.config import ConfigProvider
from fx_proxy.core.exceptions import BudgetExhaustedError
from fx_proxy.core.models import IngestOutcome, IngestResult, RateSnapshot
from fx_proxy.ingestion.client import ResilientFetcher
from fx_proxy.ingestion.governor import CallBudgetGovernor, utc_date
from fx_proxy.ingestion.normalizer import RateNormalizer
from fx_proxy.ingestion.store import TimeSeriesStore

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """One scheduled ingestion: authorize, fetch, project, persist.

    Stateless between runs. The feed is never called before the governor has
    granted the call, and nothing is written when the feed returned none of
    the configured symbols. Writes are upserts, so a run that timed out
    halfway can simply be triggered again.
    """

    def __init__(
        self,
        config_provider: ConfigProvider,
        governor: CallBudgetGovernor,
        fetcher: ResilientFetcher,
        store: TimeSeriesStore,
        normalizer: RateNormalizer | None = None,
    ) -> None:
        self._config_provider = config_provider
        self._governor = governor
        self._fetcher = fetcher
        self._store = store
        self._normalizer = normalizer or RateNormalizer()

    async def run(self, now: datetime | None = None) -> IngestResult:
        """Execute one ingestion.

        Raises:
            BudgetExhaustedError: Budget spent and hard_stop_on_budget is set.
            FetchError: Feed unreachable after retries, or non-retryable status.
            ValidationError: Feed body has the wrong shape.
            StorageError: Counter or snapshot write failed.
        """
        now = now or datetime.now(UTC)
        try:
            return await self._run(now)
        except Exception:
            logger.exception("Failed to ingest rates")
            raise

    async def _run(self, now: datetime) -> IngestResult:
        config = await self._config_provider.load()
        feed = config.feed

        decision = await self._governor.authorize(feed.daily_call_budget, now=now)
        if not decision.accepted:
            logger.warning(
                "BUDGET_HIT: daily budget of %d external calls spent for %s",
                feed.daily_call_budget, utc_date(now).isoformat(),
            )
            if feed.hard_stop_on_budget:
                raise BudgetExhaustedError(
                    "Daily external API budget exhausted",
                    context={
                        "date": utc_date(now).isoformat(),
                        "budget": feed.daily_call_budget,
                    },
                )
            return IngestResult(
                outcome=IngestOutcome.BUDGET_EXHAUSTED, base=feed.base_currency
            )

        logger.info(
            "ExternalCalls=1 (call %d/%d authorized for %s)",
            decision.count, feed.daily_call_budget, utc_date(now).isoformat(),
        )
        response = await self._fetcher.fetch_rates(
            feed.feed_url, feed.base_currency, feed.symbols
        )
        normalized = self._normalizer.project(feed.symbols, response)

        if normalized.is_empty:
            logger.warning(
                "No rates returned for configured symbols %s", ",".join(feed.symbols)
            )
            return IngestResult(
                outcome=IngestOutcome.NO_USABLE_DATA,
                base=feed.base_currency,
                rate_date=normalized.rate_date,
                budget_count=decision.count,
            )

        retention = config.storage.retention_days
        snapshot = RateSnapshot(
            base=feed.base_currency,
            rate_date=normalized.rate_date,
            rates=normalized.rates,
            source_timestamp=response.observed_at,
            fetched_at=now,
            expiry=now + timedelta(days=retention) if retention else None,
        )
        await self._store.put(snapshot)

        logger.info(
            "Ingested FX rates for %s on %s (%d symbols)",
            snapshot.base, snapshot.rate_date.isoformat(), len(snapshot.rates),
        )
        return IngestResult(
            outcome=IngestOutcome.INGESTED,
            base=snapshot.base,
            rate_date=snapshot.rate_date,
            symbols=list(snapshot.rates),
            budget_count=decision.count,
        )
