"""Daily external-call budget enforcement."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime

from fx_proxy.core.models import BudgetDecision
from fx_proxy.ingestion.store import TimeSeriesStore

logger = logging.getLogger(__name__)


class CallBudgetGovernor:
    """Bounds how many external feed calls are authorized per UTC day.

    Holds no in-process state. Every decision is a single conditional
    increment against the store, so overlapping ingest triggers (in one
    process or many) can never be granted more than `budget` calls for the
    same date. Counters are keyed on the UTC calendar date.
    """

    def __init__(self, store: TimeSeriesStore) -> None:
        self._store = store

    async def try_consume(self, counter_date: date, budget: int) -> BudgetDecision:
        """Claim one call from the day's budget.

        Returns:
            BudgetDecision(accepted=True, count=n) when the call is authorized
            and the counter now reads n; BudgetDecision(accepted=False) when the
            budget for `counter_date` is already spent.

        Raises:
            StorageError: Any store failure other than the budget condition.
        """
        count = await self._store.increment_budget_counter(counter_date, budget)
        if count is None:
            logger.debug(
                "Budget denied for %s (budget=%d)", counter_date.isoformat(), budget
            )
            return BudgetDecision(accepted=False)
        logger.debug(
            "Budget granted for %s: %d/%d", counter_date.isoformat(), count, budget
        )
        return BudgetDecision(accepted=True, count=count)

    async def authorize(
        self, budget: int, now: datetime | None = None
    ) -> BudgetDecision:
        """try_consume() for the current UTC date."""
        now = now or datetime.now(UTC)
        return await self.try_consume(utc_date(now), budget)


def utc_date(moment: datetime) -> date:
    """Calendar date of `moment` in UTC. Naive datetimes are taken as UTC."""
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(UTC).date()
