"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

# --- Type Aliases ---

CurrencyCode = str
Symbol = str

# Strict finite numbers: bools, numeric strings, NaN and infinities are not rates.
RateValue = Annotated[float, Field(strict=True, allow_inf_nan=False)]

# --- Key Scheme ---

RATES_PARTITION_PREFIX = "RATES#"
BUDGET_PARTITION = "BUDGET#DAILY"
DATE_SORT_PREFIX = "DATE#"


def rates_partition_key(base: CurrencyCode) -> str:
    return f"{RATES_PARTITION_PREFIX}{base.strip().upper()}"


def date_sort_key(day: date) -> str:
    return f"{DATE_SORT_PREFIX}{day.isoformat()}"


# --- Enumerations ---


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


class IngestOutcome(StrEnum):
    """How a single ingestion run ended."""

    INGESTED = "ingested"
    BUDGET_EXHAUSTED = "budget_exhausted"
    NO_USABLE_DATA = "no_usable_data"


# --- Stored Records ---


class RateSnapshot(BaseModel):
    """One day's rate map for a base currency. Unique per (base, rate_date)."""

    model_config = ConfigDict(frozen=True)

    base: CurrencyCode
    rate_date: date
    rates: dict[Symbol, RateValue]
    source_timestamp: datetime
    fetched_at: datetime
    expiry: datetime | None = None

    @field_validator("base")
    @classmethod
    def base_non_empty(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("base currency cannot be empty")
        return v

    @property
    def partition_key(self) -> str:
        return rates_partition_key(self.base)

    @property
    def sort_key(self) -> str:
        return date_sort_key(self.rate_date)


class DailyBudgetCounter(BaseModel):
    """External-call counter for one UTC calendar date."""

    model_config = ConfigDict(frozen=True)

    counter_date: date
    count: int

    @field_validator("count")
    @classmethod
    def count_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("count cannot be negative")
        return v


class BudgetDecision(BaseModel):
    """Outcome of a conditional budget increment.

    `count` is the counter value after an accepted increment, None on denial.
    """

    model_config = ConfigDict(frozen=True)

    accepted: bool
    count: int | None = None

    def __bool__(self) -> bool:
        return self.accepted


# --- Feed Payload ---


class FeedResponse(BaseModel):
    """Body returned by the external feed: {asOf, rates}."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    as_of: StrictStr = Field(alias="asOf")
    rates: dict[Symbol, RateValue]

    @field_validator("as_of")
    @classmethod
    def as_of_is_iso_timestamp(cls, v: str) -> str:
        if len(v) < 11 or v[10] != "T":
            raise ValueError("asOf must be an ISO-8601 timestamp with a time part")
        try:
            datetime.fromisoformat(v)
        except ValueError as e:
            raise ValueError(f"asOf is not a valid ISO-8601 timestamp: {v!r}") from e
        return v

    @property
    def observed_at(self) -> datetime:
        return datetime.fromisoformat(self.as_of)


class DecodeResult(BaseModel):
    """Tagged result of decoding a feed payload.

    Either `value` is set (ok=True) or `path`/`expected`/`message` describe
    the first structural problem found.
    """

    model_config = ConfigDict(frozen=True)

    ok: bool
    value: FeedResponse | None = None
    path: str | None = None
    expected: str | None = None
    message: str | None = None


class NormalizedRates(BaseModel):
    """Feed rates projected onto the configured symbol set."""

    model_config = ConfigDict(frozen=True)

    rate_date: date
    rates: dict[Symbol, RateValue]

    @property
    def is_empty(self) -> bool:
        return not self.rates


# --- Query DTOs ---


class RateEntry(BaseModel):
    """A single symbol/rate pair in a latest-rates response."""

    model_config = ConfigDict(frozen=True)

    key: Symbol
    value: float


class LatestRates(BaseModel):
    """Latest snapshot for a base, filtered to the requested symbols."""

    model_config = ConfigDict(frozen=True)

    base: CurrencyCode
    as_of: datetime
    rates: list[RateEntry]


class RatePoint(BaseModel):
    """One day's value of a symbol in a history response."""

    model_config = ConfigDict(frozen=True)

    date: str
    value: float


# --- Pipeline Results ---


class IngestResult(BaseModel):
    """Summary of one ingestion run."""

    model_config = ConfigDict(frozen=True)

    outcome: IngestOutcome
    base: CurrencyCode
    rate_date: date | None = None
    symbols: list[Symbol] = []
    budget_count: int | None = None
