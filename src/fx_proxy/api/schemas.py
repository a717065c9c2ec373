"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from fx_proxy.core.models import LatestRates, RatePoint


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None
    retryable: bool = False
    status: int | None = None


# -- Rates --


class RateEntryResponse(BaseModel):
    key: str
    value: float


class LatestResponse(BaseModel):
    """Latest rates for a base currency, in the requested symbol order."""

    model_config = ConfigDict(populate_by_name=True)

    base: str
    as_of: datetime = Field(alias="asOf")
    rates: list[RateEntryResponse]

    @classmethod
    def from_latest(cls, latest: LatestRates) -> LatestResponse:
        return cls(
            base=latest.base,
            as_of=latest.as_of,
            rates=[RateEntryResponse(key=r.key, value=r.value) for r in latest.rates],
        )


class RatePointResponse(BaseModel):
    """One day of a symbol's history."""

    date: str
    value: float

    @classmethod
    def from_point(cls, point: RatePoint) -> RatePointResponse:
        return cls(date=point.date, value=point.value)


# -- Health --


class HealthResponse(BaseModel):
    status: str
    version: str
    storage_ok: bool
    cache_entries: int
