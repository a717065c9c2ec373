"""FastAPI route definitions for the fx-proxy query API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

import fx_proxy
from fx_proxy.api.deps import AppState, get_app_state, get_query_service
from fx_proxy.api.schemas import (
    ErrorResponse,
    HealthResponse,
    LatestResponse,
    RatePointResponse,
)
from fx_proxy.query.service import QueryService

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid arguments"},
    500: {"model": ErrorResponse, "description": "Storage or configuration failure"},
}


def _split_symbols(raw: list[str]) -> list[str]:
    """Accept both ?symbols=EUR,GBP and ?symbols=EUR&symbols=GBP."""
    return [part.strip() for item in raw for part in item.split(",") if part.strip()]


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(state: AppState = Depends(get_app_state)):
    """Liveness plus storage reachability."""
    storage_ok = await state.store.health_check()
    return HealthResponse(
        status="ok" if storage_ok else "degraded",
        version=fx_proxy.__version__,
        storage_ok=storage_ok,
        cache_entries=len(state.cache),
    )


# -- Rates --


@router.get(
    "/latest",
    response_model=LatestResponse,
    responses={**_ERRORS, 404: {"model": ErrorResponse, "description": "No data for base"}},
)
async def get_latest(
    base: str = Query("", description="Base currency, e.g. USD"),
    symbols: list[str] = Query([], description="Symbols, comma-separated or repeated"),
    service: QueryService = Depends(get_query_service),
):
    """Latest stored rates for a base currency."""
    latest = await service.get_latest(base, _split_symbols(symbols))
    return LatestResponse.from_latest(latest)


@router.get("/history", response_model=list[RatePointResponse], responses=_ERRORS)
async def get_history(
    base: str = Query("", description="Base currency, e.g. USD"),
    symbol: str = Query("", description="Quote symbol, e.g. EUR"),
    days: int = Query(30, description="Trailing UTC days, 1-365"),
    service: QueryService = Depends(get_query_service),
):
    """Daily values for one symbol, oldest first. Days without data are omitted."""
    points = await service.get_history(base, symbol, days)
    return [RatePointResponse.from_point(p) for p in points]
