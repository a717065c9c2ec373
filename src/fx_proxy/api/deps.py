"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse

from fx_proxy.core.config import ConfigProvider, FxProxyConfig
from fx_proxy.ingestion.store import SqliteStore
from fx_proxy.query.cache import ResolverCache
from fx_proxy.query.service import QueryService


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: FxProxyConfig
    config_provider: ConfigProvider
    store: SqliteStore
    cache: ResolverCache
    query_service: QueryService


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_query_service(request: Request) -> QueryService:
    """Dependency: retrieve the query service."""
    return request.app.state.app_state.query_service


EXEMPT_PATHS = {"/api/health"}


async def api_key_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: validate X-API-Key header when authentication is enabled."""
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    config = request.app.state.app_state.config
    if config.api.api_key:
        api_key = request.headers.get("X-API-Key")
        if api_key != config.api.api_key:
            return JSONResponse(
                status_code=401,
                content={
                    "error": "Unauthorized",
                    "detail": "Invalid or missing API key",
                    "retryable": False,
                    "status": None,
                },
            )
    return await call_next(request)
