"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fx_proxy.api.deps import AppState, api_key_middleware
from fx_proxy.api.routes import router
from fx_proxy.core.config import ConfigProvider, FxProxyConfig, load_config
from fx_proxy.core.exceptions import (
    BudgetExhaustedError,
    ConfigError,
    FetchError,
    FxProxyError,
    NoDataError,
    StorageError,
    ValidationError,
)
from fx_proxy.ingestion.store import create_store
from fx_proxy.query.cache import ResolverCache
from fx_proxy.query.service import QueryService

logger = logging.getLogger(__name__)

_STATUS_MAP: dict[type[FxProxyError], int] = {
    ValidationError: 400,
    NoDataError: 404,
    BudgetExhaustedError: 429,
    FetchError: 502,
    ConfigError: 500,
    StorageError: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    store = await create_store(config.storage)
    provider = ConfigProvider.fixed(config)
    cache = ResolverCache(max_entries=config.cache.max_entries)

    app.state.app_state = AppState(
        config=config,
        config_provider=provider,
        store=store,
        cache=cache,
        query_service=QueryService(store, cache, provider),
    )

    yield

    await store.close()


def create_app(config: FxProxyConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import fx_proxy

    app = FastAPI(
        title="fx-proxy API",
        description="Cached FX rate queries over a budget-governed feed",
        version=fx_proxy.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    @app.exception_handler(FxProxyError)
    async def fx_proxy_exception_handler(request: Request, exc: FxProxyError):
        status = _STATUS_MAP.get(type(exc), 500)
        if status >= 500:
            logger.error("Resolver failed on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        path = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
        error = ValidationError(
            f"Invalid {path}: {first.get('msg', 'bad request')}",
            context={"path": path},
        )
        return JSONResponse(status_code=400, content=error.to_dict())

    return app
