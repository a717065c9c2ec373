"""Configuration loading, validation, and access."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from fx_proxy.core.exceptions import ConfigError
from fx_proxy.core.models import StorageBackend

logger = logging.getLogger(__name__)


class FeedConfig(BaseModel):
    """External FX feed access and ingestion policy."""

    model_config = ConfigDict(frozen=True)

    base_currency: str
    symbols: list[str]
    feed_url: str
    daily_call_budget: int
    cache_ttl_seconds: int = 60
    hard_stop_on_budget: bool = False
    request_timeout: int = 10
    max_retries: int = 3
    rate_limit: int = 5

    @field_validator("base_currency")
    @classmethod
    def base_non_empty(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("base_currency must be a non-empty string")
        return v

    @field_validator("symbols", mode="before")
    @classmethod
    def split_symbols(cls, v: object) -> object:
        """Accept "EUR,GBP" from env vars as well as YAML lists."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("symbols")
    @classmethod
    def symbols_non_empty(cls, v: list[str]) -> list[str]:
        cleaned = [s.strip().upper() for s in v]
        if not cleaned:
            raise ValueError("symbols must contain at least one symbol")
        if any(not s for s in cleaned):
            raise ValueError("symbols cannot contain empty strings")
        return cleaned

    @field_validator("feed_url")
    @classmethod
    def feed_url_is_http(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"feed_url must be an http(s) URL, got: {v!r}")
        return v

    @field_validator("daily_call_budget", "cache_ttl_seconds", "request_timeout", "rate_limit")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("max_retries")
    @classmethod
    def retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must be >= 0")
        return v


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/fx_proxy.db"
    retention_days: int | None = None
    budget_retention_days: int = 7

    @field_validator("retention_days")
    @classmethod
    def retention_positive(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("retention_days must be >= 1")
        return v


class CacheConfig(BaseModel):
    """Resolver cache sizing."""

    model_config = ConfigDict(frozen=True)

    max_entries: int = 512

    @field_validator("max_entries")
    @classmethod
    def max_entries_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_entries must be >= 1")
        return v


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str | None = None


class FxProxyConfig(BaseModel):
    """Root configuration for fx-proxy."""

    model_config = ConfigDict(frozen=True)

    feed: FeedConfig
    storage: StorageConfig = StorageConfig()
    cache: CacheConfig = CacheConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "FX_PROXY_",
) -> FxProxyConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (FX_PROXY_FEED__BASE_CURRENCY, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        FX_PROXY_FEED__DAILY_CALL_BUDGET=24  ->  feed.daily_call_budget = 24
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return FxProxyConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("FX_PROXY_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from FX_PROXY_CONFIG not found: {env_path}",
                context={"field": "FX_PROXY_CONFIG", "value": env_path},
            )
        return p

    default = Path("fx-proxy.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = dict(target.get(part) or {})
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


ConfigLoader = Callable[[], Awaitable[FxProxyConfig]]


class ConfigProvider:
    """Memoized, explicitly refreshable access to runtime configuration.

    Constructed once per process and passed by reference into the ingestion
    pipeline and the query service. By default the loaded value is kept until
    `invalidate()` or `refresh()` is called; with `max_age_seconds` set, a
    `load()` after that age reloads transparently.
    """

    def __init__(
        self,
        loader: ConfigLoader | None = None,
        *,
        config_path: str | None = None,
        max_age_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader or self._default_loader(config_path)
        self._max_age = max_age_seconds
        self._clock = clock
        self._cached: FxProxyConfig | None = None
        self._loaded_at: float | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def fixed(cls, config: FxProxyConfig) -> ConfigProvider:
        """Provider that always returns `config` (tests, embedded use)."""

        async def _constant() -> FxProxyConfig:
            return config

        provider = cls(_constant)
        provider._cached = config
        provider._loaded_at = provider._clock()
        return provider

    @staticmethod
    def _default_loader(config_path: str | None) -> ConfigLoader:
        async def _load() -> FxProxyConfig:
            return await asyncio.to_thread(load_config, config_path)

        return _load

    @property
    def cached(self) -> FxProxyConfig | None:
        return self._cached

    def _is_stale(self) -> bool:
        if self._cached is None or self._loaded_at is None:
            return True
        if self._max_age is None:
            return False
        return self._clock() - self._loaded_at >= self._max_age

    async def load(self) -> FxProxyConfig:
        """Return the memoized config, loading it on first use or when stale."""
        if not self._is_stale():
            return self._cached
        async with self._lock:
            if self._is_stale():
                await self._reload()
        return self._cached

    async def refresh(self) -> FxProxyConfig:
        """Force a reload regardless of age."""
        async with self._lock:
            await self._reload()
        return self._cached

    def invalidate(self) -> None:
        """Drop the memoized config; the next load() reloads."""
        self._cached = None
        self._loaded_at = None

    async def _reload(self) -> None:
        try:
            config = await self._loader()
        except ConfigError:
            raise
        except Exception as e:
            raise ConfigError(
                f"Failed to load configuration: {e}",
                context={"source": "ConfigProvider"},
            ) from e
        self._cached = config
        self._loaded_at = self._clock()
        logger.info(
            "Loaded configuration (base=%s, symbols=%d, budget=%d)",
            config.feed.base_currency,
            len(config.feed.symbols),
            config.feed.daily_call_budget,
        )
