"""fx_proxy.core: Foundation types, config, and exceptions."""

from fx_proxy.core.config import (
    APIConfig,
    CacheConfig,
    ConfigProvider,
    FeedConfig,
    FxProxyConfig,
    StorageConfig,
    load_config,
)
from fx_proxy.core.exceptions import (
    BudgetExhaustedError,
    ConfigError,
    FetchError,
    FxProxyError,
    NoDataError,
    StorageError,
    ValidationError,
)
from fx_proxy.core.models import (
    BudgetDecision,
    CurrencyCode,
    DailyBudgetCounter,
    DecodeResult,
    FeedResponse,
    IngestOutcome,
    IngestResult,
    LatestRates,
    NormalizedRates,
    RateEntry,
    RatePoint,
    RateSnapshot,
    StorageBackend,
    Symbol,
)

__all__ = [
    # Type aliases
    "CurrencyCode",
    "Symbol",
    # Enums
    "StorageBackend",
    "IngestOutcome",
    # Stored records
    "RateSnapshot",
    "DailyBudgetCounter",
    "BudgetDecision",
    # Feed payload
    "FeedResponse",
    "DecodeResult",
    "NormalizedRates",
    # Query DTOs
    "RateEntry",
    "LatestRates",
    "RatePoint",
    "IngestResult",
    # Config
    "FxProxyConfig",
    "FeedConfig",
    "StorageConfig",
    "CacheConfig",
    "APIConfig",
    "ConfigProvider",
    "load_config",
    # Exceptions
    "FxProxyError",
    "ConfigError",
    "ValidationError",
    "FetchError",
    "StorageError",
    "NoDataError",
    "BudgetExhaustedError",
]
