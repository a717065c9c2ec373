"""Read side: resolver cache and query service."""

from fx_proxy.query.cache import ResolverCache, make_cache_key
from fx_proxy.query.service import QueryService

__all__ = [
    "QueryService",
    "ResolverCache",
    "make_cache_key",
]
