"""FX rate ingestion: budget governor, feed client, normalizer, storage."""

from fx_proxy.ingestion.client import ResilientFetcher, decode_feed_response
from fx_proxy.ingestion.governor import CallBudgetGovernor
from fx_proxy.ingestion.normalizer import RateNormalizer
from fx_proxy.ingestion.pipeline import IngestionPipeline
from fx_proxy.ingestion.store import SqliteStore, TimeSeriesStore, create_store

__all__ = [
    "CallBudgetGovernor",
    "IngestionPipeline",
    "RateNormalizer",
    "ResilientFetcher",
    "SqliteStore",
    "TimeSeriesStore",
    "create_store",
    "decode_feed_response",
]
