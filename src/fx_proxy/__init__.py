"""fx-proxy: budget-governed FX rate ingestion with a cached query layer."""

__version__ = "0.1.0"
