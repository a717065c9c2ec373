"""Custom exception hierarchy for fx-proxy."""

from typing import Any


class FxProxyError(Exception):
    """Base exception for all fx-proxy errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    `retryable` tells a caller whether repeating the same request later can
    succeed without any change on their side.
    """

    retryable: bool = False

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def status(self) -> int | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serializable envelope: kind, message, retryability, optional status."""
        return {
            "error": self.kind,
            "detail": str(self),
            "retryable": self.retryable,
            "status": self.status,
        }


class ConfigError(FxProxyError):
    """Invalid or missing configuration.

    Raised by load_config() and ConfigProvider.load(). Should be treated as fatal.

    Context keys:
        field: str, the config field that failed validation
        value: Any, the invalid value
    """


class ValidationError(FxProxyError):
    """Malformed caller arguments or a malformed feed payload.

    Policy: never retried. Surfaced to the caller as a 4xx-equivalent.

    Context keys:
        path: str, field path that failed ("rates.EUR", "days", ...)
        expected: str, the shape that was expected
    """


class FetchError(FxProxyError):
    """Transport or HTTP status failure talking to the external feed.

    Policy: retried with backoff by ResilientFetcher when `retryable`;
    raised verbatim once the retry budget is spent.

    Context keys:
        url: str, the URL that was being fetched
        attempts: int, how many attempts were made
    """

    def __init__(
        self,
        message: str,
        retryable: bool,
        status: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.retryable = retryable
        self._status = status

    @property
    def status(self) -> int | None:
        return self._status


class StorageError(FxProxyError):
    """Durable-store operation failed (anything but a conditional-check miss).

    Policy: raise immediately, never swallowed.

    Context keys:
        operation: str, "put", "query", "increment", "migrate", etc.
        table: str, the table involved
    """


class NoDataError(FxProxyError):
    """No snapshot exists for the requested base currency.

    Distinct from an empty-but-valid result set.

    Context keys:
        base: str, the base currency that was queried
    """


class BudgetExhaustedError(FxProxyError):
    """Daily external-call budget exhausted while hard-stop is enabled.

    A denied budget is a normal outcome; this is only raised when the
    configuration escalates that outcome to a fatal failure.

    Context keys:
        date: str, the UTC calendar date of the counter
        budget: int, the configured daily budget
    """
