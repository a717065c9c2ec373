"""Resilient async HTTP client for the external FX feed."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Sequence
from typing import Any

import httpx
from aiolimiter import AsyncLimiter
from pydantic import ValidationError as PydanticValidationError

from fx_proxy.core.config import FeedConfig
from fx_proxy.core.exceptions import FetchError, ValidationError
from fx_proxy.core.models import DecodeResult, FeedResponse

logger = logging.getLogger(__name__)

# Retry configuration
_BASE_DELAY = 0.2

_EXPECTED_SHAPES: dict[str, str] = {
    "asOf": "ISO-8601 timestamp string",
    "rates": "mapping of symbol to number",
}


def is_retryable_status(status_code: int) -> bool:
    """429 and every 5xx are worth another attempt; other statuses are final."""
    return status_code == 429 or status_code >= 500


def decode_feed_response(payload: Any) -> DecodeResult:
    """Decode a parsed JSON body into a FeedResponse without raising.

    On failure the result names the first offending field path
    (e.g. ``rates.EUR``) and the shape that was expected there.
    """
    try:
        value = FeedResponse.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        loc = [str(part) for part in first["loc"]]
        path = ".".join(loc) if loc else "$"
        expected = _EXPECTED_SHAPES.get(loc[0]) if loc else None
        return DecodeResult(
            ok=False,
            path=path,
            expected=expected or "object with asOf and rates",
            message=first["msg"],
        )
    return DecodeResult(ok=True, value=value)


class ResilientFetcher:
    """Async feed client with bounded exponential backoff and jitter.

    Retry policy:
        - HTTP 429 and 5xx: retryable.
        - Transport failures (connect errors, timeouts): retryable.
        - Any other non-2xx status: raised immediately, no retry.
        - Other request failures (redirect loops, undecodable bodies): raised
          immediately as a non-retryable FetchError.
        - Between attempts wait ``base_delay * 2**attempt + uniform(0, base_delay)``.
        - At most ``max_retries`` additional attempts; then the last error is
          raised as-is.

    Payload shape problems are ValidationError and are never retried.
    Use via ``async with ResilientFetcher(config) as fetcher:``.
    """

    def __init__(
        self,
        config: FeedConfig,
        *,
        base_delay: float = _BASE_DELAY,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._max_retries = config.max_retries
        self._base_delay = base_delay
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=1.0)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def __aenter__(self) -> ResilientFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this fetcher created it."""
        if self._owns_client:
            await self._client.aclose()

    # --- Feed Access ---

    async def fetch_rates(
        self, url: str, base: str, symbols: Sequence[str]
    ) -> FeedResponse:
        """GET ``<url>?base=<BASE>&symbols=<CSV>`` and decode the body.

        Raises:
            FetchError: Transport/status failure after the retry policy ran.
            ValidationError: Body is not {asOf: timestamp, rates: {symbol: number}}.
        """
        payload = await self.get(url, params={"base": base, "symbols": ",".join(symbols)})
        result = decode_feed_response(payload)
        if not result.ok:
            raise ValidationError(
                f"Invalid response from feed at {result.path}: {result.message}",
                context={"url": url, "path": result.path, "expected": result.expected},
            )
        return result.value

    async def get(self, url: str, params: dict[str, str] | None = None) -> Any:
        """GET `url` and return the parsed JSON body.

        Raises:
            FetchError: Non-retryable status, or retries exhausted.
            ValidationError: 2xx response whose body is not JSON.
        """
        last_error: FetchError | None = None

        for attempt in range(self._max_retries + 1):
            try:
                await self._limiter.acquire()
                response = await self._client.get(url, params=params)
            except httpx.TransportError as e:
                last_error = FetchError(
                    f"Transport error on {url}: {e}",
                    retryable=True,
                    context={"url": url, "attempts": attempt + 1, "error": str(e)},
                )
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise FetchError(
                    f"Request to {url} failed: {e}",
                    retryable=False,
                    context={"url": url, "attempts": attempt + 1, "error": str(e)},
                ) from e
            else:
                if response.is_success:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise ValidationError(
                            f"Response from {url} is not valid JSON",
                            context={"url": url, "path": "$", "expected": "JSON document"},
                        ) from e

                status = response.status_code
                last_error = FetchError(
                    f"HTTP {status} from {url}",
                    retryable=is_retryable_status(status),
                    status=status,
                    context={"url": url, "attempts": attempt + 1},
                )
                if not last_error.retryable:
                    raise last_error

            if attempt < self._max_retries:
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "%s, retrying in %.2fs (attempt %d/%d)",
                    last_error, delay, attempt + 1, self._max_retries,
                )
                await asyncio.sleep(delay)

        logger.error("Giving up on %s after %d attempts", url, self._max_retries + 1)
        raise last_error

    def _backoff_delay(self, attempt: int) -> float:
        return self._base_delay * 2**attempt + random.uniform(0, self._base_delay)
