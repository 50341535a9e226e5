"""
Exchange snapshot source.

One ExchangeSource per configured exchange. A fetch:
1. takes a permit from the exchange's own RateLimiter
2. GETs the order book endpoint over aiohttp
3. normalizes the body into an ExchangeBook

Any failure surfaces as a FetchError subclass; no partial book is ever
returned. The permit is spent once the request is issued, whatever its
outcome.
"""

import asyncio
import time
from typing import Any

import aiohttp

from book_aggregator.infrastructure.config import ExchangeConfig, HTTPConfig
from book_aggregator.infrastructure.logging import get_logger
from book_aggregator.infrastructure.metrics import metrics
from book_aggregator.ingestion.errors import (
    DecodeError,
    FetchError,
    FetchTimeoutError,
    TransportError,
)
from book_aggregator.ingestion.normalizers import BookNormalizer, get_normalizer
from book_aggregator.ingestion.rate_limiter import RateLimitConfig, RateLimiter
from book_aggregator.models.order_book import ExchangeBook

logger = get_logger(__name__)


class ExchangeSource:
    """
    Fetches and normalizes order book snapshots from a single exchange.

    Usage:
        source = ExchangeSource(exchange_config)
        try:
            book = await source.fetch(timeout=5.0)
        except FetchError as e:
            ...
        finally:
            await source.close()
    """

    def __init__(
        self,
        config: ExchangeConfig,
        http_config: HTTPConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        normalizer: BookNormalizer | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.config = config
        self.http_config = http_config or HTTPConfig()
        self.rate_limiter = rate_limiter or RateLimiter(
            RateLimitConfig(
                name=config.exchange_id,
                limit=config.rate_limit_requests,
                interval_seconds=config.rate_limit_interval_seconds,
            )
        )
        self.normalizer = normalizer or get_normalizer(config.format)

        self._session = session
        self._owns_session = session is None

        self._success_count = 0
        self._error_count = 0
        self._last_error: FetchError | None = None
        self._last_fetch_time: float | None = None

    @property
    def exchange_id(self) -> str:
        return self.config.exchange_id

    @property
    def url(self) -> str:
        return self.config.resolved_url

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.http_config.request_timeout_seconds),
                headers={"User-Agent": self.http_config.user_agent},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this source created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _request(self) -> bytes:
        """Issue the HTTP request and return the raw body."""
        session = await self._get_session()
        try:
            async with session.get(self.url) as resp:
                body = await resp.read()
                if resp.status >= 300:
                    raise TransportError(
                        self.exchange_id,
                        f"HTTP {resp.status}",
                        status=resp.status,
                    )
                return body
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(self.exchange_id, "HTTP request timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(self.exchange_id, f"{type(e).__name__}: {e}") from e

    async def _fetch(self) -> ExchangeBook:
        wait_seconds = await self.rate_limiter.acquire()
        if wait_seconds > 0:
            metrics.record_rate_limit_wait(self.exchange_id, wait_seconds)

        body = await self._request()
        book = self.normalizer.normalize(body, self.exchange_id, fetched_at=time.time())

        logger.debug(
            "Snapshot normalized",
            exchange=self.exchange_id,
            bids=len(book.bids),
            asks=len(book.asks),
        )
        return book

    async def fetch(self, timeout: float | None = None) -> ExchangeBook:
        """
        Fetch one normalized snapshot.

        Args:
            timeout: Seconds allowed for permit wait plus network round trip

        Raises:
            FetchTimeoutError: Timeout elapsed before a book was produced
            TransportError: Connection failure or non-success status
            DecodeError: Body could not be normalized
        """
        start = time.monotonic()
        try:
            book = await asyncio.wait_for(self._fetch(), timeout=timeout)
        except asyncio.TimeoutError:
            window = f"{timeout:.2f}s" if timeout is not None else "the request timeout"
            error: FetchError = FetchTimeoutError(self.exchange_id, f"no book within {window}")
            self._record_failure(error, time.monotonic() - start)
            raise error from None
        except FetchError as e:
            self._record_failure(e, time.monotonic() - start)
            raise

        latency = time.monotonic() - start
        self._success_count += 1
        self._last_fetch_time = time.time()
        metrics.record_fetch(self.exchange_id, "success", latency_seconds=latency)
        logger.debug(
            "Fetch succeeded",
            exchange=self.exchange_id,
            latency_ms=round(latency * 1000, 1),
        )
        return book

    def _record_failure(self, error: FetchError, latency: float) -> None:
        self._error_count += 1
        self._last_error = error
        metrics.record_fetch(self.exchange_id, error.kind, latency_seconds=latency)
        log = logger.warning if isinstance(error, DecodeError) else logger.info
        log(
            "Fetch failed",
            exchange=self.exchange_id,
            kind=error.kind,
            error=error.message,
            latency_ms=round(latency * 1000, 1),
        )

    def get_stats(self) -> dict[str, Any]:
        """Get source statistics."""
        return {
            "exchange": self.exchange_id,
            "success_count": self._success_count,
            "error_count": self._error_count,
            "last_error": self._last_error.reason if self._last_error else None,
            "last_fetch": self._last_fetch_time,
            "rate_limiter": self.rate_limiter.stats,
        }
