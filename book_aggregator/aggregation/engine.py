"""
Aggregation engine.

One cycle:
1. fan out fetch() to every ExchangeSource as concurrent tasks
2. wait for all of them or the shared deadline, whichever comes first
3. cancel stragglers, drop failures, merge the books that arrived
4. publish the new AggregatedBook by replacing `latest`

Per-exchange failures only shrink the set of contributing exchanges. The
cycle fails as a whole only when no exchange produced a book.
"""

import asyncio
import itertools
import time
from decimal import Decimal
from typing import Any, Mapping, Sequence

from book_aggregator.aggregation.merge import merge_books
from book_aggregator.aggregation.quote import QuoteCalculator, validate_quantity
from book_aggregator.infrastructure.config import AppConfig
from book_aggregator.infrastructure.logging import LogContext, get_logger
from book_aggregator.infrastructure.metrics import metrics
from book_aggregator.ingestion.errors import FetchError, FetchTimeoutError
from book_aggregator.ingestion.exchange_source import ExchangeSource
from book_aggregator.models.order_book import (
    AggregatedBook,
    ExchangeBook,
    MarketQuote,
    Side,
)

logger = get_logger(__name__)

_cycle_ids = itertools.count(1)


class AggregationError(Exception):
    """An aggregation cycle produced no book."""


class AllSourcesFailedError(AggregationError):
    """Every configured exchange failed or timed out."""

    def __init__(self, failures: Mapping[str, Exception]):
        self.failures = dict(failures)
        detail = ", ".join(
            f"{exchange}: {_reason(error)}" for exchange, error in sorted(self.failures.items())
        )
        super().__init__(f"All sources failed ({detail})" if detail else "No sources configured")


def _reason(error: Exception) -> str:
    if isinstance(error, FetchError):
        return error.reason
    return f"{type(error).__name__}: {error}"


class AggregationEngine:
    """
    Concurrent fetch, merge and quote across exchanges.

    Usage:
        async with AggregationEngine.from_config(config) as engine:
            market = await engine.quote(Decimal("10"))
            print(market.best_bid, market.best_ask, market.buy.volume_weighted_price)
    """

    def __init__(
        self,
        sources: Sequence[ExchangeSource],
        deadline_seconds: float = 10.0,
        pair: str = "BTC-USD",
        calculator: QuoteCalculator | None = None,
    ):
        if deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be positive")
        ids = [source.exchange_id for source in sources]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate exchange ids: {ids}")

        self.sources = tuple(sources)
        self.deadline_seconds = deadline_seconds
        self.pair = pair
        self.calculator = calculator or QuoteCalculator()

        self.latest: AggregatedBook | None = None
        self.last_failures: dict[str, Exception] = {}

    @classmethod
    def from_config(cls, config: AppConfig) -> "AggregationEngine":
        """Build one ExchangeSource (with its own limiter) per enabled exchange."""
        sources = [
            ExchangeSource(exchange, http_config=config.http)
            for exchange in config.enabled_exchanges
        ]
        return cls(
            sources,
            deadline_seconds=config.aggregation.deadline_seconds,
            pair=config.aggregation.pair,
            calculator=QuoteCalculator(config.aggregation.tiny_level_threshold),
        )

    async def __aenter__(self) -> "AggregationEngine":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await asyncio.gather(*(source.close() for source in self.sources))

    async def _collect(self) -> tuple[list[ExchangeBook], dict[str, Exception]]:
        """Run every fetch under the shared deadline and sort out the results."""
        tasks = {
            asyncio.create_task(
                source.fetch(timeout=self.deadline_seconds),
                name=f"fetch-{source.exchange_id}",
            ): source.exchange_id
            for source in self.sources
        }

        books: list[ExchangeBook] = []
        failures: dict[str, Exception] = {}
        if not tasks:
            return books, failures

        try:
            done, pending = await asyncio.wait(tasks, timeout=self.deadline_seconds)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task, exchange_id in tasks.items():
            if task in pending:
                failures[exchange_id] = FetchTimeoutError(
                    exchange_id, f"cancelled at {self.deadline_seconds:.2f}s deadline"
                )
                continue

            error = task.exception()
            if error is None:
                books.append(task.result())
            elif isinstance(error, FetchError):
                failures[exchange_id] = error
            else:
                logger.error(
                    "Unexpected fetch error",
                    exchange=exchange_id,
                    error=f"{type(error).__name__}: {error}",
                )
                failures[exchange_id] = error

        return books, failures

    async def aggregate(self, quantity_hint: Decimal | None = None) -> AggregatedBook:
        """
        Run one aggregation cycle and publish its book.

        Args:
            quantity_hint: Target quantity; a warning is logged if a merged
                side is shallower than this

        Raises:
            AllSourcesFailedError: No exchange produced a book
        """
        with LogContext(cycle_id=next(_cycle_ids), pair=self.pair):
            started = time.monotonic()
            books, failures = await self._collect()
            self.last_failures = failures

            if not books:
                metrics.record_cycle("all_failed")
                logger.error(
                    "All sources failed",
                    failures={k: _reason(v) for k, v in failures.items()},
                )
                raise AllSourcesFailedError(failures)

            book = merge_books(books)

            if book.is_crossed:
                logger.warning(
                    "Crossed book",
                    best_bid=str(book.best_bid.price),
                    best_ask=str(book.best_ask.price),
                    bid_sources=sorted(book.sources_at(Side.BID, book.best_bid.price)),
                    ask_sources=sorted(book.sources_at(Side.ASK, book.best_ask.price)),
                )

            if quantity_hint is not None:
                for side in Side:
                    depth = book.depth(side)
                    if depth < quantity_hint:
                        logger.warning(
                            "Merged depth below requested quantity",
                            side=side.value,
                            depth=str(depth),
                            requested=str(quantity_hint),
                        )

            metrics.record_cycle(
                "success",
                contributing=len(book.contributing_exchanges),
                bid_levels=len(book.bids),
                ask_levels=len(book.asks),
                crossed=book.is_crossed,
            )
            logger.info(
                "Aggregation complete",
                contributing=sorted(book.contributing_exchanges),
                excluded=sorted(failures),
                bids=len(book.bids),
                asks=len(book.asks),
                elapsed_ms=round((time.monotonic() - started) * 1000, 1),
            )

            self.latest = book
            return book

    async def quote(self, quantity: Any) -> MarketQuote:
        """
        Aggregate now and quote `quantity` in both directions.

        The quantity is validated before any fetch is attempted.
        """
        target = validate_quantity(quantity)
        book = await self.aggregate(target)
        buy, sell = self.calculator.quote_both(book, target)
        return MarketQuote(
            pair=self.pair,
            book=book,
            buy=buy,
            sell=sell,
            failures={exchange: _reason(error) for exchange, error in self.last_failures.items()},
        )

    def get_stats(self) -> dict[str, Any]:
        return {source.exchange_id: source.get_stats() for source in self.sources}
