"""
Order book merge.

Each exchange side is already sorted best-first, so the consolidated side is
a k-way heap merge that coalesces equal prices by summing quantity. Books
are merged in exchange_id order, so the result depends only on the set of
books and not on the order fetches completed in.
"""

import heapq
import time
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Iterator

from book_aggregator.models.order_book import (
    AggregatedBook,
    ExchangeBook,
    OrderBookSide,
    PriceLevel,
    Side,
)


def _tagged(levels: OrderBookSide, exchange_id: str) -> Iterator[tuple[PriceLevel, str]]:
    for level in levels:
        yield level, exchange_id


def merge_side(
    books: Iterable[ExchangeBook],
    side: Side,
) -> tuple[OrderBookSide, dict[Decimal, frozenset[str]]]:
    """
    Merge one side across books.

    Returns:
        (levels best-first with unique prices, price -> contributing exchanges)
    """
    streams = [_tagged(book.levels(side), book.exchange_id) for book in books]
    merged = heapq.merge(
        *streams,
        key=lambda item: item[0].price,
        reverse=side.is_descending,
    )

    levels: list[PriceLevel] = []
    sources: dict[Decimal, frozenset[str]] = {}
    current_price: Decimal | None = None
    current_quantity = Decimal(0)
    current_sources: set[str] = set()

    for level, exchange_id in merged:
        if level.price != current_price:
            if current_price is not None:
                levels.append(PriceLevel(current_price, current_quantity))
                sources[current_price] = frozenset(current_sources)
            current_price = level.price
            current_quantity = Decimal(0)
            current_sources = set()
        current_quantity += level.quantity
        current_sources.add(exchange_id)

    if current_price is not None:
        levels.append(PriceLevel(current_price, current_quantity))
        sources[current_price] = frozenset(current_sources)

    return tuple(levels), sources


def merge_books(
    books: Iterable[ExchangeBook],
    as_of: float | None = None,
) -> AggregatedBook:
    """
    Consolidate exchange books into one AggregatedBook.

    At each unique price the quantities of every contributing exchange are
    summed. A single book merges to an identical ladder.
    """
    ordered = sorted(books, key=lambda book: book.exchange_id)

    bids, bid_sources = merge_side(ordered, Side.BID)
    asks, ask_sources = merge_side(ordered, Side.ASK)

    return AggregatedBook(
        bids=bids,
        asks=asks,
        contributing_exchanges=frozenset(book.exchange_id for book in ordered),
        as_of=time.time() if as_of is None else as_of,
        bid_sources=MappingProxyType(bid_sources),
        ask_sources=MappingProxyType(ask_sources),
    )
