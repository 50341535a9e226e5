"""
Data model for the aggregator.

Contains:
- order_book: price levels, per-exchange and aggregated books, quote results
"""

from book_aggregator.models.order_book import (
    AggregatedBook,
    ExchangeBook,
    MarketQuote,
    OrderBookSide,
    PriceLevel,
    QuoteResult,
    Side,
)

__all__ = [
    "AggregatedBook",
    "ExchangeBook",
    "MarketQuote",
    "OrderBookSide",
    "PriceLevel",
    "QuoteResult",
    "Side",
]
