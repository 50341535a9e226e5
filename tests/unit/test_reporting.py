"""Tests for the CLI report."""

from decimal import Decimal

from book_aggregator.aggregation.merge import merge_books
from book_aggregator.aggregation.quote import QuoteCalculator
from book_aggregator.models.order_book import ExchangeBook, MarketQuote, PriceLevel
from book_aggregator.reporting import format_money, format_report


def D(value) -> Decimal:
    return Decimal(str(value))


def market_for(books, quantity, failures=None) -> MarketQuote:
    book = merge_books(books)
    buy, sell = QuoteCalculator().quote_both(book, quantity)
    return MarketQuote(pair="BTC-USD", book=book, buy=buy, sell=sell, failures=failures or {})


def exchange(exchange_id, bids=(), asks=()):
    return ExchangeBook(
        exchange_id=exchange_id,
        bids=tuple(PriceLevel(D(p), D(q)) for p, q in bids),
        asks=tuple(PriceLevel(D(p), D(q)) for p, q in asks),
        fetched_at=0.0,
    )


def test_format_money():
    assert format_money(D("1234567.891")) == "$1,234,567.89"
    assert format_money(D(0)) == "$0.00"
    assert format_money(None) == "n/a"


def test_full_fill_report():
    market = market_for(
        [
            exchange("coinbase", bids=[(100, 2)], asks=[(101, 1)]),
            exchange("gemini", bids=[(100, 1)], asks=[(102, 10)]),
        ],
        D(4),
    )

    report = format_report(market)

    assert "Pair: BTC-USD" in report
    assert "Exchanges: coinbase, gemini" in report
    assert "Best bid: $100.00 x 3 [coinbase, gemini]" in report
    assert "Best ask: $101.00 x 1 [coinbase]" in report
    assert "Spread: $1.00" in report
    assert "To buy 4 BTC: $407.00" in report
    assert "avg price $101.75 | worst price $102.00 | levels 2" in report
    assert "partial fill: only 3 BTC available" in report
    assert "WARNING" not in report


def test_excluded_exchanges_listed():
    market = market_for(
        [exchange("coinbase", bids=[(100, 1)], asks=[(101, 1)])],
        D(1),
        failures={"gemini": "timeout: cancelled at 10.00s deadline"},
    )

    report = format_report(market)

    assert "Excluded: gemini (timeout: cancelled at 10.00s deadline)" in report


def test_crossed_book_warning():
    market = market_for(
        [
            exchange("a", bids=[(105, 1)]),
            exchange("b", asks=[(100, 1)]),
        ],
        D(1),
    )

    assert "WARNING: book is crossed" in format_report(market)


def test_empty_side_reported():
    market = market_for([exchange("a", bids=[(100, 1)])], D(1))

    report = format_report(market)

    assert "Best ask: n/a (side empty)" in report
    assert "Spread" not in report
    assert "To buy 1 BTC: no liquidity" in report
