"""Human-readable report of a MarketQuote for the CLI."""

from decimal import Decimal

from book_aggregator.models.order_book import MarketQuote, PriceLevel, QuoteResult, Side


def format_money(value: Decimal | None) -> str:
    """$12,345.67 style, or n/a."""
    if value is None:
        return "n/a"
    return f"${value:,.2f}"


def _format_level(level: PriceLevel | None, sources: frozenset[str]) -> str:
    if level is None:
        return "n/a (side empty)"
    origin = f" [{', '.join(sorted(sources))}]" if sources else ""
    return f"{format_money(level.price)} x {level.quantity.normalize():f}{origin}"


def _format_quote(verb: str, quote: QuoteResult, base_asset: str) -> list[str]:
    target = f"{quote.target_quantity.normalize():f}"
    if quote.achievable_quantity == 0:
        return [f"To {verb} {target} {base_asset}: no liquidity"]

    lines = [
        f"To {verb} {target} {base_asset}: {format_money(quote.total_cost)}",
        f"  avg price {format_money(quote.volume_weighted_price)}"
        f" | worst price {format_money(quote.worst_price)}"
        f" | levels {quote.levels_consumed}",
    ]
    if not quote.fully_filled:
        lines.append(
            f"  partial fill: only {quote.achievable_quantity.normalize():f} {base_asset} available"
        )
    return lines


def format_report(market: MarketQuote) -> str:
    """Render best prices, contributing exchanges and both fill quotes."""
    book = market.book
    base_asset = market.pair.replace("/", "-").split("-")[0]

    lines = [
        f"Pair: {market.pair}",
        f"Exchanges: {', '.join(sorted(book.contributing_exchanges))}",
    ]
    for exchange, reason in sorted(market.failures.items()):
        lines.append(f"Excluded: {exchange} ({reason})")

    best_bid, best_ask = book.best_bid, book.best_ask
    lines.append(
        "Best bid: "
        + _format_level(best_bid, book.sources_at(Side.BID, best_bid.price) if best_bid else frozenset())
    )
    lines.append(
        "Best ask: "
        + _format_level(best_ask, book.sources_at(Side.ASK, best_ask.price) if best_ask else frozenset())
    )
    if book.spread is not None:
        lines.append(f"Spread: {format_money(book.spread)}")
    if book.is_crossed:
        lines.append("WARNING: book is crossed (best bid >= best ask across exchanges)")

    lines.append("-" * 32)
    lines.extend(_format_quote("buy", market.buy, base_asset))
    lines.extend(_format_quote("sell", market.sell, base_asset))
    return "\n".join(lines)
