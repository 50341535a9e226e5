"""
Order book data structures.

All prices and quantities are Decimal. Sides are tuples so a published book
can never be modified in place:
- bids sorted descending (best bid first)
- asks sorted ascending (best ask first)
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class Side(Enum):
    """Order book side."""
    BID = "bid"
    ASK = "ask"

    @property
    def is_descending(self) -> bool:
        """Bids are best-first when sorted high to low."""
        return self is Side.BID


@dataclass(frozen=True, slots=True)
class PriceLevel:
    """Aggregate resting quantity at a single price."""

    price: Decimal
    quantity: Decimal

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Price level quantity must be positive, got {self.quantity}")

    @property
    def notional(self) -> Decimal:
        return self.price * self.quantity


OrderBookSide = tuple[PriceLevel, ...]

# Prices and quantities are bounded to 1e-100 .. 1e100 so products and sums
# stay inside the default decimal context
MAX_DECIMAL_EXPONENT = 100


def within_magnitude(value: Decimal) -> bool:
    """True when a finite value is zero or within the supported exponent range."""
    return not value or abs(value.adjusted()) <= MAX_DECIMAL_EXPONENT


def _total(levels: OrderBookSide) -> Decimal:
    return sum((level.quantity for level in levels), Decimal(0))


@dataclass(frozen=True)
class ExchangeBook:
    """Normalized snapshot from a single exchange."""

    exchange_id: str
    bids: OrderBookSide
    asks: OrderBookSide
    fetched_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        for side in Side:
            prices = [level.price for level in self.levels(side)]
            pairs = zip(prices, prices[1:])
            ordered = all(a > b for a, b in pairs) if side.is_descending else all(a < b for a, b in pairs)
            if not ordered:
                raise ValueError(
                    f"{self.exchange_id} {side.value}s must be strictly ordered best-first"
                )

    @property
    def best_bid(self) -> Optional[PriceLevel]:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        return self.asks[0] if self.asks else None

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks

    def levels(self, side: Side) -> OrderBookSide:
        return self.bids if side is Side.BID else self.asks

    def depth(self, side: Side) -> Decimal:
        """Total quantity resting on one side."""
        return _total(self.levels(side))


_EMPTY_SOURCES: Mapping[Decimal, frozenset[str]] = MappingProxyType({})


@dataclass(frozen=True)
class AggregatedBook:
    """
    Consolidated book across every exchange that answered in a cycle.

    Each price appears once per side with the summed quantity of all
    contributing exchanges. `bid_sources` / `ask_sources` record which
    exchanges rested quantity at each price.

    A crossed book (best bid >= best ask) is a legitimate artifact of merging
    snapshots taken at slightly different instants and is reported as-is.
    """

    bids: OrderBookSide
    asks: OrderBookSide
    contributing_exchanges: frozenset[str]
    as_of: float = field(default_factory=time.time)
    bid_sources: Mapping[Decimal, frozenset[str]] = field(
        default_factory=lambda: _EMPTY_SOURCES, compare=False
    )
    ask_sources: Mapping[Decimal, frozenset[str]] = field(
        default_factory=lambda: _EMPTY_SOURCES, compare=False
    )

    @property
    def best_bid(self) -> Optional[PriceLevel]:
        """Highest bid, or None when no exchange has bids."""
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        """Lowest ask, or None when no exchange has asks."""
        return self.asks[0] if self.asks else None

    @property
    def is_crossed(self) -> bool:
        best_bid, best_ask = self.best_bid, self.best_ask
        if best_bid is None or best_ask is None:
            return False
        return best_bid.price >= best_ask.price

    @property
    def spread(self) -> Optional[Decimal]:
        """Best ask minus best bid. Negative when the book is crossed."""
        best_bid, best_ask = self.best_bid, self.best_ask
        if best_bid is None or best_ask is None:
            return None
        return best_ask.price - best_bid.price

    @property
    def mid_price(self) -> Optional[Decimal]:
        best_bid, best_ask = self.best_bid, self.best_ask
        if best_bid is None or best_ask is None:
            return None
        return (best_bid.price + best_ask.price) / 2

    def levels(self, side: Side) -> OrderBookSide:
        return self.bids if side is Side.BID else self.asks

    def depth(self, side: Side) -> Decimal:
        return _total(self.levels(side))

    def sources_at(self, side: Side, price: Decimal) -> frozenset[str]:
        """Exchanges contributing quantity at `price` on `side`."""
        sources = self.bid_sources if side is Side.BID else self.ask_sources
        return sources.get(price, frozenset())

    def as_mapping(self, side: Side) -> dict[Decimal, Decimal]:
        """price -> quantity view of one side."""
        return {level.price: level.quantity for level in self.levels(side)}


@dataclass(frozen=True)
class QuoteResult:
    """
    Outcome of walking one side of the book for a target quantity.

    `side` is the side consumed: ASK to buy, BID to sell. A partial fill is a
    normal result; check `fully_filled`.
    """

    side: Side
    target_quantity: Decimal
    achievable_quantity: Decimal
    volume_weighted_price: Optional[Decimal]
    worst_price: Optional[Decimal]
    fully_filled: bool
    total_cost: Decimal = Decimal(0)
    levels_consumed: int = 0

    @property
    def shortfall(self) -> Decimal:
        return self.target_quantity - self.achievable_quantity


@dataclass(frozen=True)
class MarketQuote:
    """Answer to an inbound query: best prices plus a quote per direction."""

    pair: str
    book: AggregatedBook
    buy: QuoteResult
    sell: QuoteResult
    failures: Mapping[str, str] = field(default_factory=dict)

    @property
    def best_bid(self) -> Optional[PriceLevel]:
        return self.book.best_bid

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        return self.book.best_ask

    @property
    def is_degraded(self) -> bool:
        """True when at least one exchange was excluded from the cycle."""
        return bool(self.failures)
