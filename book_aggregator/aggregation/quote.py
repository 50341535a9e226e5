"""
Fill-quantity quotes over an aggregated book.

Walking the asks answers "what would buying Q cost"; walking the bids
answers "what would selling Q fetch". Insufficient depth gives a partial
QuoteResult, not an error.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from book_aggregator.infrastructure.logging import get_logger
from book_aggregator.models.order_book import AggregatedBook, QuoteResult, Side, within_magnitude

logger = get_logger(__name__)

DEFAULT_TINY_LEVEL_THRESHOLD = Decimal("0.0001")


class InvalidQuantityError(ValueError):
    """Target quantity is not a finite positive number."""


def validate_quantity(value: Any) -> Decimal:
    """
    Coerce a quantity to Decimal and check it is finite, positive and
    within the supported magnitude.

    Strings are parsed exactly, so "0.1" stays 0.1.
    """
    if isinstance(value, bool):
        raise InvalidQuantityError(f"Not a valid quantity: {value!r}")
    try:
        quantity = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidQuantityError(f"Not a valid quantity: {value!r}") from None
    except ValueError:
        # int too long to render as a string
        raise InvalidQuantityError("Quantity out of supported range") from None

    if not quantity.is_finite():
        raise InvalidQuantityError("Quantity must be finite")
    if quantity <= 0:
        raise InvalidQuantityError(f"Quantity must be positive, got {quantity}")
    if not within_magnitude(quantity):
        raise InvalidQuantityError("Quantity out of supported range")
    return quantity


class QuoteCalculator:
    """
    Computes VWAP and worst price for filling a quantity on one side.

    Usage:
        calculator = QuoteCalculator()
        buy = calculator.quote(book, Side.ASK, Decimal("2.5"))
        if not buy.fully_filled:
            ...
    """

    def __init__(self, tiny_level_threshold: Decimal = DEFAULT_TINY_LEVEL_THRESHOLD):
        self.tiny_level_threshold = tiny_level_threshold

    def quote(self, book: AggregatedBook, side: Side, target_quantity: Any) -> QuoteResult:
        target = validate_quantity(target_quantity)
        levels = book.levels(side)

        self._log_depth(side, levels)

        remaining = target
        total_cost = Decimal(0)
        worst_price: Decimal | None = None
        consumed = 0

        for level in levels:
            if remaining <= 0:
                break
            take = min(remaining, level.quantity)
            total_cost += level.price * take
            remaining -= take
            worst_price = level.price
            consumed += 1

        filled = target - remaining
        vwap = total_cost / filled if filled > 0 else None

        if remaining > 0:
            logger.info(
                "Insufficient liquidity",
                side=side.value,
                requested=str(target),
                available=str(filled),
            )

        return QuoteResult(
            side=side,
            target_quantity=target,
            achievable_quantity=filled,
            volume_weighted_price=vwap,
            worst_price=worst_price,
            fully_filled=remaining == 0,
            total_cost=total_cost,
            levels_consumed=consumed,
        )

    def quote_both(
        self,
        book: AggregatedBook,
        target_quantity: Any,
    ) -> tuple[QuoteResult, QuoteResult]:
        """(buy, sell) quotes: buy walks the asks, sell walks the bids."""
        return (
            self.quote(book, Side.ASK, target_quantity),
            self.quote(book, Side.BID, target_quantity),
        )

    def _log_depth(self, side: Side, levels) -> None:
        total = sum((level.quantity for level in levels), Decimal(0))
        tiny = sum(1 for level in levels if level.quantity < self.tiny_level_threshold)
        logger.debug(
            "Side depth",
            side=side.value,
            levels=len(levels),
            total_quantity=str(total),
            tiny_levels=tiny,
        )


def quote(book: AggregatedBook, side: Side, target_quantity: Any) -> QuoteResult:
    """Quote with default settings."""
    return QuoteCalculator().quote(book, side, target_quantity)
