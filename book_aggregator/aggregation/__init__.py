"""
Aggregation module.

Contains:
- merge: order-independent merge of exchange books
- quote: VWAP / worst-price fill quotes
- engine: concurrent fan-out, deadline handling and publication
"""

from book_aggregator.aggregation.engine import (
    AggregationEngine,
    AggregationError,
    AllSourcesFailedError,
)
from book_aggregator.aggregation.merge import merge_books, merge_side
from book_aggregator.aggregation.quote import (
    InvalidQuantityError,
    QuoteCalculator,
    quote,
    validate_quantity,
)

__all__ = [
    "AggregationEngine",
    "AggregationError",
    "AllSourcesFailedError",
    "InvalidQuantityError",
    "QuoteCalculator",
    "merge_books",
    "merge_side",
    "quote",
    "validate_quantity",
]
