"""
Ingestion module.

Contains:
- rate_limiter: per-exchange sliding-window limiter
- normalizers: exchange payload -> canonical ExchangeBook
- exchange_source: rate-limited aiohttp snapshot fetch
- errors: FetchError taxonomy
"""

from book_aggregator.ingestion.errors import (
    DecodeError,
    FetchError,
    FetchTimeoutError,
    TransportError,
)
from book_aggregator.ingestion.exchange_source import ExchangeSource
from book_aggregator.ingestion.normalizers import BookNormalizer, get_normalizer, normalize
from book_aggregator.ingestion.rate_limiter import RateLimitConfig, RateLimiter

__all__ = [
    "BookNormalizer",
    "DecodeError",
    "ExchangeSource",
    "FetchError",
    "FetchTimeoutError",
    "RateLimitConfig",
    "RateLimiter",
    "TransportError",
    "get_normalizer",
    "normalize",
]
