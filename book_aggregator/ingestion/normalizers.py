"""
Exchange payload normalizers.

Turn each exchange's order book JSON into the canonical ExchangeBook:
- prices and quantities parsed into Decimal from their string form
- duplicate prices collapsed, last value wins
- zero and negative quantities dropped
- bids sorted descending, asks ascending

Supported formats:
- coinbase: {"bids": [["price", "size", num_orders], ...], "asks": [...]}
- gemini:   {"bids": [{"price": "...", "amount": "...", "timestamp": "..."}], ...}
- binance:  {"lastUpdateId": n, "bids": [["price", "qty"], ...], "asks": [...]}
- kraken:   {"error": [], "result": {"XXBTZUSD": {"bids": [["price", "volume", ts]], ...}}}

Normalization is pure; the only clock read is the default for fetched_at.
"""

import json
import time
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from book_aggregator.ingestion.errors import DecodeError
from book_aggregator.models.order_book import (
    ExchangeBook,
    OrderBookSide,
    PriceLevel,
    Side,
    within_magnitude,
)

RawLevel = tuple[Any, Any]


def parse_decimal(value: Any, exchange_id: str, field_name: str) -> Decimal:
    """Parse a JSON number or numeric string into a finite Decimal."""
    if value is None or isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise DecodeError(exchange_id, f"{field_name} is not numeric: {value!r}")
    try:
        parsed = Decimal(value) if isinstance(value, (str, int)) else Decimal(str(value))
    except InvalidOperation:
        raise DecodeError(exchange_id, f"{field_name} is not numeric: {value!r}") from None
    if not parsed.is_finite():
        raise DecodeError(exchange_id, f"{field_name} is not finite: {value!r}")
    if not within_magnitude(parsed):
        raise DecodeError(exchange_id, f"{field_name} out of supported range")
    return parsed


def build_side(raw_levels: Iterable[RawLevel], side: Side, exchange_id: str) -> OrderBookSide:
    """Collapse, filter and sort raw (price, quantity) pairs into one side."""
    by_price: dict[Decimal, Decimal] = {}
    for raw_price, raw_quantity in raw_levels:
        price = parse_decimal(raw_price, exchange_id, "price")
        quantity = parse_decimal(raw_quantity, exchange_id, "quantity")
        if price <= 0:
            raise DecodeError(exchange_id, f"price must be positive: {raw_price!r}")
        by_price[price] = quantity

    levels = [
        PriceLevel(price=price, quantity=quantity)
        for price, quantity in by_price.items()
        if quantity > 0
    ]
    levels.sort(key=lambda level: level.price, reverse=side.is_descending)
    return tuple(levels)


def decode_payload(raw_payload: Any, exchange_id: str) -> dict[str, Any]:
    """Accept bytes, str or an already-decoded object; require a JSON object."""
    if isinstance(raw_payload, (bytes, bytearray, str)):
        # ValueError also covers oversized integer literals
        try:
            raw_payload = json.loads(raw_payload)
        except (ValueError, RecursionError) as e:
            raise DecodeError(exchange_id, f"invalid JSON: {e}") from e

    if not isinstance(raw_payload, dict):
        raise DecodeError(exchange_id, f"expected a JSON object, got {type(raw_payload).__name__}")
    return raw_payload


def require_list(payload: dict[str, Any], key: str, exchange_id: str) -> list[Any]:
    if key not in payload:
        raise DecodeError(exchange_id, f"missing {key!r}")
    value = payload[key]
    if not isinstance(value, list):
        raise DecodeError(exchange_id, f"{key!r} is not a list")
    return value


class BookNormalizer(ABC):
    """
    Base class for exchange-specific decoders.

    Subclasses only know how to pull raw (price, quantity) pairs out of their
    exchange's payload; sorting, collapsing and filtering are shared.
    """

    name: str = ""

    @abstractmethod
    def extract(
        self,
        payload: dict[str, Any],
        exchange_id: str,
    ) -> tuple[list[RawLevel], list[RawLevel]]:
        """Return raw (bids, asks) as (price, quantity) pairs."""

    def normalize(
        self,
        raw_payload: Any,
        exchange_id: str,
        fetched_at: float | None = None,
    ) -> ExchangeBook:
        payload = decode_payload(raw_payload, exchange_id)
        raw_bids, raw_asks = self.extract(payload, exchange_id)
        return ExchangeBook(
            exchange_id=exchange_id,
            bids=build_side(raw_bids, Side.BID, exchange_id),
            asks=build_side(raw_asks, Side.ASK, exchange_id),
            fetched_at=time.time() if fetched_at is None else fetched_at,
        )


class ArrayLevelNormalizer(BookNormalizer):
    """Levels encoded as ["price", "quantity", ...extra] arrays."""

    def _pairs(self, entries: list[Any], exchange_id: str) -> list[RawLevel]:
        pairs = []
        for entry in entries:
            if not isinstance(entry, (list, tuple)) or len(entry) < 2:
                raise DecodeError(exchange_id, f"malformed level: {entry!r}")
            pairs.append((entry[0], entry[1]))
        return pairs

    def extract(self, payload, exchange_id):
        return (
            self._pairs(require_list(payload, "bids", exchange_id), exchange_id),
            self._pairs(require_list(payload, "asks", exchange_id), exchange_id),
        )


class CoinbaseNormalizer(ArrayLevelNormalizer):
    """Coinbase Exchange level-2 book. Third element is the order count."""

    name = "coinbase"


class BinanceNormalizer(ArrayLevelNormalizer):
    """Binance /api/v3/depth."""

    name = "binance"


class GeminiNormalizer(BookNormalizer):
    """Gemini /v1/book. Levels are objects keyed price / amount."""

    name = "gemini"

    def _pairs(self, entries: list[Any], exchange_id: str) -> list[RawLevel]:
        pairs = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise DecodeError(exchange_id, f"malformed level: {entry!r}")
            if "price" not in entry or "amount" not in entry:
                raise DecodeError(exchange_id, f"level missing price/amount: {entry!r}")
            pairs.append((entry["price"], entry["amount"]))
        return pairs

    def extract(self, payload, exchange_id):
        return (
            self._pairs(require_list(payload, "bids", exchange_id), exchange_id),
            self._pairs(require_list(payload, "asks", exchange_id), exchange_id),
        )


class KrakenNormalizer(ArrayLevelNormalizer):
    """Kraken /0/public/Depth. The book is nested under result.<pair>."""

    name = "kraken"

    def extract(self, payload, exchange_id):
        errors = payload.get("error") or []
        if errors:
            raise DecodeError(exchange_id, f"exchange error: {', '.join(map(str, errors))}")

        result = payload.get("result")
        if not isinstance(result, dict) or len(result) != 1:
            raise DecodeError(exchange_id, "expected exactly one pair under 'result'")

        (book,) = result.values()
        if not isinstance(book, dict):
            raise DecodeError(exchange_id, "pair book is not an object")
        return super().extract(book, exchange_id)


NORMALIZERS: dict[str, BookNormalizer] = {
    normalizer.name: normalizer
    for normalizer in (
        CoinbaseNormalizer(),
        GeminiNormalizer(),
        BinanceNormalizer(),
        KrakenNormalizer(),
    )
}


def get_normalizer(fmt: str) -> BookNormalizer:
    """Look up the normalizer for a wire format."""
    try:
        return NORMALIZERS[fmt.lower()]
    except KeyError:
        raise ValueError(f"Unknown book format: {fmt!r}") from None


def normalize(
    raw_payload: Any,
    exchange_id: str,
    fmt: str | None = None,
    fetched_at: float | None = None,
) -> ExchangeBook:
    """
    Normalize one exchange payload.

    Args:
        raw_payload: Response body (bytes/str) or decoded JSON object
        exchange_id: Id recorded on the resulting book
        fmt: Wire format; defaults to exchange_id
        fetched_at: Snapshot timestamp; defaults to now

    Raises:
        DecodeError: Missing fields, non-numeric values or malformed structure
    """
    return get_normalizer(fmt or exchange_id).normalize(raw_payload, exchange_id, fetched_at)
