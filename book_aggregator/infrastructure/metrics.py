"""
Prometheus metrics for observability.

Exposes metrics on /metrics endpoint for Prometheus scraping.

Metrics Categories:
- Fetch: per-exchange outcomes, latency, rate-limit waits
- Aggregation: cycle outcomes, contributing exchanges, crossed books
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from book_aggregator.infrastructure.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Fetch Metrics
# =============================================================================

FETCHES_TOTAL = Counter(
    "book_aggregator_fetches_total",
    "Order book snapshot fetches",
    ["exchange", "outcome"],
)

FETCH_LATENCY = Histogram(
    "book_aggregator_fetch_latency_seconds",
    "Snapshot fetch latency including rate-limit wait",
    ["exchange"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

RATE_LIMIT_WAIT = Histogram(
    "book_aggregator_rate_limit_wait_seconds",
    "Time spent waiting for a rate-limit permit",
    ["exchange"],
    buckets=[0.0, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0],
)

# =============================================================================
# Aggregation Metrics
# =============================================================================

CYCLES_TOTAL = Counter(
    "book_aggregator_cycles_total",
    "Aggregation cycles",
    ["outcome"],
)

CONTRIBUTING_EXCHANGES = Gauge(
    "book_aggregator_contributing_exchanges",
    "Exchanges that contributed to the latest aggregated book",
)

CROSSED_BOOKS = Counter(
    "book_aggregator_crossed_books_total",
    "Aggregated books where best bid >= best ask",
)

MERGED_LEVELS = Gauge(
    "book_aggregator_merged_levels",
    "Price levels in the latest aggregated book",
    ["side"],
)


class MetricsCollector:
    """
    Facade over the module-level Prometheus metrics.

    Usage:
        metrics.record_fetch("coinbase", "success", latency_seconds=0.21)
        metrics.record_cycle("success", contributing=2)
    """

    def __init__(self):
        self._server_started = False

    def start_server(self, port: int = 9090) -> None:
        """Start the Prometheus HTTP server."""
        if self._server_started:
            return
        start_http_server(port)
        self._server_started = True
        logger.info("Metrics server started", port=port)

    def record_fetch(
        self,
        exchange: str,
        outcome: str,
        latency_seconds: float | None = None,
    ) -> None:
        FETCHES_TOTAL.labels(exchange=exchange, outcome=outcome).inc()
        if latency_seconds is not None:
            FETCH_LATENCY.labels(exchange=exchange).observe(latency_seconds)

    def record_rate_limit_wait(self, exchange: str, wait_seconds: float) -> None:
        RATE_LIMIT_WAIT.labels(exchange=exchange).observe(wait_seconds)

    def record_cycle(
        self,
        outcome: str,
        contributing: int = 0,
        bid_levels: int = 0,
        ask_levels: int = 0,
        crossed: bool = False,
    ) -> None:
        CYCLES_TOTAL.labels(outcome=outcome).inc()
        CONTRIBUTING_EXCHANGES.set(contributing)
        if outcome == "success":
            MERGED_LEVELS.labels(side="bid").set(bid_levels)
            MERGED_LEVELS.labels(side="ask").set(ask_levels)
        if crossed:
            CROSSED_BOOKS.inc()


metrics = MetricsCollector()
