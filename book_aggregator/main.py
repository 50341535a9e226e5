"""
Order Book Aggregator - Main Entry Point

Usage:
    python -m book_aggregator.main --qty 10
    python -m book_aggregator.main --qty 2.5 --config config/default.yaml --log-format json
"""

# Load .env FIRST so endpoint overrides are visible to the config loader
from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import sys
from decimal import Decimal

from pydantic import ValidationError

from book_aggregator.aggregation.engine import AggregationEngine, AllSourcesFailedError
from book_aggregator.aggregation.quote import InvalidQuantityError, validate_quantity
from book_aggregator.infrastructure.config import ConfigError, load_config
from book_aggregator.infrastructure.logging import configure_logging, get_logger
from book_aggregator.infrastructure.metrics import metrics
from book_aggregator.reporting import format_report

EXIT_OK = 0
EXIT_ALL_SOURCES_FAILED = 1
EXIT_USAGE = 2


def parse_quantity(value: str) -> Decimal:
    """argparse type: exact Decimal, finite and positive."""
    try:
        return validate_quantity(value)
    except InvalidQuantityError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="book-aggregator",
        description="Consolidate exchange order books and price a fill quantity",
    )
    parser.add_argument(
        "-q", "--qty",
        type=parse_quantity,
        default=None,
        help="Quantity of the base asset to price (default: aggregation.default_quantity)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text", "clean"],
        default=None,
        help="Override the configured log format",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    """Async entry point. Returns the process exit code."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ConfigError, ValidationError) as e:
        print(f"ERROR: invalid configuration: {e}", file=sys.stderr)
        return EXIT_USAGE

    configure_logging(
        log_level="DEBUG" if args.verbose else config.observability.log_level,
        log_format=args.log_format or config.observability.log_format,
    )
    logger = get_logger(__name__)

    quantity = args.qty if args.qty is not None else config.aggregation.default_quantity

    logger.info(
        "Order book aggregator starting",
        pair=config.aggregation.pair,
        exchanges=[exchange.exchange_id for exchange in config.enabled_exchanges],
        quantity=str(quantity),
        config_file=args.config,
    )

    if config.observability.metrics_port > 0:
        metrics.start_server(port=config.observability.metrics_port)

    async with AggregationEngine.from_config(config) as engine:
        try:
            market = await engine.quote(quantity)
        except AllSourcesFailedError as e:
            logger.error("Aggregation failed", error=str(e))
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_ALL_SOURCES_FAILED

    print(format_report(market))
    return EXIT_OK


def main() -> None:
    """Synchronous entry point."""
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()
