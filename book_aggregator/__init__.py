"""Multi-exchange order book aggregation and fill-price quoting."""

__version__ = "0.1.0"
