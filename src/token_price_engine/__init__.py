"""Token price engine - multi-source market data resolution with price alerts."""

__version__ = "0.1.0"
