"""
Price fetchers for multiple DEX and aggregator APIs.

This module provides a unified interface for fetching token prices from
Solana DEXes and price aggregators.

Usage:
    from comparator.src.fetchers import get_fetcher, get_available_fetchers

    # Get list of available fetchers
    available = get_available_fetchers()
    # ['birdeye', 'coingecko', 'dexscreener', 'jupiter', 'raydium']

    # Create a fetcher instance and fetch with an absolute deadline
    fetcher = get_fetcher("jupiter")
    result = await fetcher.fetch(ctx, deadline=time.monotonic() + 3.0)

    # For fetchers accepting API keys
    fetcher = get_fetcher("birdeye", api_key="your-api-key")
"""

# Import base classes and utilities
from .base import (
    FETCHER_REGISTRY,
    BaseFetcher,
    FetcherConfigError,
    FetcherError,
    FetcherHTTPError,
    FetcherNoDataError,
    FetcherParseError,
    FetcherTimeoutError,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

# Import all fetcher implementations to trigger registration
from .birdeye import BirdeyeFetcher
from .coingecko import CoinGeckoFetcher
from .dexscreener import DexScreenerFetcher
from .jupiter import JupiterFetcher
from .raydium import RaydiumFetcher

# Sources queried when none are configured, in tie-break order
DEFAULT_SOURCES = ["jupiter", "dexscreener", "coingecko", "birdeye", "raydium"]

__all__ = [
    # Base classes
    "BaseFetcher",
    "FetcherError",
    "FetcherConfigError",
    "FetcherHTTPError",
    "FetcherNoDataError",
    "FetcherParseError",
    "FetcherTimeoutError",
    # Registry functions
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "FETCHER_REGISTRY",
    "DEFAULT_SOURCES",
    # Fetcher implementations
    "BirdeyeFetcher",
    "CoinGeckoFetcher",
    "DexScreenerFetcher",
    "JupiterFetcher",
    "RaydiumFetcher",
]
