"""
DEX Price Comparator - Multi-Source Comparison Module

This module compares a trading pair's price across several independent sources:
- PairContext: Resolved trading pair handed to every source
- TokenResolver: Symbol to mint address lookup
- PriceComparator: Concurrent fan-out with deadlines and a grace window
- PriceRanker: Best/worst ordering and spread calculation
- ResultCache: Short-TTL memoization for polling consumers
- fetchers: Modular price source implementations
"""

from .AggregationError import (
    AggregationError,
    AggregationErrorReason,
    NoValidQuotesError,
    UnknownSymbolError,
)
from .PairContext import PairContext, TokenInfo
from .PriceComparator import AggregationResult, PriceComparator
from .PriceRanker import RankedQuotes, rank
from .Quote import Failure, FailureReason, Quote
from .QuoteValidator import is_valid
from .ResultCache import CacheEntry, ResultCache
from .TokenResolver import (
    DEFAULT_TOKENS,
    StaticTokenResolver,
    TokenListResolver,
    TokenResolver,
)

__all__ = [
    "AggregationError",
    "AggregationErrorReason",
    "AggregationResult",
    "CacheEntry",
    "DEFAULT_TOKENS",
    "Failure",
    "FailureReason",
    "NoValidQuotesError",
    "PairContext",
    "PriceComparator",
    "Quote",
    "RankedQuotes",
    "ResultCache",
    "StaticTokenResolver",
    "TokenInfo",
    "TokenListResolver",
    "TokenResolver",
    "UnknownSymbolError",
    "is_valid",
    "rank",
]
