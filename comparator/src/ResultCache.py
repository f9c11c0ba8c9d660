"""ResultCache: Short-TTL memoization of comparison results.

Polling consumers call the comparator every few seconds; the cache keeps them
from multiplying upstream traffic. An entry is served until it is ``ttl``
seconds old and never after that. Refreshing an expired entry is not
single-flight: concurrent misses may each run a comparison, and the last one
to finish wins.

.. code-block:: python

    >>> cache = ResultCache(comparator, ttl=2.0)
    >>> first = await cache.get_or_compute("SOL", "USDC")
    >>> second = await cache.get_or_compute("SOL", "USDC")  # within 2s
    >>> first is second
    True
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .AggregationError import AggregationError
from .PairContext import PairContext
from .PriceComparator import AggregationResult, PriceComparator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached comparison result.

    :ivar key: Pair key (``BASE/QUOTE``).
    :ivar value: The cached result.
    :ivar stored_at: Clock reading when the entry was stored.
    """

    key: str
    value: AggregationResult
    stored_at: float


class ResultCache:
    """Process-wide cache in front of a PriceComparator.

    Entries are immutable and replaced by a single dict assignment, so a
    reader sees either the old or the new entry, never a mix.

    :ivar comparator: Comparator used on a miss.
    :ivar ttl: Default time-to-live in seconds.
    :ivar serve_stale_on_error: Return an expired entry when a refresh fails.
    """

    DEFAULT_TTL = 2.0

    def __init__(
        self,
        comparator: PriceComparator,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
        serve_stale_on_error: bool = False,
    ) -> None:
        """Initialize the cache.

        :param comparator: Comparator invoked on cache misses.
        :param ttl: Time-to-live in seconds (default: 2.0).
        :param clock: Clock used to age entries.
        :param serve_stale_on_error: If True, a failed refresh returns the
            expired entry for the pair instead of raising.
        :raises ValueError: If ttl is not positive.
        """
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.comparator = comparator
        self.ttl = ttl
        self.clock = clock
        self.serve_stale_on_error = serve_stale_on_error
        self._entries: dict[str, CacheEntry] = {}

    def _is_fresh(self, entry: CacheEntry, ttl: float) -> bool:
        return self.clock() - entry.stored_at < ttl

    def get(self, base_symbol: str, quote_symbol: str, ttl: float | None = None) -> AggregationResult | None:
        """Return the cached result for a pair if it is still fresh.

        :param base_symbol: Base token symbol.
        :param quote_symbol: Quote token symbol.
        :param ttl: Override of the default TTL.
        :returns: Cached result, or None if absent or expired.
        """
        entry = self._entries.get(PairContext.key_for(base_symbol, quote_symbol))
        if entry is None or not self._is_fresh(entry, self.ttl if ttl is None else ttl):
            return None
        return entry.value

    async def get_or_compute(
        self, base_symbol: str, quote_symbol: str, ttl: float | None = None
    ) -> AggregationResult:
        """Return a fresh cached result or run a new comparison.

        :param base_symbol: Base token symbol.
        :param quote_symbol: Quote token symbol.
        :param ttl: Override of the default TTL.
        :returns: The comparison result.
        :raises AggregationError: If the comparison fails and no stale entry
            may be served.
        """
        ttl = self.ttl if ttl is None else ttl
        key = PairContext.key_for(base_symbol, quote_symbol)

        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry, ttl):
            logger.debug(f"{key}: cache hit (age {self.clock() - entry.stored_at:.2f}s)")
            return entry.value

        try:
            result = await self.comparator.compare(base_symbol, quote_symbol)
        except AggregationError as e:
            stale = self._entries.get(key)
            if self.serve_stale_on_error and stale is not None:
                logger.warning(
                    f"{key}: refresh failed ({e}), serving entry from "
                    f"{self.clock() - stale.stored_at:.1f}s ago"
                )
                return stale.value
            raise

        self._entries[key] = CacheEntry(key=key, value=result, stored_at=self.clock())
        return result

    def clear(self) -> None:
        """Drop all entries."""
        self._entries = {}

    def __len__(self) -> int:
        return len(self._entries)
