"""PriceComparator: Concurrent multi-source price comparison.

Algorithm:
    1. Resolve both symbols (unknown symbol fails before any source is contacted)
    2. Start one task per fetcher; each task owns exactly one result slot
    3. Wait for every task to settle or for the overall deadline
    4. If tasks are still running and fewer than ``min_quotes`` quotes arrived,
       wait one grace window more for them
    5. Cancel whatever is still running and record it as a timeout
    6. Drop numerically invalid quotes, rank the rest; if none remain, fail
       with one Failure per source

Deadlines:
    overall_deadline = start + overall_timeout
    hard_deadline    = overall_deadline + grace_period
    fetcher deadline = min(start + fetcher.timeout, hard_deadline), passed on
                       as an offset from the fetcher's own clock

A fetcher may therefore still be running at the overall deadline; it is only
waited for when the fast path under-delivered.

.. code-block:: python

    >>> comparator = PriceComparator(
    ...     [get_fetcher("jupiter"), get_fetcher("dexscreener")],
    ...     StaticTokenResolver(),
    ... )
    >>> result = await comparator.compare("SOL", "USDC")
    >>> result.best.source_name
    'jupiter'
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from .AggregationError import NoValidQuotesError
from .PairContext import PairContext
from .PriceRanker import rank
from .Quote import Failure, FailureReason, Quote
from .QuoteValidator import is_valid
from .TokenResolver import TokenResolver
from .fetchers import BaseFetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationResult:
    """Result of a successful price comparison.

    :ivar pair: The resolved pair.
    :ivar quotes: Valid quotes, highest price first.
    :ivar best: Highest-priced quote.
    :ivar worst: Lowest-priced quote.
    :ivar absolute_spread: best.price - worst.price.
    :ivar percent_spread: Spread relative to the worst price, in percent.
    :ivar elapsed: Seconds the comparison took.
    :ivar failures: Sources that produced no quote, in registration order.
    :ivar completed_at: Unix timestamp when the comparison finished.
    """

    pair: PairContext
    quotes: tuple[Quote, ...]
    best: Quote
    worst: Quote
    absolute_spread: float
    percent_spread: float
    elapsed: float
    failures: tuple[Failure, ...] = ()
    completed_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        """Serialize as a response body."""
        return {
            "success": True,
            "pair": str(self.pair),
            "bestPrice": self.best.to_dict(),
            "allPrices": [q.to_dict() for q in self.quotes],
            "comparison": {
                "bestDex": self.best.source_name,
                "worstDex": self.worst.source_name,
                "priceDifference": self.absolute_spread,
                "percentageDifference": self.percent_spread,
            },
            "elapsedMs": round(self.elapsed * 1000),
            "totalDexes": len(self.quotes),
            "timestamp": datetime.fromtimestamp(self.completed_at, tz=timezone.utc).isoformat(),
            "failures": [f.to_dict() for f in self.failures],
        }


class PriceComparator:
    """Compares one pair's price across several sources.

    :ivar fetchers: Fetchers in registration (tie-break) order.
    :ivar resolver: Symbol resolver.
    :ivar overall_timeout: Primary time budget in seconds.
    :ivar grace_period: Extra wait when fewer than min_quotes arrived in time.
    :ivar min_quotes: Quote count that makes the grace window unnecessary.
    """

    DEFAULT_OVERALL_TIMEOUT = 3.0
    DEFAULT_GRACE_PERIOD = 1.0
    DEFAULT_MIN_QUOTES = 2

    def __init__(
        self,
        fetchers: Sequence[BaseFetcher],
        resolver: TokenResolver,
        overall_timeout: float = DEFAULT_OVERALL_TIMEOUT,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        min_quotes: int = DEFAULT_MIN_QUOTES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the comparator.

        :param fetchers: Fetchers to query; names must be unique.
        :param resolver: Resolver turning symbols into TokenInfo.
        :param overall_timeout: Primary time budget in seconds (default: 3.0).
        :param grace_period: Grace window in seconds (default: 1.0).
        :param min_quotes: Quotes needed by the overall deadline to skip the
            grace window (default: 2).
        :param clock: Monotonic clock for the comparison deadlines; fetchers
            receive their deadline translated onto their own clock.
        :raises ValueError: If parameters are invalid.
        """
        if not fetchers:
            raise ValueError("at least one fetcher is required")
        names = [f.name for f in fetchers]
        if any(not n for n in names):
            raise ValueError("every fetcher must have a non-empty name")
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate fetcher names: {duplicates}")
        if overall_timeout <= 0:
            raise ValueError("overall_timeout must be positive")
        if grace_period < 0:
            raise ValueError("grace_period must not be negative")
        if min_quotes < 1:
            raise ValueError("min_quotes must be at least 1")

        self.fetchers = list(fetchers)
        self.resolver = resolver
        self.overall_timeout = overall_timeout
        self.grace_period = grace_period
        self.min_quotes = min_quotes
        self.clock = clock

    @property
    def source_names(self) -> list[str]:
        """Names of the configured sources, in registration order."""
        return [f.name for f in self.fetchers]

    async def resolve_pair(self, base_symbol: str, quote_symbol: str) -> PairContext:
        """Resolve both symbols of a pair.

        :raises UnknownSymbolError: If either symbol is unknown.
        """
        base = await self.resolver.resolve(base_symbol)
        quote = await self.resolver.resolve(quote_symbol)
        return PairContext(base, quote)

    async def compare(self, base_symbol: str, quote_symbol: str) -> AggregationResult:
        """Compare prices for a pair across all configured sources.

        :param base_symbol: Symbol of the token being priced (e.g., "SOL").
        :param quote_symbol: Symbol of the token to price in (e.g., "USDC").
        :returns: AggregationResult with ranked quotes and failures.
        :raises UnknownSymbolError: If a symbol cannot be resolved.
        :raises NoValidQuotesError: If no source produced a valid quote.
        """
        start = self.clock()
        ctx = await self.resolve_pair(base_symbol, quote_symbol)
        logger.debug(
            f"Comparing {ctx} ({ctx.base.address} -> {ctx.quote.address}) "
            f"across {', '.join(self.source_names)}"
        )

        # the time budget covers the fan-out only, not symbol resolution
        slots = await self._collect(ctx, self.clock())

        quotes: list[Quote] = []
        failures: list[Failure] = []
        for outcome in slots:
            if isinstance(outcome, Failure):
                failures.append(outcome)
            elif is_valid(outcome):
                quotes.append(outcome)
            else:
                logger.warning(
                    f"[{outcome.source_name}] Dropping invalid price {outcome.price!r} for {ctx}"
                )

        elapsed = self.clock() - start

        if not quotes:
            # with nothing to rank, every source is accounted for in the error
            failures = [
                outcome
                if isinstance(outcome, Failure)
                else Failure(
                    outcome.source_name,
                    FailureReason.PARSE_ERROR,
                    f"invalid price {outcome.price!r}",
                )
                for outcome in slots
            ]
            logger.warning(
                f"{ctx}: no valid quotes after {elapsed * 1000:.0f}ms "
                f"({len(failures)} failures)"
            )
            raise NoValidQuotesError(f"No valid prices fetched for {ctx}", failures=failures)

        ranked = rank(quotes)
        result = AggregationResult(
            pair=ctx,
            quotes=ranked.quotes,
            best=ranked.best,
            worst=ranked.worst,
            absolute_spread=ranked.absolute_spread,
            percent_spread=ranked.percent_spread,
            elapsed=elapsed,
            failures=tuple(failures),
        )
        self._log_result(result)
        return result

    async def _collect(self, ctx: PairContext, start: float) -> list[Quote | Failure]:
        """Run all fetchers and return one outcome per fetcher, in order."""
        overall_deadline = start + self.overall_timeout
        hard_deadline = overall_deadline + self.grace_period

        tasks = [
            asyncio.create_task(
                self._run_fetcher(
                    fetcher, ctx, self._fetcher_deadline(fetcher, start, hard_deadline)
                ),
                name=f"fetch-{fetcher.name}",
            )
            for fetcher in self.fetchers
        ]

        pending = set(tasks)
        try:
            done, pending = await asyncio.wait(
                pending, timeout=max(0.0, overall_deadline - self.clock())
            )

            if pending and self.grace_period > 0:
                collected = sum(1 for t in done if isinstance(t.result(), Quote))
                if collected < self.min_quotes:
                    logger.info(
                        f"{ctx}: {collected} quote(s) by the deadline, waiting "
                        f"{self.grace_period:.1f}s for {len(pending)} more source(s)"
                    )
                    _, pending = await asyncio.wait(
                        pending, timeout=max(0.0, hard_deadline - self.clock())
                    )
        finally:
            # anything still running is abandoned; its result is never read
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        outcomes: list[Quote | Failure] = []
        for fetcher, task in zip(self.fetchers, tasks, strict=True):
            if task in pending:
                outcomes.append(
                    Failure(fetcher.name, FailureReason.TIMEOUT, "abandoned at comparison deadline")
                )
            else:
                outcomes.append(task.result())
        return outcomes

    def _fetcher_deadline(
        self, fetcher: BaseFetcher, start: float, hard_deadline: float
    ) -> float:
        """Deadline for one fetcher, expressed on that fetcher's own clock."""
        deadline = min(start + fetcher.timeout, hard_deadline)
        return fetcher.clock() + (deadline - self.clock())

    @staticmethod
    async def _run_fetcher(
        fetcher: BaseFetcher, ctx: PairContext, deadline: float
    ) -> Quote | Failure:
        """Run one fetcher, converting any escaped exception into a Failure."""
        try:
            return await fetcher.fetch(ctx, deadline)
        except Exception as e:
            logger.warning(f"[{fetcher.name}] Unexpected error fetching {ctx}: {e!r}")
            return Failure(fetcher.name, FailureReason.NETWORK_ERROR, f"{type(e).__name__}: {e}")

    @staticmethod
    def _log_result(result: AggregationResult) -> None:
        last = len(result.quotes) - 1
        lines = []
        for i, q in enumerate(result.quotes):
            marker = ""
            if i == 0:
                marker = " BEST"
            elif i == last:
                marker = " WORST"
            lines.append(
                f"{q.source_name:<12} {q.price:.4f}{marker} ({q.latency * 1000:.0f}ms)"
            )
        logger.info(
            f"{result.pair}: {len(result.quotes)} quote(s) in {result.elapsed * 1000:.0f}ms\n  "
            + "\n  ".join(lines)
        )
        if len(result.quotes) > 1:
            logger.info(
                f"{result.pair}: best {result.best.source_name}, worst {result.worst.source_name}, "
                f"difference {result.absolute_spread:.4f} ({result.percent_spread:.2f}%)"
            )
        for failure in result.failures:
            logger.debug(f"{result.pair}: {failure}")
