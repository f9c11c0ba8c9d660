"""Unit tests for PriceComparator."""

import asyncio
import math
import time

import pytest

from comparator.src.AggregationError import NoValidQuotesError, UnknownSymbolError
from comparator.src.PriceComparator import AggregationResult, PriceComparator
from comparator.src.Quote import Failure, FailureReason, Quote
from comparator.src.fetchers import FetcherError, FetcherNoDataError

# Short budgets keep the suite fast: fast path ends at 0.3s, grace at 0.5s
OVERALL = 0.3
GRACE = 0.2


def make_comparator(fetchers, resolver, **kwargs) -> PriceComparator:
    kwargs.setdefault("overall_timeout", OVERALL)
    kwargs.setdefault("grace_period", GRACE)
    return PriceComparator(fetchers, resolver, **kwargs)


class TestPriceComparatorInit:
    """Test PriceComparator initialization."""

    def test_default_values(self, stub_fetcher, resolver) -> None:
        """Default values should be reasonable."""
        comparator = PriceComparator([stub_fetcher("a", 1.0)], resolver)
        assert comparator.overall_timeout == 3.0
        assert comparator.grace_period == 1.0
        assert comparator.min_quotes == 2

    def test_source_names_from_fetcher_classes(self, stub_fetcher, resolver) -> None:
        """Source names come from each fetcher's class-level name."""
        fetchers = [stub_fetcher("a", 1.0), stub_fetcher("b", 2.0)]
        comparator = PriceComparator(fetchers, resolver)

        assert comparator.source_names == ["a", "b"]
        assert [type(f).name for f in fetchers] == ["a", "b"]
        assert all("name" not in vars(f) for f in fetchers)

    def test_duplicate_names_rejected(self, stub_fetcher, resolver) -> None:
        """Two fetchers with the same name should raise ValueError."""
        with pytest.raises(ValueError, match="duplicate fetcher names"):
            PriceComparator([stub_fetcher("a", 1.0), stub_fetcher("a", 2.0)], resolver)

    def test_empty_name_rejected(self, stub_fetcher, resolver) -> None:
        """Fetchers need a non-empty name."""
        with pytest.raises(ValueError, match="non-empty name"):
            PriceComparator([stub_fetcher("", 1.0)], resolver)

    def test_no_fetchers_rejected(self, resolver) -> None:
        """At least one fetcher is required."""
        with pytest.raises(ValueError, match="at least one fetcher"):
            PriceComparator([], resolver)

    def test_invalid_budgets(self, stub_fetcher, resolver) -> None:
        """Non-positive overall timeout or negative grace should raise."""
        fetchers = [stub_fetcher("a", 1.0)]
        with pytest.raises(ValueError, match="overall_timeout must be positive"):
            PriceComparator(fetchers, resolver, overall_timeout=0)
        with pytest.raises(ValueError, match="grace_period must not be negative"):
            PriceComparator(fetchers, resolver, grace_period=-1)
        with pytest.raises(ValueError, match="min_quotes must be at least 1"):
            PriceComparator(fetchers, resolver, min_quotes=0)


class TestPriceComparatorCompare:
    """End-to-end comparison scenarios."""

    @pytest.mark.asyncio
    async def test_two_quotes_and_a_timeout(self, stub_fetcher, resolver) -> None:
        """A=100 in 50ms, B=102 in 80ms, C never answers."""
        comparator = make_comparator(
            [
                stub_fetcher("a", 100.0, delay=0.05),
                stub_fetcher("b", 102.0, delay=0.08),
                stub_fetcher("c", 99.0, delay=10),
            ],
            resolver,
        )

        result = await comparator.compare("SOL", "USDC")

        assert result.best.source_name == "b"
        assert result.best.price == 102.0
        assert result.worst.source_name == "a"
        assert result.worst.price == 100.0
        assert result.absolute_spread == pytest.approx(2.0)
        assert result.percent_spread == pytest.approx(2.0)
        assert [(f.source_name, f.reason) for f in result.failures] == [
            ("c", FailureReason.TIMEOUT)
        ]
        assert str(result.pair) == "SOL/USDC"

    @pytest.mark.asyncio
    async def test_single_source(self, stub_fetcher, resolver) -> None:
        """One quote of 50 is best and worst with zero spread."""
        comparator = make_comparator([stub_fetcher("only", 50.0)], resolver)

        result = await comparator.compare("SOL", "USDC")

        assert result.best == result.worst
        assert result.best.price == 50.0
        assert result.absolute_spread == 0
        assert result.percent_spread == 0
        assert result.failures == ()

    @pytest.mark.asyncio
    async def test_all_sources_fail(self, stub_fetcher, resolver) -> None:
        """Every source failing raises NoValidQuotesError with all failures."""
        comparator = make_comparator(
            [
                stub_fetcher(name, error=FetcherError("connection refused"))
                for name in ("a", "b", "c")
            ],
            resolver,
        )

        with pytest.raises(NoValidQuotesError) as exc_info:
            await comparator.compare("SOL", "USDC")

        failures = exc_info.value.failures
        assert len(failures) == 3
        assert [f.source_name for f in failures] == ["a", "b", "c"]
        assert all(f.reason == FailureReason.NETWORK_ERROR for f in failures)
        assert "SOL/USDC" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_mixed_failure_reasons(self, stub_fetcher, resolver) -> None:
        """Each source keeps its own failure reason."""
        comparator = make_comparator(
            [
                stub_fetcher("net", error=FetcherError("boom")),
                stub_fetcher("empty", error=FetcherNoDataError("nothing")),
                stub_fetcher("slow", 1.0, delay=10),
            ],
            resolver,
        )

        with pytest.raises(NoValidQuotesError) as exc_info:
            await comparator.compare("SOL", "USDC")

        assert [f.reason for f in exc_info.value.failures] == [
            FailureReason.NETWORK_ERROR,
            FailureReason.NO_DATA,
            FailureReason.TIMEOUT,
        ]

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_isolated(self, stub_fetcher, resolver) -> None:
        """An unexpected exception in one source must not affect the others."""
        comparator = make_comparator(
            [
                stub_fetcher("broken", error=RuntimeError("bug")),
                stub_fetcher("good", 10.0, delay=0.02),
            ],
            resolver,
        )

        result = await comparator.compare("SOL", "USDC")

        assert [q.source_name for q in result.quotes] == ["good"]
        assert result.failures[0].source_name == "broken"
        assert result.failures[0].reason == FailureReason.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_invalid_quotes_dropped_silently(self, stub_fetcher, resolver) -> None:
        """Invalid prices are excluded but not reported as failures."""
        comparator = make_comparator(
            [
                stub_fetcher("zero", 0.0),
                stub_fetcher("negative", -5.0),
                stub_fetcher("nan", math.nan),
                stub_fetcher("inf", math.inf),
                stub_fetcher("good", 42.0),
            ],
            resolver,
        )

        result = await comparator.compare("SOL", "USDC")

        assert [q.source_name for q in result.quotes] == ["good"]
        assert result.failures == ()

    @pytest.mark.asyncio
    async def test_only_invalid_quotes_reported_as_failures(self, stub_fetcher, resolver) -> None:
        """With no valid quote left, every source appears in the error's failures."""
        comparator = make_comparator(
            [
                stub_fetcher("zero", 0.0),
                stub_fetcher("nan", math.nan),
                stub_fetcher("down", error=FetcherError("boom")),
                stub_fetcher("negative", -1.0),
            ],
            resolver,
        )

        with pytest.raises(NoValidQuotesError) as exc_info:
            await comparator.compare("SOL", "USDC")

        failures = exc_info.value.failures
        assert len(failures) == len(comparator.fetchers)
        assert [f.source_name for f in failures] == ["zero", "nan", "down", "negative"]
        assert [f.reason for f in failures] == [
            FailureReason.PARSE_ERROR,
            FailureReason.PARSE_ERROR,
            FailureReason.NETWORK_ERROR,
            FailureReason.PARSE_ERROR,
        ]
        assert failures[0].detail == "invalid price 0.0"
        assert failures[3].detail == "invalid price -1.0"

    @pytest.mark.asyncio
    async def test_ties_follow_registration_order(self, stub_fetcher, resolver) -> None:
        """Equal prices rank in registration order, not completion order."""
        comparator = make_comparator(
            [
                stub_fetcher("slow", 100.0, delay=0.06),
                stub_fetcher("fast", 100.0, delay=0.01),
            ],
            resolver,
        )

        result = await comparator.compare("SOL", "USDC")

        assert [q.source_name for q in result.quotes] == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_quote_metadata(self, stub_fetcher, resolver) -> None:
        """Quotes carry liquidity, latency and observation time."""
        comparator = make_comparator(
            [stub_fetcher("a", 1.5, delay=0.02, liquidity=1_000_000.0)], resolver
        )

        result = await comparator.compare("SOL", "USDC")

        quote = result.best
        assert quote.liquidity == 1_000_000.0
        assert quote.latency >= 0.02
        assert quote.observed_at > 0
        assert result.elapsed >= quote.latency

    @pytest.mark.asyncio
    async def test_unknown_symbol_contacts_no_source(self, stub_fetcher, resolver) -> None:
        """Resolution failure is raised before any fetcher runs."""
        fetcher = stub_fetcher("a", 1.0)
        comparator = make_comparator([fetcher], resolver)

        with pytest.raises(UnknownSymbolError) as exc_info:
            await comparator.compare("NOPE", "USDC")

        assert fetcher.calls == 0
        assert exc_info.value.symbol == "NOPE"
        assert exc_info.value.suggestion


class TestPriceComparatorDeadlines:
    """Test deadline and grace window behaviour."""

    @pytest.mark.asyncio
    async def test_enough_quotes_skip_grace_window(self, stub_fetcher, resolver) -> None:
        """With two quotes by the deadline, a late source is abandoned."""
        late = stub_fetcher("late", 200.0, delay=0.4)
        comparator = make_comparator(
            [stub_fetcher("a", 100.0, delay=0.02), stub_fetcher("b", 101.0, delay=0.04), late],
            resolver,
        )

        result = await comparator.compare("SOL", "USDC")

        assert [q.source_name for q in result.quotes] == ["b", "a"]
        assert result.failures == (
            Failure("late", FailureReason.TIMEOUT, "abandoned at comparison deadline"),
        )
        assert result.elapsed < OVERALL + 0.1

    @pytest.mark.asyncio
    async def test_grace_window_used(self, stub_fetcher, resolver) -> None:
        """With too few quotes, a source finishing within the grace window counts."""
        comparator = make_comparator(
            [
                stub_fetcher("a", 100.0, delay=0.02),
                stub_fetcher("late", 103.0, delay=0.4),
                stub_fetcher("never", 1.0, delay=10),
            ],
            resolver,
        )

        result = await comparator.compare("SOL", "USDC")

        assert [q.source_name for q in result.quotes] == ["late", "a"]
        assert [f.source_name for f in result.failures] == ["never"]
        assert result.failures[0].reason == FailureReason.TIMEOUT
        assert result.elapsed < OVERALL + GRACE + 0.1

    @pytest.mark.asyncio
    async def test_grace_window_disabled(self, stub_fetcher, resolver) -> None:
        """With no grace window, stragglers are abandoned at the deadline."""
        comparator = make_comparator(
            [stub_fetcher("a", 100.0), stub_fetcher("late", 103.0, delay=0.4)],
            resolver,
            grace_period=0,
        )

        result = await comparator.compare("SOL", "USDC")

        assert [q.source_name for q in result.quotes] == ["a"]
        assert result.failures[0].source_name == "late"

    @pytest.mark.asyncio
    async def test_per_source_budget(self, stub_fetcher, resolver) -> None:
        """A source with a shorter budget times out on its own."""
        comparator = make_comparator(
            [stub_fetcher("a", 100.0), stub_fetcher("b", 100.0, delay=0.2, timeout=0.05)],
            resolver,
        )

        result = await comparator.compare("SOL", "USDC")

        failure = result.failures[0]
        assert failure.source_name == "b"
        assert failure.reason == FailureReason.TIMEOUT
        assert "abandoned" not in failure.detail

    @pytest.mark.asyncio
    async def test_comparator_clock_differs_from_fetcher_clock(
        self, stub_fetcher, resolver
    ) -> None:
        """Deadlines are translated onto each fetcher's own clock."""
        comparator = make_comparator(
            [
                stub_fetcher("a", 1.0, delay=0.01),
                stub_fetcher("b", 2.0, delay=0.2, timeout=0.05),
            ],
            resolver,
            clock=lambda: time.monotonic() - 100.0,
        )

        result = await comparator.compare("SOL", "USDC")

        assert [q.source_name for q in result.quotes] == ["a"]
        failure = result.failures[0]
        assert failure.source_name == "b"
        assert failure.reason == FailureReason.TIMEOUT
        assert failure.detail != "deadline already passed"

    @pytest.mark.asyncio
    async def test_abandoned_source_result_never_observed(
        self, stub_fetcher, resolver
    ) -> None:
        """A cancelled source never completes, even after the call returns."""
        late = stub_fetcher("late", 1.0, delay=0.35)
        comparator = make_comparator(
            [stub_fetcher("a", 100.0), stub_fetcher("b", 100.0), late], resolver
        )

        result = await comparator.compare("SOL", "USDC")
        await asyncio.sleep(0.2)

        assert late.calls == 1
        assert not late.completed
        assert "late" not in [q.source_name for q in result.quotes]

    @pytest.mark.asyncio
    async def test_all_timeout_bounded_by_grace(self, stub_fetcher, resolver) -> None:
        """When nothing answers, the call returns after overall + grace."""
        comparator = make_comparator(
            [stub_fetcher(name, 1.0, delay=10) for name in ("a", "b")], resolver
        )

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(NoValidQuotesError) as exc_info:
            await comparator.compare("SOL", "USDC")
        took = loop.time() - started

        assert OVERALL + GRACE - 0.05 <= took < OVERALL + GRACE + 0.2
        assert all(f.reason == FailureReason.TIMEOUT for f in exc_info.value.failures)


class TestAggregationResultSerialization:
    """Test the JSON shape."""

    def test_timestamp_is_iso_utc(self, pair) -> None:
        """completed_at is rendered as an ISO 8601 UTC timestamp."""
        quote = Quote("a", 1.0)
        result = AggregationResult(
            pair=pair,
            quotes=(quote,),
            best=quote,
            worst=quote,
            absolute_spread=0.0,
            percent_spread=0.0,
            elapsed=0.0,
            completed_at=0.0,
        )

        body = result.to_dict()

        assert body["timestamp"] == "1970-01-01T00:00:00+00:00"
        assert body["totalDexes"] == 1

    @pytest.mark.asyncio
    async def test_to_dict(self, stub_fetcher, resolver) -> None:
        """Result serializes to the comparison response shape."""
        comparator = make_comparator(
            [
                stub_fetcher("a", 100.0),
                stub_fetcher("b", 102.0),
                stub_fetcher("c", error=FetcherError("down")),
            ],
            resolver,
        )

        body = (await comparator.compare("SOL", "USDC")).to_dict()

        assert body["success"] is True
        assert body["pair"] == "SOL/USDC"
        assert body["bestPrice"]["dexName"] == "b"
        assert [p["dexName"] for p in body["allPrices"]] == ["b", "a"]
        assert body["comparison"]["bestDex"] == "b"
        assert body["comparison"]["worstDex"] == "a"
        assert body["comparison"]["priceDifference"] == pytest.approx(2.0)
        assert body["comparison"]["percentageDifference"] == pytest.approx(2.0)
        assert body["totalDexes"] == 2
        assert body["timestamp"].endswith("+00:00")
        assert body["failures"] == [
            {"source": "c", "reason": "network_error", "detail": "down"}
        ]

    @pytest.mark.asyncio
    async def test_error_to_dict(self, stub_fetcher, resolver) -> None:
        """Errors serialize without stack traces and with a tip for symbols."""
        comparator = make_comparator([stub_fetcher("a", 1.0)], resolver)

        with pytest.raises(UnknownSymbolError) as exc_info:
            await comparator.compare("SOL", "XYZ")

        body = exc_info.value.to_dict()
        assert body["success"] is False
        assert body["reason"] == "unknown_symbol"
        assert "XYZ" in body["error"]
        assert "SOL" in body["tip"]
