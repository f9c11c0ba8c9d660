#!/usr/bin/env python3
"""DEX Price Comparator.

Queries several DEX and aggregator price sources for a token pair at once,
ranks the answers and reports the best/worst price and the spread between
them. Slow or failing sources are reported but never block the comparison.

Run once, or poll with --interval. See --help for configuration.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from .src.AggregationError import AggregationError
from .src.PairContext import PairContext
from .src.PriceComparator import AggregationResult, PriceComparator
from .src.ResultCache import ResultCache
from .src.TokenResolver import StaticTokenResolver, TokenListResolver
from .src.fetchers import (
    DEFAULT_SOURCES,
    BaseFetcher,
    get_available_fetchers,
    get_fetcher,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_api_keys(api_key_str: str | None) -> dict[str, str]:
    """Parse comma-separated API key string into a dictionary.

    Format: source1=key1,source2=key2
    Example: birdeye=abc123,coingecko=demo:xyz789

    :param api_key_str: Comma-separated API key string.
    :returns: Dict mapping source names to API keys.
    """
    if not api_key_str:
        return {}

    api_keys = {}
    for item in api_key_str.split(","):
        item = item.strip()
        if "=" in item:
            source, key = item.split("=", 1)
            api_keys[source.strip().lower()] = key.strip()
    return api_keys


def parse_env_api_keys() -> dict[str, str]:
    """Parse API keys from individual environment variables.

    Looks for: API_KEY_BIRDEYE, APIKEY_COINGECKO, etc. BIRDEYE_API_KEY is
    accepted as well.

    :returns: Dict mapping source names to API keys.
    """
    api_keys = {}
    prefixes = ["API_KEY_", "APIKEY_"]

    if os.environ.get("BIRDEYE_API_KEY"):
        api_keys["birdeye"] = os.environ["BIRDEYE_API_KEY"]

    for key, value in os.environ.items():
        for prefix in prefixes:
            if key.startswith(prefix) and value:
                source = key[len(prefix):].lower()
                api_keys[source] = value
                break

    return api_keys


def build_fetchers(
    sources: list[str], api_keys: dict[str, str], fetch_timeout: float | None
) -> list[BaseFetcher]:
    """Instantiate fetchers in the given (tie-break) order.

    :param sources: Source names.
    :param api_keys: API keys by source name.
    :param fetch_timeout: Optional per-source budget override in seconds.
    :returns: Fetcher instances.
    """
    return [
        get_fetcher(source, api_key=api_keys.get(source), timeout=fetch_timeout)
        for source in sources
    ]


def format_result(result: AggregationResult) -> str:
    """Render a ranked comparison as a human readable table."""
    last = len(result.quotes) - 1
    lines = [f"{result.pair} ({result.elapsed * 1000:.0f}ms)"]
    for i, q in enumerate(result.quotes):
        marker = ""
        if i == 0:
            marker = "BEST"
        elif i == last:
            marker = "WORST"
        liquidity = f"  liq ${q.liquidity:,.0f}" if q.liquidity else ""
        lines.append(f"  {q.source_name:<12} {q.price:>14.6f}  {marker:<5}{liquidity}")
    if len(result.quotes) > 1:
        lines.append(
            f"  difference {result.absolute_spread:.6f} ({result.percent_spread:.2f}%)"
        )
    for failure in result.failures:
        lines.append(f"  ! {failure}")
    return "\n".join(lines)


async def run(
    cache: ResultCache,
    base: str,
    quote: str,
    interval: float | None = None,
    as_json: bool = False,
) -> int:
    """Run one comparison, or poll until interrupted.

    :param cache: Result cache wrapping the comparator.
    :param base: Base token symbol.
    :param quote: Quote token symbol.
    :param interval: Seconds between polls, or None for a single run.
    :param as_json: Print JSON instead of a table.
    :returns: Process exit status of the last comparison.
    """
    status = 0
    try:
        while True:
            try:
                result = await cache.get_or_compute(base, quote)
                print(json.dumps(result.to_dict()) if as_json else format_result(result))
                status = 0
            except AggregationError as e:
                if as_json:
                    print(json.dumps(e.to_dict()))
                logger.error(f"Comparison failed: {e}")
                if e.suggestion:
                    logger.error(e.suggestion)
                for failure in e.failures:
                    logger.error(f"  {failure}")
                status = 1

            if interval is None:
                return status
            await asyncio.sleep(interval)
    finally:
        await BaseFetcher.close_shared_client()


def main() -> None:
    """Main entry point for the DEX Price Comparator CLI."""
    available_sources = get_available_fetchers()

    parser = argparse.ArgumentParser(
        description="DEX Price Comparator: best price for a pair across DEXes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(available_sources)}

Examples:
  # Compare SOL/USDC across all default sources
  python -m comparator.main --pair SOL/USDC

  # Poll every 5 seconds with a 2 second cache, JSON output
  python -m comparator.main --pair SOL/USDC --interval 5 --json

  # Selected sources, with an API key
  python -m comparator.main --pair BONK/USDC \\
      --sources jupiter,birdeye --api-keys birdeye=your-api-key

Environment variables (CLI args take precedence):
  PAIR, SOURCES, OVERALL_TIMEOUT, GRACE_PERIOD, FETCH_TIMEOUT, CACHE_TTL,
  POLL_INTERVAL, API_KEYS, API_KEY_BIRDEYE, API_KEY_COINGECKO, etc.
""",
    )

    parser.add_argument(
        "--pair",
        type=str,
        help="Trading pair as BASE/QUOTE (e.g., SOL/USDC)",
        default=os.environ.get("PAIR") or "SOL/USDC",
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated price sources, in tie-break order. Available: {', '.join(available_sources)}",
        default=os.environ.get("SOURCES") or ",".join(DEFAULT_SOURCES),
    )

    parser.add_argument(
        "--overall-timeout",
        dest="overall_timeout",
        type=float,
        help=f"Overall comparison budget in seconds (default: {PriceComparator.DEFAULT_OVERALL_TIMEOUT})",
        default=float(os.environ.get("OVERALL_TIMEOUT") or PriceComparator.DEFAULT_OVERALL_TIMEOUT),
    )

    parser.add_argument(
        "--grace-period",
        dest="grace_period",
        type=float,
        help=f"Extra wait when fewer than 2 sources answered in time (default: {PriceComparator.DEFAULT_GRACE_PERIOD})",
        default=float(os.environ.get("GRACE_PERIOD") or PriceComparator.DEFAULT_GRACE_PERIOD),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help=f"Per-source budget in seconds (default: {BaseFetcher.DEFAULT_TIMEOUT})",
        default=float(os.environ.get("FETCH_TIMEOUT") or BaseFetcher.DEFAULT_TIMEOUT),
    )

    parser.add_argument(
        "--cache-ttl",
        dest="cache_ttl",
        type=float,
        help=f"Seconds a result is reused by polling (default: {ResultCache.DEFAULT_TTL})",
        default=float(os.environ.get("CACHE_TTL") or ResultCache.DEFAULT_TTL),
    )

    parser.add_argument(
        "--interval",
        type=float,
        help="Poll every N seconds instead of running once",
        default=float(os.environ["POLL_INTERVAL"]) if os.environ.get("POLL_INTERVAL") else None,
    )

    parser.add_argument(
        "--serve-stale",
        dest="serve_stale",
        action="store_true",
        help="When polling, keep showing the last result if a refresh fails",
    )

    parser.add_argument(
        "--token-list",
        dest="token_list",
        action="store_true",
        help="Resolve symbols from the downloaded Solana token list",
    )

    parser.add_argument(
        "--api-keys",
        dest="api_keys",
        type=str,
        help="Comma-separated API keys (e.g., birdeye=abc,coingecko=demo:xyz)",
        default=os.environ.get("API_KEYS"),
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    try:
        base, quote = PairContext.split(args.pair)
    except ValueError as e:
        parser.error(str(e))

    if args.overall_timeout <= 0:
        parser.error("--overall-timeout must be positive")

    if args.grace_period < 0:
        parser.error("--grace-period must not be negative")

    if args.fetch_timeout <= 0:
        parser.error("--fetch-timeout must be positive")

    if args.cache_ttl <= 0:
        parser.error("--cache-ttl must be positive")

    if args.interval is not None and args.interval < 1:
        parser.error("--interval must be at least 1 second")

    sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]
    if not sources:
        parser.error("At least one source must be specified")

    invalid_sources = [s for s in sources if s not in available_sources]
    if invalid_sources:
        parser.error(
            f"Unknown sources: {invalid_sources}. "
            f"Available: {', '.join(available_sources)}"
        )

    if len(set(sources)) != len(sources):
        parser.error("Each source may only be listed once")

    # Parse API keys (CLI + environment)
    api_keys = parse_env_api_keys()
    api_keys.update(parse_api_keys(args.api_keys))

    # Log configuration
    logger.info("=" * 60)
    logger.info("DEX Price Comparator")
    logger.info("=" * 60)
    logger.info(f"Pair:              {base}/{quote}")
    logger.info(f"Sources:           {', '.join(sources)}")
    logger.info(f"Overall Timeout:   {args.overall_timeout}s")
    logger.info(f"Grace Period:      {args.grace_period}s")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info(f"Resolver:          {'token list' if args.token_list else 'built-in'}")
    if args.interval is not None:
        logger.info(f"Poll Interval:     {args.interval}s (cache TTL {args.cache_ttl}s)")
    if api_keys:
        logger.info(f"API Keys:          {', '.join(api_keys.keys())}")
    logger.info("=" * 60)

    resolver = TokenListResolver() if args.token_list else StaticTokenResolver()
    comparator = PriceComparator(
        build_fetchers(sources, api_keys, args.fetch_timeout),
        resolver,
        overall_timeout=args.overall_timeout,
        grace_period=args.grace_period,
    )
    cache = ResultCache(
        comparator, ttl=args.cache_ttl, serve_stale_on_error=args.serve_stale
    )

    try:
        status = asyncio.run(
            run(cache, base, quote, interval=args.interval, as_json=args.json)
        )
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        status = 0
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        status = 1
    sys.exit(status)


if __name__ == "__main__":
    main()
