"""PairContext: Resolved trading pair handed to every price source.

Symbols are resolved to on-chain token identifiers before any source is
contacted. A PairContext is immutable once built, so the same instance can be
shared by all concurrently running fetchers.

.. code-block:: python

    >>> sol = TokenInfo("sol", "So11111111111111111111111111111111111111112", 9)
    >>> usdc = TokenInfo("usdc", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6)
    >>> ctx = PairContext(sol, usdc)
    >>> str(ctx)
    'SOL/USDC'
    >>> ctx.cache_key
    'SOL/USDC'
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenInfo:
    """A token resolved from its symbol.

    :ivar symbol: Token symbol (normalized to uppercase).
    :ivar address: Source-independent identifier (SPL mint address).
    :ivar decimals: Number of decimals of the token's base unit.
    """

    symbol: str
    address: str
    decimals: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbol", self.symbol.upper())


@dataclass(frozen=True)
class PairContext:
    """A base/quote pair with both tokens resolved.

    :ivar base: Token being priced.
    :ivar quote: Token the price is expressed in.
    """

    base: TokenInfo
    quote: TokenInfo

    def __str__(self) -> str:
        """Return the display label, e.g. ``SOL/USDC``."""
        return f"{self.base.symbol}/{self.quote.symbol}"

    @property
    def cache_key(self) -> str:
        """Key used by the result cache for this pair."""
        return self.key_for(self.base.symbol, self.quote.symbol)

    @staticmethod
    def key_for(base_symbol: str, quote_symbol: str) -> str:
        """Compute the cache key from raw, unresolved symbols.

        :param base_symbol: Base token symbol in any case.
        :param quote_symbol: Quote token symbol in any case.
        :returns: Uppercase ``BASE/QUOTE`` key.
        """
        return f"{base_symbol.strip().upper()}/{quote_symbol.strip().upper()}"

    @staticmethod
    def split(pair_str: str) -> tuple[str, str]:
        """Parse a pair string in format "base/quote" into its symbols.

        :param pair_str: Pair string like "SOL/USDC".
        :returns: Tuple of (base, quote) symbols, uppercase.
        :raises ValueError: If pair string format is invalid.

        .. code-block:: python

            >>> PairContext.split("sol/usdc")
            ('SOL', 'USDC')
        """
        parts = [p.strip() for p in pair_str.upper().split("/")]
        if len(parts) != 2 or not all(parts):
            raise ValueError(
                f"Invalid pair format '{pair_str}'. Expected 'base/quote' (e.g., 'SOL/USDC')"
            )
        return parts[0], parts[1]
