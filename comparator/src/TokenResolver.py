"""Token resolvers: symbol -> TokenInfo lookup.

Two implementations share the async ``resolve(symbol)`` interface used by the
comparator:

- StaticTokenResolver: built-in table of well-known Solana tokens.
- TokenListResolver: downloads the public Solana token list once per process
  and caches it in memory.

.. code-block:: python

    >>> resolver = StaticTokenResolver()
    >>> info = await resolver.resolve("sol")
    >>> info.address
    'So11111111111111111111111111111111111111112'
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx

from .AggregationError import UnknownSymbolError
from .PairContext import TokenInfo

logger = logging.getLogger(__name__)

DEFAULT_TOKENS: dict[str, TokenInfo] = {
    t.symbol: t
    for t in (
        TokenInfo("SOL", "So11111111111111111111111111111111111111112", 9),
        TokenInfo("USDC", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6),
        TokenInfo("USDT", "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", 6),
        TokenInfo("ETH", "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs", 8),
        TokenInfo("BTC", "3NZ9JMVBmGAqocybic2c7LQCJScmgsAZ6vQqTDzcqmJh", 8),
        TokenInfo("BONK", "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", 5),
        TokenInfo("JUP", "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN", 6),
        TokenInfo("RAY", "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R", 6),
    )
}

SOLANA_TOKEN_LIST_URL = (
    "https://raw.githubusercontent.com/solana-labs/token-list/main/src/tokens/solana.tokenlist.json"
)


class TokenResolver(Protocol):
    """Anything that can turn a symbol into a TokenInfo."""

    async def resolve(self, symbol: str) -> TokenInfo:
        """Resolve a symbol or raise UnknownSymbolError."""
        ...


class StaticTokenResolver:
    """Resolver backed by a fixed symbol table.

    :ivar tokens: Mapping of uppercase symbol to TokenInfo.
    """

    def __init__(self, tokens: dict[str, TokenInfo] | None = None) -> None:
        """Initialize the resolver.

        :param tokens: Symbol table (default: DEFAULT_TOKENS).
        """
        source = DEFAULT_TOKENS if tokens is None else tokens
        self.tokens = {symbol.upper(): info for symbol, info in source.items()}

    async def resolve(self, symbol: str) -> TokenInfo:
        """Look up a symbol.

        :param symbol: Token symbol in any case.
        :returns: The TokenInfo for the symbol.
        :raises UnknownSymbolError: If the symbol is not in the table.
        """
        info = self.tokens.get(symbol.strip().upper())
        if info is None:
            raise UnknownSymbolError(symbol)
        return info


class TokenListResolver:
    """Resolver backed by a downloaded token list.

    The list is fetched on first use and kept for the lifetime of the
    resolver. Concurrent first calls share a single download.

    :ivar url: Token list URL (Solana token-list JSON format).
    :ivar timeout: Download timeout in seconds.
    """

    def __init__(
        self,
        url: str = SOLANA_TOKEN_LIST_URL,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the resolver.

        :param url: Token list URL.
        :param timeout: Download timeout in seconds (default: 5).
        :param client: Optional HTTP client; a short-lived one is used otherwise.
        """
        self.url = url
        self.timeout = timeout
        self._client = client
        self._tokens: dict[str, TokenInfo] | None = None
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[str, TokenInfo]:
        async with self._lock:
            if self._tokens is not None:
                return self._tokens

            logger.info(f"Downloading token list from {self.url}")
            if self._client is not None:
                response = await self._client.get(self.url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    response = await client.get(self.url, timeout=self.timeout)
            response.raise_for_status()

            tokens: dict[str, TokenInfo] = {}
            for entry in response.json().get("tokens", []):
                symbol = str(entry.get("symbol") or "").upper()
                address = entry.get("address")
                # first listing of a symbol wins
                if symbol and address and symbol not in tokens:
                    tokens[symbol] = TokenInfo(symbol, address, int(entry.get("decimals") or 0))

            logger.info(f"Loaded {len(tokens)} tokens")
            self._tokens = tokens
            return tokens

    async def resolve(self, symbol: str) -> TokenInfo:
        """Look up a symbol in the token list.

        :param symbol: Token symbol in any case.
        :returns: The TokenInfo for the symbol.
        :raises UnknownSymbolError: If the list cannot be loaded or lacks the symbol.
        """
        try:
            tokens = await self._load()
        except (httpx.HTTPError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to load token list: {e}")
            raise UnknownSymbolError(symbol, f"token list unavailable ({e})") from e

        info = tokens.get(symbol.strip().upper())
        if info is None:
            raise UnknownSymbolError(symbol)
        return info
