"""Shared fixtures for comparator tests."""

import asyncio

import pytest

from comparator.src.PairContext import PairContext, TokenInfo
from comparator.src.TokenResolver import StaticTokenResolver
from comparator.src.fetchers import BaseFetcher

SOL = TokenInfo("SOL", "So11111111111111111111111111111111111111112", 9)
USDC = TokenInfo("USDC", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6)


class StubFetcher(BaseFetcher):
    """Fetcher returning a fixed price after a fixed delay.

    Build instances with :meth:`named`, which declares the source name at
    class level like a registered fetcher does.

    :ivar calls: Number of fetch_price invocations.
    :ivar completed: Whether fetch_price ran to completion.
    """

    def __init__(
        self,
        price: float | None = None,
        delay: float = 0.0,
        error: BaseException | None = None,
        liquidity: float | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self.price = price
        self.delay = delay
        self.error = error
        self.liquidity = liquidity
        self.calls = 0
        self.completed = False

    async def fetch_price(self, ctx: PairContext) -> tuple[float, float | None]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.completed = True
        return self.price, self.liquidity

    @classmethod
    def named(cls, name: str, *args, **kwargs) -> "StubFetcher":
        """Instantiate a StubFetcher subclass whose class-level name is ``name``."""
        subclass = type(f"StubFetcher_{name or 'unnamed'}", (cls,), {"name": name})
        return subclass(*args, **kwargs)


@pytest.fixture
def stub_fetcher():
    """Factory: ``stub_fetcher(name, price, delay=..., error=...)``."""
    return StubFetcher.named


@pytest.fixture
def pair() -> PairContext:
    """Resolved SOL/USDC pair."""
    return PairContext(SOL, USDC)


@pytest.fixture
def resolver() -> StaticTokenResolver:
    """Resolver knowing SOL and USDC only."""
    return StaticTokenResolver({"SOL": SOL, "USDC": USDC})


@pytest.fixture(autouse=True)
def reset_shared_client():
    """Each test (and its event loop) gets a fresh shared HTTP client."""
    BaseFetcher._shared_client = None
    yield
    BaseFetcher._shared_client = None
