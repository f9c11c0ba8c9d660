"""DexScreener fetcher.

Endpoint: https://api.dexscreener.com/latest/dex/search?q={base mint}
Rate Limit: 300 calls/min, no key required
"""

import logging

from ..PairContext import PairContext
from .base import (
    BaseFetcher,
    FetcherNoDataError,
    optional_float,
    register_fetcher,
    to_float,
)

logger = logging.getLogger(__name__)


@register_fetcher
class DexScreenerFetcher(BaseFetcher):
    """Fetcher for the DexScreener pair search API.

    The search returns every pool containing the base token. The pool whose
    base and quote mints both match the pair is preferred; otherwise the first
    (most relevant) pool is used.
    """

    name = "dexscreener"
    BASE_URL = "https://api.dexscreener.com/latest/dex"

    async def fetch_price(self, ctx: PairContext) -> tuple[float, float | None]:
        """Fetch the pool price for the pair.

        :param ctx: Resolved pair.
        :returns: Tuple of (priceUsd, liquidity in USD).
        """
        response = await self._get(
            f"{self.BASE_URL}/search", params={"q": ctx.base.address}
        )
        pairs = response.json().get("pairs") or []
        if not pairs:
            raise FetcherNoDataError(f"no pools found for {ctx.base.symbol}")

        pool = next(
            (
                p
                for p in pairs
                if (p.get("baseToken") or {}).get("address") == ctx.base.address
                and (p.get("quoteToken") or {}).get("address") == ctx.quote.address
            ),
            pairs[0],
        )
        if pool is not pairs[0]:
            logger.debug(f"[dexscreener] Matched pool {pool.get('pairAddress')} for {ctx}")

        price = to_float(pool.get("priceUsd"), "priceUsd")
        liquidity = optional_float((pool.get("liquidity") or {}).get("usd"))
        return price, liquidity
