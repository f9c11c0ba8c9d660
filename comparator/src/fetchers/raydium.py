"""Raydium fetcher.

Primary:  POST https://api.raydium.io/v2/sdk/token/real-price  {"tokens": [mint]}
Fallback: GET  https://api.raydium.io/v2/main/price
Rate Limit: Public, no key required

The fallback is a second endpoint of the same source: it is only tried when the
primary request fails at the transport/HTTP level, and both share one deadline.
"""

import logging

from ..PairContext import PairContext
from .base import (
    BaseFetcher,
    FetcherError,
    FetcherNoDataError,
    FetcherParseError,
    FetcherTimeoutError,
    register_fetcher,
    to_float,
)

logger = logging.getLogger(__name__)


@register_fetcher
class RaydiumFetcher(BaseFetcher):
    """Fetcher for Raydium token prices."""

    name = "raydium"
    BASE_URL = "https://api.raydium.io/v2"

    async def fetch_price(self, ctx: PairContext) -> tuple[float, float | None]:
        """Fetch the base token price, falling back to the price map endpoint.

        :param ctx: Resolved pair.
        :returns: Tuple of (price, None).
        """
        mint = ctx.base.address
        try:
            response = await self._post(
                f"{self.BASE_URL}/sdk/token/real-price",
                json={"tokens": [mint]},
            )
        except FetcherTimeoutError:
            raise
        except FetcherError as e:
            logger.info(f"[raydium] Primary endpoint failed ({e}), trying fallback")
            return await self._fetch_fallback(ctx), None

        entry = (response.json().get("data") or {}).get(mint)
        if not entry or entry.get("price") is None:
            raise FetcherNoDataError(f"{ctx.base.symbol} not in real-price response")
        return to_float(entry["price"], "price"), None

    async def _fetch_fallback(self, ctx: PairContext) -> float:
        """Read the base token price from the full price map.

        The map has been served both as ``{mint: price}`` and wrapped as
        ``{"success": ..., "data": {mint: {"price": ...}}}``.
        """
        mint = ctx.base.address
        response = await self._get(f"{self.BASE_URL}/main/price")
        data = response.json()
        if not isinstance(data, dict):
            raise FetcherParseError(f"unexpected price map type: {type(data).__name__}")

        prices = data.get("data") if isinstance(data.get("data"), dict) else data
        entry = prices.get(mint)
        if entry is None:
            raise FetcherNoDataError(f"{ctx.base.symbol} not in price map")
        if isinstance(entry, dict):
            entry = entry.get("price")
        return to_float(entry, "price")
