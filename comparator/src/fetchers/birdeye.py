"""Birdeye fetcher.

Endpoint: https://public-api.birdeye.so/defi/price?address={base mint}
Rate Limit: Low without key; set API_KEY_BIRDEYE (or BIRDEYE_API_KEY) for more
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
class BirdeyeFetcher(BaseFetcher):
    """Fetcher for the Birdeye token price API (Solana chain)."""

    name = "birdeye"
    BASE_URL = "https://public-api.birdeye.so"
    CHAIN = "solana"

    async def fetch_price(self, ctx: PairContext) -> tuple[float, float | None]:
        """Fetch the aggregated token price.

        :param ctx: Resolved pair.
        :returns: Tuple of (value, liquidity).
        """
        headers = {"x-chain": self.CHAIN}
        if self.has_api_key:
            headers["X-API-KEY"] = self.api_key

        response = await self._get(
            f"{self.BASE_URL}/defi/price",
            params={"address": ctx.base.address},
            headers=headers,
        )
        payload = response.json()

        data = payload.get("data")
        if not data or data.get("value") is None:
            raise FetcherNoDataError(
                payload.get("message") or f"no price for {ctx.base.symbol}"
            )

        return to_float(data["value"], "data.value"), optional_float(data.get("liquidity"))
