"""CoinGecko fetcher.

Endpoint: https://api.coingecko.com/api/v3/simple/price?ids={id}&vs_currencies={quote}
Rate Limit: 30 calls/min (free), higher with API key
"""

import logging

from ..PairContext import PairContext
from .base import BaseFetcher, FetcherNoDataError, register_fetcher, to_float

logger = logging.getLogger(__name__)


@register_fetcher
class CoinGeckoFetcher(BaseFetcher):
    """Fetcher for CoinGecko API.

    CoinGecko is a centralized aggregator, not a DEX, but tracks the same
    tokens and serves as a reference price in the comparison.

    API tiers:
        - Free: api.coingecko.com (no key, 30 calls/min)
        - Demo: api.coingecko.com + x-cg-demo-api-key header
        - Pro: pro-api.coingecko.com + x-cg-pro-api-key header

    To use a demo key, prefix with "demo:": API_KEY_COINGECKO=demo:CG-xxxxx
    Pro keys need no prefix: API_KEY_COINGECKO=xxxxx
    """

    name = "coingecko"
    BASE_URL_FREE = "https://api.coingecko.com/api/v3"
    BASE_URL_PRO = "https://pro-api.coingecko.com/api/v3"

    def __init__(self, api_key: str | None = None, timeout: float | None = None, **kwargs):
        """Initialize with optional demo: prefix handling."""
        self._is_demo = False
        if api_key and api_key.lower().startswith("demo:"):
            self._is_demo = True
            api_key = api_key[5:]  # Strip "demo:" prefix
        super().__init__(api_key=api_key, timeout=timeout, **kwargs)

    @property
    def base_url(self) -> str:
        """Return appropriate base URL based on API key type."""
        if not self.has_api_key:
            return self.BASE_URL_FREE
        # Demo keys use free URL, pro keys use pro URL
        return self.BASE_URL_FREE if self._is_demo else self.BASE_URL_PRO

    @property
    def api_header(self) -> tuple[str, str] | None:
        """Return appropriate header name and value for API key."""
        if not self.api_key:
            return None
        header_name = "x-cg-demo-api-key" if self._is_demo else "x-cg-pro-api-key"
        return (header_name, self.api_key)

    # Map token symbols to CoinGecko IDs
    COIN_IDS = {
        "SOL": "solana",
        "USDC": "usd-coin",
        "USDT": "tether",
        "ETH": "ethereum",
        "BTC": "bitcoin",
        "BONK": "bonk",
        "JUP": "jupiter-exchange-solana",
        "RAY": "raydium",
    }

    # Stablecoin quotes are priced in the fiat they track
    VS_CURRENCIES = {
        "USDC": "usd",
        "USDT": "usd",
    }

    async def fetch_price(self, ctx: PairContext) -> tuple[float, float | None]:
        """Fetch price from CoinGecko.

        :param ctx: Resolved pair.
        :returns: Tuple of (price, None).
        """
        coin_id = self.COIN_IDS.get(ctx.base.symbol)
        if not coin_id:
            raise FetcherNoDataError(f"unknown coin: {ctx.base.symbol}")

        vs_currency = self.VS_CURRENCIES.get(ctx.quote.symbol, ctx.quote.symbol.lower())

        headers = {}
        if self.api_header:
            header_name, header_value = self.api_header
            headers[header_name] = header_value

        response = await self._get(
            f"{self.base_url}/simple/price",
            params={"ids": coin_id, "vs_currencies": vs_currency},
            headers=headers if headers else None,
        )
        data = response.json()

        if coin_id not in data:
            raise FetcherNoDataError(f"coin {coin_id} not in response")
        if vs_currency not in data[coin_id]:
            raise FetcherNoDataError(f"quote {vs_currency} not available for {coin_id}")

        return to_float(data[coin_id][vs_currency], vs_currency), None
