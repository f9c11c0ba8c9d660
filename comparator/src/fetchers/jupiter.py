"""Jupiter aggregator fetcher.

Endpoint: https://quote-api.jup.ag/v6/quote?inputMint={base}&outputMint={quote}&amount={1 base token}
Rate Limit: Public, no key required
Price: swap output for exactly one base token, scaled by the quote token's decimals
"""

import logging

from ..PairContext import PairContext
from .base import BaseFetcher, FetcherNoDataError, register_fetcher, to_float

logger = logging.getLogger(__name__)


@register_fetcher
class JupiterFetcher(BaseFetcher):
    """Fetcher for the Jupiter swap quote API.

    Asks for the best route swapping one whole base token into the quote
    token; the quoted output amount is the executable price.
    """

    name = "jupiter"
    BASE_URL = "https://quote-api.jup.ag/v6"
    SLIPPAGE_BPS = 50

    async def fetch_price(self, ctx: PairContext) -> tuple[float, float | None]:
        """Fetch the swap quote for one base token.

        :param ctx: Resolved pair.
        :returns: Tuple of (price, None); Jupiter reports no liquidity figure.
        """
        response = await self._get(
            f"{self.BASE_URL}/quote",
            params={
                "inputMint": ctx.base.address,
                "outputMint": ctx.quote.address,
                "amount": str(10 ** ctx.base.decimals),
                "slippageBps": self.SLIPPAGE_BPS,
            },
        )
        data = response.json()

        out_amount = data.get("outAmount")
        if out_amount in (None, ""):
            raise FetcherNoDataError(data.get("error") or f"no route for {ctx}")

        return to_float(out_amount, "outAmount") / 10 ** ctx.quote.decimals, None
