from typing import Optional

from ....config import ChainConfig
from ....core.domain.swap import Quote, QuoteRequest
from .base import HttpQuoteSourceAdapter, to_int


class ParaSwapAdapter(HttpQuoteSourceAdapter):
    """
    ParaSwap v5, two calls:

    1) GET  /prices?srcToken&destToken&amount&srcDecimals&destDecimals&side=SELL&network
       -> { "priceRoute": { "destAmount", ... } }
    2) POST /transactions/{network}  body: srcToken, destToken, srcAmount, priceRoute,
       userAddress, slippage (bps)
       -> { "to", "data", "value", "gas"? }
    """

    name = "paraswap"

    def __init__(self, base_url: str = "https://apiv5.paraswap.io", partner: str = "rebalancer", **kwargs):
        super().__init__(base_url=base_url, **kwargs)
        self._partner = partner

    async def _fetch_quote(self, request: QuoteRequest, chain: ChainConfig) -> Optional[Quote]:
        src = self._venue_token(request.from_token)
        dst = self._venue_token(request.to_token)

        prices = await self._request_json(
            "GET",
            "/prices",
            params={
                "srcToken": src,
                "destToken": dst,
                "amount": str(request.from_amount),
                "srcDecimals": request.from_decimals,
                "destDecimals": request.to_decimals,
                "side": "SELL",
                "network": request.chain_id,
            },
        )
        price_route = (prices or {}).get("priceRoute")
        if not price_route or not price_route.get("destAmount"):
            return None

        tx = await self._request_json(
            "POST",
            f"/transactions/{request.chain_id}",
            params={"ignoreChecks": "true"},
            json={
                "srcToken": src,
                "destToken": dst,
                "srcAmount": str(request.from_amount),
                "srcDecimals": request.from_decimals,
                "destDecimals": request.to_decimals,
                "priceRoute": price_route,
                "userAddress": request.account,
                "partner": self._partner,
                "slippage": request.slippage_bps,
            },
        )
        if not tx or not tx.get("to") or not tx.get("data"):
            return None

        return Quote(
            venue=self.name,
            from_token=request.from_token,
            to_token=request.to_token,
            from_amount=request.from_amount,
            to_amount=to_int(price_route["destAmount"]),
            call_target=tx["to"],
            call_data=tx["data"],
            native_value=to_int(tx.get("value")),
            gas_estimate=to_int(tx["gas"]) if tx.get("gas") else None,
        )
