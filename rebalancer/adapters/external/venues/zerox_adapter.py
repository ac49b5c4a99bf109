from typing import Dict, Optional

from ....config import ChainConfig
from ....core.domain.swap import Quote, QuoteRequest
from .base import HttpQuoteSourceAdapter, to_int


class ZeroExAdapter(HttpQuoteSourceAdapter):
    """
    0x Swap API v1.

    GET /swap/v1/quote?sellToken&buyToken&sellAmount&takerAddress&slippagePercentage
    -> { "buyAmount", "to", "data", "value", "gas", "estimatedPriceImpact" }
    estimatedPriceImpact is already a percentage ("0.12" = 0.12%).
    """

    name = "0x"

    def __init__(self, api_key: str, base_url: str = "https://api.0x.org", **kwargs):
        super().__init__(base_url=base_url, **kwargs)
        self._api_key = api_key

    def is_available(self, chain: ChainConfig) -> bool:
        return self.enabled and bool(self._api_key)

    def _headers(self) -> Dict[str, str]:
        return {"0x-api-key": self._api_key}

    async def _fetch_quote(self, request: QuoteRequest, chain: ChainConfig) -> Optional[Quote]:
        data = await self._request_json(
            "GET",
            "/swap/v1/quote",
            params={
                "sellToken": self._venue_token(request.from_token),
                "buyToken": self._venue_token(request.to_token),
                "sellAmount": str(request.from_amount),
                "takerAddress": request.account,
                "slippagePercentage": str(request.slippage_bps / 10_000),
            },
        )
        if not data or not data.get("buyAmount") or not data.get("to"):
            return None

        impact = data.get("estimatedPriceImpact")
        return Quote(
            venue=self.name,
            from_token=request.from_token,
            to_token=request.to_token,
            from_amount=request.from_amount,
            to_amount=to_int(data["buyAmount"]),
            call_target=data["to"],
            call_data=data["data"],
            native_value=to_int(data.get("value")),
            price_impact_pct=float(impact) if impact not in (None, "") else None,
            gas_estimate=to_int(data["gas"]) if data.get("gas") else None,
        )
