from typing import Dict, Optional

from ....config import ChainConfig
from ....core.domain.swap import Quote, QuoteRequest
from .base import HttpQuoteSourceAdapter, to_int


class OneInchAdapter(HttpQuoteSourceAdapter):
    """
    1inch Swap API v6.

    GET /swap/v6.0/{chainId}/swap?src&dst&amount&from&slippage
    -> { "dstAmount": "...", "tx": { "to", "data", "value", "gas" } }
    Does not report price impact.
    """

    name = "1inch"

    def __init__(self, api_key: str, base_url: str = "https://api.1inch.dev", **kwargs):
        super().__init__(base_url=base_url, **kwargs)
        self._api_key = api_key

    def is_available(self, chain: ChainConfig) -> bool:
        return self.enabled and bool(self._api_key)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}", "accept": "application/json"}

    async def _fetch_quote(self, request: QuoteRequest, chain: ChainConfig) -> Optional[Quote]:
        data = await self._request_json(
            "GET",
            f"/swap/v6.0/{request.chain_id}/swap",
            params={
                "src": self._venue_token(request.from_token),
                "dst": self._venue_token(request.to_token),
                "amount": str(request.from_amount),
                "from": request.account,
                "slippage": request.slippage_bps / 100,
                "disableEstimate": "true",
            },
        )
        if not data:
            return None

        tx = data.get("tx") or {}
        to_amount = data.get("dstAmount") or data.get("toAmount")
        if not to_amount or not tx.get("to") or not tx.get("data"):
            self._logger.warning("1inch response without route: %s", str(data)[:300])
            return None

        return Quote(
            venue=self.name,
            from_token=request.from_token,
            to_token=request.to_token,
            from_amount=request.from_amount,
            to_amount=to_int(to_amount),
            call_target=tx["to"],
            call_data=tx["data"],
            native_value=to_int(tx.get("value")),
            gas_estimate=to_int(tx["gas"]) if tx.get("gas") else None,
        )
