from decimal import Decimal
from typing import Optional

from ....config import ChainConfig
from ....core.domain.swap import Quote, QuoteRequest
from .base import HttpQuoteSourceAdapter, to_int


def format_units(amount: int, decimals: int) -> str:
    """
    Raw integer amount -> plain decimal string (no exponent), e.g. 1500000, 6 -> "1.5".
    """
    value = Decimal(int(amount)).scaleb(-int(decimals))
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


class MonorailAdapter(HttpQuoteSourceAdapter):
    """
    Monorail Pathfinder (Monad primary venue).

    GET /quote?source&from&to&amount(human units)&sender&max_slippage(bps)&deadline(sec)
    -> { "output", "min_output", "compound_impact" (pct string),
         "transaction": { "to", "data", "value" }, "gas_estimate" }
    """

    name = "monorail"

    def __init__(
        self,
        app_id: str = "rebalancer",
        base_url: str = "https://testnet-pathfinder.monorail.xyz/v4",
        deadline_sec: int = 1800,
        **kwargs,
    ):
        super().__init__(base_url=base_url, **kwargs)
        self._app_id = app_id
        self._deadline = deadline_sec

    async def _fetch_quote(self, request: QuoteRequest, chain: ChainConfig) -> Optional[Quote]:
        data = await self._request_json(
            "GET",
            "/quote",
            params={
                "source": self._app_id,
                "from": request.from_token,
                "to": request.to_token,
                "amount": format_units(request.from_amount, request.from_decimals),
                "sender": request.account,
                "max_slippage": request.slippage_bps,
                "deadline": self._deadline,
            },
        )
        if not data:
            return None

        tx = data.get("transaction") or {}
        if not data.get("output") or not tx.get("to") or not tx.get("data"):
            self._logger.warning("monorail response without route: %s", str(data)[:300])
            return None

        impact = data.get("compound_impact")
        return Quote(
            venue=self.name,
            from_token=request.from_token,
            to_token=request.to_token,
            from_amount=request.from_amount,
            to_amount=to_int(data["output"]),
            call_target=tx["to"],
            call_data=tx["data"],
            native_value=to_int(tx.get("value")),
            price_impact_pct=float(impact) if impact not in (None, "") else None,
            min_output=to_int(data["min_output"]) if data.get("min_output") else None,
            gas_estimate=to_int(data["gas_estimate"]) if data.get("gas_estimate") else None,
        )
