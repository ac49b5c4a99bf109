from typing import Dict

from ....config import Settings
from ....core.services.rate_limiter import RateLimiter
from .base import QuoteSourceAdapter
from .monorail_adapter import MonorailAdapter
from .oneinch_adapter import OneInchAdapter
from .paraswap_adapter import ParaSwapAdapter
from .uniswap_v2_adapter import UniswapV2Adapter
from .zerox_adapter import ZeroExAdapter

# minimum delay between two requests to the same venue
VENUE_MIN_INTERVAL_SEC: Dict[str, float] = {
    "1inch": 1.0,
    "0x": 0.5,
    "paraswap": 0.5,
    "monorail": 0.2,
    "uniswap_v2": 0.0,
}


def build_adapters(settings: Settings, chain_clients) -> Dict[str, QuoteSourceAdapter]:
    """
    One adapter (and one RateLimiter) per venue, shared by every chain.
    """

    def common(name: str, timeout: float) -> Dict:
        return {
            "rate_limiter": RateLimiter(VENUE_MIN_INTERVAL_SEC[name]),
            "timeout_sec": timeout,
            "enabled": settings.venue_enabled(name),
        }

    adapters = [
        OneInchAdapter(settings.oneinch_api_key, **common("1inch", settings.aggregator_timeout_sec)),
        ZeroExAdapter(settings.zerox_api_key, **common("0x", settings.aggregator_timeout_sec)),
        ParaSwapAdapter(**common("paraswap", settings.aggregator_timeout_sec)),
        MonorailAdapter(app_id=settings.monorail_app_id, **common("monorail", settings.monorail_timeout_sec)),
        UniswapV2Adapter(chain_clients, **common("uniswap_v2", settings.rpc_timeout_sec)),
    ]
    return {a.name: a for a in adapters}
