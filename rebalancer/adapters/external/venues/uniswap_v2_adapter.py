import logging
import time
from typing import List, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError

from ....config import ChainConfig
from ....core.domain.exceptions import QuoteSourceError, RpcError
from ....core.domain.swap import Quote, QuoteRequest
from ....core.domain.tokens import is_native, normalize_address
from ....core.services.rate_limiter import RateLimiter
from ..chain.abis import UNISWAP_V2_ROUTER_ABI
from .base import QuoteSourceAdapter

DEADLINE_SEC = 30 * 60


class UniswapV2Adapter(QuoteSourceAdapter):
    """
    On-chain quotes from a Uniswap V2 style router.

    Route is direct, or through the wrapped native token when the direct
    pair has no liquidity. ERC20 -> ERC20 only; native legs return None.
    """

    name = "uniswap_v2"

    def __init__(
        self,
        chain_clients,
        rate_limiter: Optional[RateLimiter] = None,
        timeout_sec: float = 10.0,
        enabled: bool = True,
        clock=time.time,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(rate_limiter=rate_limiter, timeout_sec=timeout_sec, enabled=enabled, logger=logger)
        self._clients = chain_clients
        self._clock = clock

    def is_available(self, chain: ChainConfig) -> bool:
        return self.enabled and bool(chain.uniswap_v2_router)

    def _paths(self, request: QuoteRequest, chain: ChainConfig) -> List[List[str]]:
        src = normalize_address(request.from_token)
        dst = normalize_address(request.to_token)
        paths = [[src, dst]]
        weth = normalize_address(chain.wrapped_native or "")
        if weth and weth not in (src, dst):
            paths.append([src, weth, dst])
        return paths

    async def _fetch_quote(self, request: QuoteRequest, chain: ChainConfig) -> Optional[Quote]:
        if is_native(request.from_token) or is_native(request.to_token):
            return None

        client = self._clients.get(chain.chain_id)
        router = client.w3.eth.contract(
            address=Web3.to_checksum_address(chain.uniswap_v2_router),
            abi=UNISWAP_V2_ROUTER_ABI,
        )

        best_path: Optional[List[str]] = None
        best_out = 0
        for path in self._paths(request, chain):
            checksummed = [Web3.to_checksum_address(a) for a in path]
            try:
                amounts = await client.read(
                    router.functions.getAmountsOut(int(request.from_amount), checksummed).call(),
                    "getAmountsOut",
                )
            except ContractLogicError:
                # pair missing or empty
                continue
            except RpcError as exc:
                raise QuoteSourceError(self.name, str(exc)) from exc

            out = int(amounts[-1]) if amounts else 0
            if out > best_out:
                best_out, best_path = out, checksummed

        if best_path is None or best_out <= 0:
            self._logger.info(
                "uniswap_v2 has no route %s -> %s on %s", request.from_token, request.to_token, chain.name
            )
            return None

        min_out = best_out * (10_000 - request.slippage_bps) // 10_000
        deadline = int(self._clock()) + DEADLINE_SEC
        call_data = router.encode_abi(
            "swapExactTokensForTokens",
            args=[
                int(request.from_amount),
                min_out,
                best_path,
                Web3.to_checksum_address(request.account),
                deadline,
            ],
        )

        return Quote(
            venue=self.name,
            from_token=request.from_token,
            to_token=request.to_token,
            from_amount=int(request.from_amount),
            to_amount=best_out,
            call_target=Web3.to_checksum_address(chain.uniswap_v2_router),
            call_data=call_data,
            native_value=0,
            price_impact_pct=None,
            min_output=min_out,
            gas_estimate=150_000 if len(best_path) == 2 else 220_000,
        )
