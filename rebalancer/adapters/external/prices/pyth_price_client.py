import asyncio
import logging
import time
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError

from ....config import ChainConfig
from ....core.domain.exceptions import PriceUnavailableError, RpcError
from ....core.domain.tokens import normalize_address
from ..chain.abis import PYTH_ABI


class PythPriceClient:
    """
    USD prices from the chain's Pyth contract (pull oracle, read with getPriceUnsafe).

    Configured stable tokens are priced at exactly 1. A token with no feed,
    a non-positive price or a price older than max_age_sec raises
    PriceUnavailableError; there is no silent fallback.
    """

    def __init__(
        self,
        chains: Dict[int, ChainConfig],
        chain_clients,
        stable_tokens: Iterable[str] = (),
        max_age_sec: int = 120,
        clock=time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self._chains = chains
        self._clients = chain_clients
        self._stables = {normalize_address(t) for t in stable_tokens}
        self._max_age = max_age_sec
        self._clock = clock
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def _feed_id(self, chain: ChainConfig, token: str) -> Optional[str]:
        for addr, feed in chain.price_feeds.items():
            if normalize_address(addr) == token:
                return feed
        return None

    async def get_price(self, chain_id: int, token: str) -> Decimal:
        token = normalize_address(token)
        if token in self._stables:
            return Decimal(1)

        chain = self._chains.get(int(chain_id))
        if chain is None or not chain.pyth_contract:
            raise PriceUnavailableError(token, f"no price oracle configured for chain_id={chain_id}")

        feed = self._feed_id(chain, token)
        if not feed:
            raise PriceUnavailableError(token, f"no price feed on {chain.name}")

        client = self._clients.get(chain.chain_id)
        pyth = client.w3.eth.contract(address=Web3.to_checksum_address(chain.pyth_contract), abi=PYTH_ABI)
        try:
            price, _conf, expo, publish_time = await client.read(
                pyth.functions.getPriceUnsafe(Web3.to_bytes(hexstr=feed)).call(),
                "getPriceUnsafe",
            )
        except ContractLogicError as exc:
            raise PriceUnavailableError(token, f"feed {feed} reverted: {exc}") from exc
        except RpcError as exc:
            raise PriceUnavailableError(token, str(exc)) from exc

        age = self._clock() - int(publish_time)
        if age > self._max_age:
            raise PriceUnavailableError(token, f"stale price ({int(age)}s old, max {self._max_age}s)")
        if int(price) <= 0:
            raise PriceUnavailableError(token, f"non-positive price {price}")

        return Decimal(int(price)).scaleb(int(expo))

    async def get_prices(self, chain_id: int, tokens: List[str]) -> Dict[str, Decimal]:
        addrs = [normalize_address(t) for t in tokens]
        prices = await asyncio.gather(*(self.get_price(chain_id, a) for a in addrs))
        return dict(zip(addrs, prices))
