import logging
import time
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from typing import Dict, Optional

from ...config import ChainConfig
from ..domain.entities.gas_sample_entity import GasSample
from ..repositories.gas_price_repository import GasPriceRepository
from .gas_price_cache import GasPriceCache


@dataclass(frozen=True)
class GasStats:
    min: int
    max: int
    avg: int
    count: int


@dataclass(frozen=True)
class TxCostEstimate:
    gas_limit: int
    gas_price_wei: int
    cost_wei: int
    cost_usd: Optional[float] = None


def apply_multiplier(raw_wei: int, multiplier: float) -> int:
    """
    raw * multiplier rounded up, so the result is never below raw for multiplier >= 1.
    """
    scaled = Decimal(int(raw_wei)) * Decimal(str(multiplier))
    return max(int(raw_wei), int(scaled.to_integral_value(rounding=ROUND_CEILING)))


class GasOracleService:
    """
    Gas price per chain with a safety multiplier, plus a rolling
    "is gas cheap right now" statistic built from persisted samples.

    Favorable threshold over the trailing window:
        avg + (max - avg) / 4
    """

    def __init__(
        self,
        chains: Dict[int, ChainConfig],
        chain_clients,
        cache: GasPriceCache,
        gas_repo: GasPriceRepository,
        multiplier: float = 1.1,
        stats_window_hours: float = 1.0,
        logger: Optional[logging.Logger] = None,
        clock=time.time,
    ):
        self._chains = chains
        self._clients = chain_clients
        self._cache = cache
        self._repo = gas_repo
        self._multiplier = multiplier
        self._window_hours = stats_window_hours
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._clock = clock

    async def get_optimal_gas_price(self, chain: ChainConfig) -> int:
        cached = self._cache.get(chain.chain_id)
        if cached is not None:
            return cached

        try:
            raw = await self._clients.get(chain.chain_id).get_gas_price()
        except Exception as exc:
            self._logger.warning(
                "gas price fetch failed on %s, using default %s wei: %s",
                chain.name, chain.default_gas_price_wei, exc,
            )
            return chain.default_gas_price_wei

        price = apply_multiplier(raw, self._multiplier)
        self._cache.set(chain.chain_id, price)
        return price

    async def sample_once(self) -> int:
        """
        Sample every configured chain, persist and refresh the cache.
        Never raises: a chain whose node fails is sampled at its default
        price. Returns the number of samples stored.
        """
        stored = 0
        now_ms = int(self._clock() * 1000)
        for chain in self._chains.values():
            try:
                raw = await self._clients.get(chain.chain_id).get_gas_price()
                price = apply_multiplier(raw, self._multiplier)
                self._cache.set(chain.chain_id, price)
            except Exception as exc:
                # stored, never cached
                self._logger.warning(
                    "gas sampling failed on %s, storing default %s wei: %s", chain.name, chain.default_gas_price_wei, exc
                )
                raw = price = chain.default_gas_price_wei

            try:
                await self._repo.insert(
                    GasSample(chain_id=chain.chain_id, gas_price=price, raw_gas_price=int(raw), timestamp=now_ms)
                )
                stored += 1
            except Exception as exc:
                self._logger.warning("gas sample persist failed on %s: %s", chain.name, exc)
        return stored

    async def get_gas_stats(self, chain: ChainConfig, hours_back: Optional[float] = None) -> GasStats:
        hours = self._window_hours if hours_back is None else hours_back
        since_ms = int((self._clock() - hours * 3600) * 1000)
        samples = await self._repo.list_since(chain.chain_id, since_ms)
        if not samples:
            return GasStats(min=0, max=0, avg=0, count=0)
        prices = [s.gas_price for s in samples]
        return GasStats(
            min=min(prices),
            max=max(prices),
            avg=sum(prices) // len(prices),
            count=len(prices),
        )

    async def is_gas_favorable(self, chain: ChainConfig) -> bool:
        stats = await self.get_gas_stats(chain)
        if stats.count == 0:
            # no history yet, nothing says gas is spiking
            return True
        threshold = stats.avg + (stats.max - stats.avg) // 4
        current = await self.get_optimal_gas_price(chain)
        favorable = current <= threshold
        self._logger.debug(
            "gas on %s: current=%s threshold=%s favorable=%s", chain.name, current, threshold, favorable
        )
        return favorable

    async def estimate_tx_cost(
        self,
        chain: ChainConfig,
        gas_limit: int,
        native_price_usd: Optional[Decimal] = None,
    ) -> TxCostEstimate:
        gas_price = await self.get_optimal_gas_price(chain)
        cost_wei = int(gas_limit) * gas_price
        cost_usd = None
        if native_price_usd is not None:
            cost_usd = float(Decimal(cost_wei) / Decimal(10**18) * Decimal(native_price_usd))
        return TxCostEstimate(gas_limit=int(gas_limit), gas_price_wei=gas_price, cost_wei=cost_wei, cost_usd=cost_usd)
