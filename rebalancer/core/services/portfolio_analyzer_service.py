import asyncio
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from ..domain.evaluation import ParsedAsset, ParsedStrategy, PortfolioState, TokenPosition
from ..domain.tokens import NATIVE_DECIMALS, is_native


class PortfolioAnalyzerService:
    """
    Stage 2: reads balances of every strategy token held by the DELEGATED
    account, prices them and computes weights + drift.

    drift_bps = max over tokens of |current_weight_bps - target_weight_bps|
    (the same definition is used by the scheduler and the executor).
    Never cached: every call goes back to the chain.
    """

    def __init__(self, chain_clients, price_oracle, logger: Optional[logging.Logger] = None):
        self._chains = chain_clients
        self._prices = price_oracle
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def analyze(self, parsed: ParsedStrategy) -> PortfolioState:
        client = self._chains.get(parsed.chain_id)
        account = parsed.delegator

        balances, decimals = await asyncio.gather(
            asyncio.gather(*(self._balance_of(client, a, account) for a in parsed.assets)),
            asyncio.gather(*(self._decimals_of(client, a) for a in parsed.assets)),
        )
        prices = await self._prices.get_prices(parsed.chain_id, [a.address for a in parsed.assets])

        values: List[Decimal] = []
        for asset, bal, dec in zip(parsed.assets, balances, decimals):
            price = prices[asset.address]
            values.append(Decimal(bal) / (Decimal(10) ** dec) * price)

        total = sum(values, Decimal(0))

        positions: List[TokenPosition] = []
        for asset, bal, dec, value in zip(parsed.assets, balances, decimals, values):
            positions.append(
                TokenPosition(
                    address=asset.address,
                    symbol=asset.symbol,
                    decimals=dec,
                    balance=bal,
                    price_usd=prices[asset.address],
                    value_usd=value,
                    current_weight_bps=_weight_bps(value, total),
                    target_weight_bps=asset.weight_bps,
                )
            )

        # empty account: nothing to move, report no drift
        drift = 0 if total <= 0 else max(abs(p.deviation_bps) for p in positions)

        self._logger.debug(
            "portfolio %s on %s: total=$%.2f drift=%sbps",
            account, parsed.chain_id, float(total), drift,
        )
        return PortfolioState(
            account=account,
            positions=tuple(positions),
            total_value_usd=total,
            drift_bps=drift,
        )

    async def _balance_of(self, client, asset: ParsedAsset, account: str) -> int:
        if is_native(asset.address):
            return int(await client.get_native_balance(account))
        return int(await client.get_erc20_balance(asset.address, account))

    async def _decimals_of(self, client, asset: ParsedAsset) -> int:
        if asset.decimals is not None:
            return int(asset.decimals)
        if is_native(asset.address):
            return NATIVE_DECIMALS
        return int(await client.get_decimals(asset.address))


def _weight_bps(value: Decimal, total: Decimal) -> int:
    if total <= 0:
        return 0
    return int((value / total * Decimal(10_000)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
