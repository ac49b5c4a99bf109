import asyncio
import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from ...config import ChainConfig
from ..domain.enums.rebalance_enums import VenuePolicy
from ..domain.evaluation import ExecutionPlan, PlannedSwap
from ..domain.exceptions import ConfigurationError, NoAcceptableQuoteError
from ..domain.swap import Quote, QuoteRequest, RoutedSwap
from ..domain.tokens import WRAP_DEPOSIT_CALLDATA, is_native, normalize_address


def select_best_quote(quotes: Iterable[Quote], max_price_impact_pct: float) -> Optional[Quote]:
    """
    Drop quotes above the impact ceiling, then keep the strictly highest
    to_amount. Ties keep the first one seen.
    """
    best: Optional[Quote] = None
    for q in quotes:
        if q is None or q.to_amount <= 0:
            continue
        if (q.price_impact_pct or 0.0) > max_price_impact_pct:
            continue
        if best is None or q.to_amount > best.to_amount:
            best = q
    return best


def derive_price_impact_pct(to_amount: int, expected_to_amount: int) -> float:
    """
    Shortfall of the quoted output against the oracle-expected output, in percent.
    """
    if expected_to_amount <= 0:
        return 0.0
    return max(0.0, (expected_to_amount - to_amount) / expected_to_amount * 100)


class QuoteAggregatorService:
    """
    Turns an ExecutionPlan into executable swaps, one venue per planned swap.

    Venue policy per chain:
      best      all available venues queried concurrently, best output wins
      fallback  venues tried in priority order until one gives an acceptable quote

    A venue that fails or has no route contributes nothing. A planned swap
    with no acceptable quote fails the whole call.
    """

    def __init__(
        self,
        adapters,
        max_price_impact_pct: float = 3.0,
        slippage_bps: int = 100,
        logger: Optional[logging.Logger] = None,
    ):
        if isinstance(adapters, dict):
            self._adapters = dict(adapters)
        else:
            self._adapters = {a.name: a for a in adapters}
        self._max_impact = max_price_impact_pct
        self._slippage_bps = slippage_bps
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def _venues_for(self, chain: ChainConfig) -> List:
        out = []
        for name in chain.venues:
            adapter = self._adapters.get(name)
            if adapter is not None and adapter.is_available(chain):
                out.append(adapter)
        return out

    def adapter_status(self, chain: ChainConfig) -> Dict[str, bool]:
        return {
            name: (name in self._adapters and self._adapters[name].is_available(chain))
            for name in chain.venues
        }

    async def get_optimal_swaps(self, plan: ExecutionPlan, chain: ChainConfig, account: str) -> List[RoutedSwap]:
        routed: List[RoutedSwap] = []
        for planned in plan.swaps:
            if not chain.native_value_supported and is_native(planned.from_token):
                wrap = self._wrap_step(planned, chain)
                routed.append(wrap)
                planned = replace(planned, from_token=normalize_address(wrap.to_token))
            routed.append(await self._route(planned, chain, account))
        return routed

    def _wrap_step(self, planned: PlannedSwap, chain: ChainConfig) -> RoutedSwap:
        if not chain.wrapped_native:
            raise ConfigurationError(f"{chain.name}: native source needs wrapping but no wrapped token is configured")
        self._logger.info(
            "%s cannot forward native value, wrapping %s before swap to %s",
            chain.name, planned.from_amount, planned.to_token,
        )
        return RoutedSwap(
            from_token=planned.from_token,
            to_token=chain.wrapped_native,
            from_amount=planned.from_amount,
            to_amount=planned.from_amount,
            min_output=planned.from_amount,
            venue="wrap",
            target=chain.wrapped_native,
            call_data=WRAP_DEPOSIT_CALLDATA,
            native_value=planned.from_amount,
            price_impact_pct=0.0,
            is_wrap=True,
        )

    async def _route(self, planned: PlannedSwap, chain: ChainConfig, account: str) -> RoutedSwap:
        adapters = self._venues_for(chain)
        if not adapters:
            raise NoAcceptableQuoteError(planned.from_token, planned.to_token, f"no venue available on {chain.name}")

        request = QuoteRequest(
            chain_id=chain.chain_id,
            from_token=planned.from_token,
            to_token=planned.to_token,
            from_amount=planned.from_amount,
            account=account,
            from_decimals=planned.from_decimals,
            to_decimals=planned.to_decimals,
            slippage_bps=self._slippage_bps,
        )

        if chain.venue_policy == VenuePolicy.FALLBACK:
            best, seen = await self._fallback(adapters, request, chain, planned)
        else:
            best, seen = await self._best(adapters, request, chain, planned)

        if best is None:
            reason = (
                f"all {seen} quote(s) above {self._max_impact}% price impact"
                if seen
                else "no venue returned a quote"
            )
            raise NoAcceptableQuoteError(planned.from_token, planned.to_token, reason)

        self._logger.info(
            "Best quote %s -> %s on %s: %s out=%s impact=%.3f%%",
            planned.from_token, planned.to_token, chain.name, best.venue, best.to_amount, best.price_impact_pct,
        )
        return self._to_routed(best)

    async def _best(self, adapters, request: QuoteRequest, chain: ChainConfig, planned: PlannedSwap):
        results = await asyncio.gather(*(self._safe_quote(a, request, chain) for a in adapters))
        quotes = [self._with_impact(q, planned) for q in results if q is not None]
        return select_best_quote(quotes, self._max_impact), len(quotes)

    async def _fallback(self, adapters, request: QuoteRequest, chain: ChainConfig, planned: PlannedSwap):
        seen = 0
        for adapter in adapters:
            quote = await self._safe_quote(adapter, request, chain)
            if quote is None:
                continue
            seen += 1
            accepted = select_best_quote([self._with_impact(quote, planned)], self._max_impact)
            if accepted is not None:
                return accepted, seen
            self._logger.warning(
                "%s quote above impact ceiling on %s, trying next venue", adapter.name, chain.name
            )
        return None, seen

    async def _safe_quote(self, adapter, request: QuoteRequest, chain: ChainConfig) -> Optional[Quote]:
        try:
            return await adapter.get_quote(request, chain)
        except Exception as exc:
            self._logger.warning("%s quote failed on %s: %s", adapter.name, chain.name, exc)
            return None

    @staticmethod
    def _with_impact(quote: Quote, planned: PlannedSwap) -> Quote:
        if quote.price_impact_pct is not None:
            return quote
        return replace(quote, price_impact_pct=derive_price_impact_pct(quote.to_amount, planned.expected_to_amount))

    def _to_routed(self, quote: Quote) -> RoutedSwap:
        min_output = quote.min_output
        if not min_output:
            min_output = quote.to_amount * (10_000 - self._slippage_bps) // 10_000
        return RoutedSwap(
            from_token=quote.from_token,
            to_token=quote.to_token,
            from_amount=quote.from_amount,
            to_amount=quote.to_amount,
            min_output=int(min_output),
            venue=quote.venue,
            target=quote.call_target,
            call_data=quote.call_data,
            native_value=int(quote.native_value or 0),
            price_impact_pct=float(quote.price_impact_pct or 0.0),
            is_wrap=False,
        )
