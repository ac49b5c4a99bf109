from decimal import Decimal

import pytest

from rebalancer.core.domain.enums.rebalance_enums import VenuePolicy
from rebalancer.core.domain.evaluation import ExecutionPlan, PlannedSwap
from rebalancer.core.domain.exceptions import ConfigurationError, NoAcceptableQuoteError
from rebalancer.core.domain.swap import Quote
from rebalancer.core.domain.tokens import NATIVE_TOKEN, WRAP_DEPOSIT_CALLDATA
from rebalancer.core.services.quote_aggregator_service import (
    QuoteAggregatorService,
    derive_price_impact_pct,
    select_best_quote,
)

from fakes import DELEGATOR, E18, ROUTER, TOKEN_A, TOKEN_B, WRAPPED, StaticQuoteAdapter, failing_adapter, make_chain


def _quote(venue, to_amount, impact=0.1):
    return Quote(
        venue=venue, from_token=TOKEN_A, to_token=TOKEN_B, from_amount=100,
        to_amount=to_amount, call_target=ROUTER, call_data="0x", price_impact_pct=impact,
    )


def _plan(*swaps):
    return ExecutionPlan(
        strategy_id="s", should_execute=True, reason="", drift_bps=2000, threshold_bps=500, swaps=tuple(swaps)
    )


def _planned(from_token=TOKEN_A, to_token=TOKEN_B, amount=20 * E18, expected=20 * E18):
    return PlannedSwap(
        from_token=from_token, to_token=to_token, from_amount=amount, expected_to_amount=expected,
        value_usd=Decimal(20), from_decimals=18, to_decimals=18, reason="test",
    )


# ---------------------------------------------------------------------- #
# selection
# ---------------------------------------------------------------------- #

def test_select_best_quote_highest_output_within_ceiling():
    quotes = [_quote("a", 100), _quote("b", 120, impact=5.0), _quote("c", 110)]
    assert select_best_quote(quotes, 3.0).venue == "c"


def test_select_best_quote_tie_keeps_first():
    assert select_best_quote([_quote("a", 100), _quote("b", 100)], 3.0).venue == "a"


def test_select_best_quote_impact_at_ceiling_is_accepted():
    assert select_best_quote([_quote("a", 100, impact=3.0)], 3.0).venue == "a"


def test_select_best_quote_nothing_acceptable():
    assert select_best_quote([None, _quote("a", 0), _quote("b", 100, impact=9.0)], 3.0) is None


def test_derive_price_impact_pct():
    assert derive_price_impact_pct(98, 100) == pytest.approx(2.0)
    assert derive_price_impact_pct(105, 100) == 0.0
    assert derive_price_impact_pct(1, 0) == 0.0


# ---------------------------------------------------------------------- #
# routing
# ---------------------------------------------------------------------- #

async def test_best_policy_picks_best_output_and_isolates_failures():
    alpha = StaticQuoteAdapter("alpha", ratio=Decimal("0.99"))
    beta = StaticQuoteAdapter("beta", ratio=Decimal("0.995"))
    gamma = failing_adapter("gamma")
    aggregator = QuoteAggregatorService([alpha, beta, gamma])
    chain = make_chain(venues=["alpha", "beta", "gamma"], venue_policy=VenuePolicy.BEST)

    (swap,) = await aggregator.get_optimal_swaps(_plan(_planned()), chain, DELEGATOR)

    assert swap.venue == "beta"
    assert swap.to_amount == int(20 * E18 * Decimal("0.995"))
    # default 100 bps slippage when the venue gives no min_output
    assert swap.min_output == swap.to_amount * 9900 // 10000
    assert swap.target == ROUTER
    assert alpha.requests[0].account == DELEGATOR


async def test_venue_min_output_is_kept():
    aggregator = QuoteAggregatorService([StaticQuoteAdapter("alpha", min_output=123)])
    chain = make_chain(venues=["alpha"])
    (swap,) = await aggregator.get_optimal_swaps(_plan(_planned()), chain, DELEGATOR)
    assert swap.min_output == 123


async def test_missing_impact_is_derived_from_expected_amount():
    # 10% below the oracle-expected output, venue does not report impact
    aggregator = QuoteAggregatorService([StaticQuoteAdapter("alpha", ratio=Decimal("0.9"), impact=None)])
    chain = make_chain(venues=["alpha"])
    with pytest.raises(NoAcceptableQuoteError) as exc_info:
        await aggregator.get_optimal_swaps(_plan(_planned()), chain, DELEGATOR)
    assert "above 3.0% price impact" in str(exc_info.value)


async def test_all_venues_failing_raises():
    aggregator = QuoteAggregatorService([failing_adapter("alpha"), StaticQuoteAdapter("beta", returns_none=True)])
    chain = make_chain(venues=["alpha", "beta"])
    with pytest.raises(NoAcceptableQuoteError) as exc_info:
        await aggregator.get_optimal_swaps(_plan(_planned()), chain, DELEGATOR)
    assert "no venue returned a quote" in str(exc_info.value)


async def test_no_available_venue_raises():
    aggregator = QuoteAggregatorService([StaticQuoteAdapter("alpha", available=False)])
    chain = make_chain(venues=["alpha", "unknown"])
    with pytest.raises(NoAcceptableQuoteError) as exc_info:
        await aggregator.get_optimal_swaps(_plan(_planned()), chain, DELEGATOR)
    assert "no venue available" in str(exc_info.value)
    assert aggregator.adapter_status(chain) == {"alpha": False, "unknown": False}


async def test_fallback_policy_stops_at_first_acceptable_quote():
    primary = StaticQuoteAdapter("alpha", ratio=Decimal("0.98"))
    secondary = StaticQuoteAdapter("beta", ratio=Decimal("0.999"))
    aggregator = QuoteAggregatorService([primary, secondary])
    chain = make_chain(venues=["alpha", "beta"], venue_policy=VenuePolicy.FALLBACK)

    (swap,) = await aggregator.get_optimal_swaps(_plan(_planned()), chain, DELEGATOR)

    assert swap.venue == "alpha"
    assert secondary.requests == []


async def test_fallback_policy_moves_on_after_error_or_high_impact():
    primary = failing_adapter("alpha")
    secondary = StaticQuoteAdapter("beta", impact=10.0)
    tertiary = StaticQuoteAdapter("gamma")
    aggregator = QuoteAggregatorService([primary, secondary, tertiary])
    chain = make_chain(venues=["alpha", "beta", "gamma"], venue_policy=VenuePolicy.FALLBACK)

    (swap,) = await aggregator.get_optimal_swaps(_plan(_planned()), chain, DELEGATOR)
    assert swap.venue == "gamma"


async def test_one_failed_swap_fails_the_whole_plan():
    aggregator = QuoteAggregatorService([StaticQuoteAdapter("alpha", impact=50.0)])
    chain = make_chain(venues=["alpha"])
    with pytest.raises(NoAcceptableQuoteError):
        await aggregator.get_optimal_swaps(_plan(_planned(), _planned(TOKEN_B, TOKEN_A)), chain, DELEGATOR)


async def test_native_source_is_wrapped_when_value_cannot_be_forwarded():
    alpha = StaticQuoteAdapter("alpha")
    aggregator = QuoteAggregatorService([alpha])
    chain = make_chain(venues=["alpha"], native_value_supported=False)

    wrap, swap = await aggregator.get_optimal_swaps(_plan(_planned(from_token=NATIVE_TOKEN)), chain, DELEGATOR)

    assert wrap.is_wrap is True
    assert wrap.target == WRAPPED
    assert wrap.call_data == WRAP_DEPOSIT_CALLDATA
    assert wrap.native_value == 20 * E18
    assert wrap.min_output == 20 * E18
    # the real swap now sells the wrapped token
    assert swap.from_token == WRAPPED
    assert alpha.requests[0].from_token == WRAPPED


async def test_native_source_without_wrapped_token_is_a_configuration_error():
    aggregator = QuoteAggregatorService([StaticQuoteAdapter("alpha")])
    chain = make_chain(venues=["alpha"], native_value_supported=False, wrapped_native=None)
    with pytest.raises(ConfigurationError):
        await aggregator.get_optimal_swaps(_plan(_planned(from_token=NATIVE_TOKEN)), chain, DELEGATOR)


async def test_native_source_is_not_wrapped_when_supported():
    aggregator = QuoteAggregatorService([StaticQuoteAdapter("alpha")])
    chain = make_chain(venues=["alpha"], native_value_supported=True)
    swaps = await aggregator.get_optimal_swaps(_plan(_planned(from_token=NATIVE_TOKEN)), chain, DELEGATOR)
    assert [s.is_wrap for s in swaps] == [False]
