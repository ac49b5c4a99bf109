import json

import httpx
import pytest
from eth_abi import decode
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError

from rebalancer.adapters.external.venues.base import to_int
from rebalancer.adapters.external.venues.monorail_adapter import MonorailAdapter, format_units
from rebalancer.adapters.external.venues.oneinch_adapter import OneInchAdapter
from rebalancer.adapters.external.venues.paraswap_adapter import ParaSwapAdapter
from rebalancer.adapters.external.venues.registry import VENUE_MIN_INTERVAL_SEC, build_adapters
from rebalancer.adapters.external.venues.uniswap_v2_adapter import UniswapV2Adapter
from rebalancer.adapters.external.venues.zerox_adapter import ZeroExAdapter
from rebalancer.config import Settings
from rebalancer.core.domain.exceptions import QuoteSourceError, RpcError
from rebalancer.core.domain.swap import QuoteRequest
from rebalancer.core.domain.tokens import AGGREGATOR_NATIVE_TOKEN, NATIVE_TOKEN

from fakes import CHAIN_ID, DELEGATOR, ROUTER, TOKEN_A, TOKEN_B, WRAPPED, make_chain

SWAP_TO = "0x" + "12" * 20


def _request(from_token=TOKEN_A, to_token=TOKEN_B, amount=10**18, from_decimals=18):
    return QuoteRequest(
        chain_id=CHAIN_ID, from_token=from_token, to_token=to_token, from_amount=amount,
        account=DELEGATOR, from_decimals=from_decimals, to_decimals=6, slippage_bps=50,
    )


def _transport(handler, seen):
    def wrapped(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)
    return httpx.MockTransport(wrapped)


def test_to_int_accepts_venue_number_formats():
    assert to_int("0x10") == 16
    assert to_int("123") == 123
    assert to_int(7) == 7
    assert to_int(None) == 0
    assert to_int("") == 0


def test_format_units():
    assert format_units(1_500_000, 6) == "1.5"
    assert format_units(10**18, 18) == "1"
    assert format_units(0, 18) == "0"
    assert format_units(1, 18) == "0.000000000000000001"


# ---------------------------------------------------------------------- #
# 1inch
# ---------------------------------------------------------------------- #

async def test_oneinch_quote():
    seen = []

    def handler(request):
        return httpx.Response(200, json={
            "dstAmount": "990000",
            "tx": {"to": SWAP_TO, "data": "0xabcdef", "value": "0", "gas": 180000},
        })

    adapter = OneInchAdapter("key", transport=_transport(handler, seen))
    quote = await adapter.get_quote(_request(from_token=NATIVE_TOKEN), make_chain())

    assert quote.venue == "1inch"
    assert quote.to_amount == 990000
    assert quote.call_target == SWAP_TO
    assert quote.call_data == "0xabcdef"
    assert quote.gas_estimate == 180000
    assert quote.price_impact_pct is None
    assert quote.from_token == NATIVE_TOKEN

    req = seen[0]
    assert req.url.path == f"/swap/v6.0/{CHAIN_ID}/swap"
    assert req.url.params["src"] == AGGREGATOR_NATIVE_TOKEN
    assert req.url.params["from"] == DELEGATOR
    assert req.url.params["slippage"] == "0.5"
    assert req.headers["Authorization"] == "Bearer key"


async def test_oneinch_unavailable_without_api_key():
    assert OneInchAdapter("").is_available(make_chain()) is False
    assert OneInchAdapter("k", enabled=False).is_available(make_chain()) is False


async def test_non_200_means_no_quote():
    adapter = OneInchAdapter("key", transport=httpx.MockTransport(lambda r: httpx.Response(400, text="bad pair")))
    assert await adapter.get_quote(_request(), make_chain()) is None


async def test_transport_error_raises_quote_source_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    adapter = OneInchAdapter("key", transport=httpx.MockTransport(handler))
    with pytest.raises(QuoteSourceError) as exc_info:
        await adapter.get_quote(_request(), make_chain())
    assert exc_info.value.venue == "1inch"


# ---------------------------------------------------------------------- #
# 0x
# ---------------------------------------------------------------------- #

async def test_zerox_quote_reports_impact_in_percent():
    seen = []

    def handler(request):
        return httpx.Response(200, json={
            "buyAmount": "995000", "to": SWAP_TO, "data": "0x01", "value": "0",
            "gas": "200000", "estimatedPriceImpact": "0.42",
        })

    adapter = ZeroExAdapter("key", transport=_transport(handler, seen))
    quote = await adapter.get_quote(_request(), make_chain())

    assert quote.to_amount == 995000
    assert quote.price_impact_pct == pytest.approx(0.42)
    assert quote.gas_estimate == 200000
    assert seen[0].url.params["slippagePercentage"] == "0.005"
    assert seen[0].headers["0x-api-key"] == "key"


async def test_zerox_without_route_returns_none():
    adapter = ZeroExAdapter("key", transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"code": 100})))
    assert await adapter.get_quote(_request(), make_chain()) is None


# ---------------------------------------------------------------------- #
# ParaSwap
# ---------------------------------------------------------------------- #

async def test_paraswap_prices_then_transaction():
    seen = []
    route = {"destAmount": "1000500", "bestRoute": []}

    def handler(request):
        if request.url.path == "/prices":
            return httpx.Response(200, json={"priceRoute": route})
        return httpx.Response(200, json={"to": SWAP_TO, "data": "0x02", "value": "0"})

    adapter = ParaSwapAdapter(transport=_transport(handler, seen))
    quote = await adapter.get_quote(_request(), make_chain())

    assert quote.to_amount == 1000500
    assert quote.call_target == SWAP_TO
    assert [r.method for r in seen] == ["GET", "POST"]
    body = json.loads(seen[1].content)
    assert body["priceRoute"] == route
    assert body["userAddress"] == DELEGATOR
    assert body["slippage"] == 50
    assert seen[1].url.path == f"/transactions/{CHAIN_ID}"


async def test_paraswap_without_price_route_skips_transaction_call():
    seen = []
    adapter = ParaSwapAdapter(transport=_transport(lambda r: httpx.Response(200, json={"error": "No routes"}), seen))
    assert await adapter.get_quote(_request(), make_chain()) is None
    assert len(seen) == 1


# ---------------------------------------------------------------------- #
# Monorail
# ---------------------------------------------------------------------- #

async def test_monorail_quote_uses_human_units():
    seen = []

    def handler(request):
        return httpx.Response(200, json={
            "output": "2500000", "min_output": "2480000", "compound_impact": "0.8",
            "transaction": {"to": SWAP_TO, "data": "0x03", "value": "0x0"},
            "gas_estimate": 300000,
        })

    adapter = MonorailAdapter(app_id="app", transport=_transport(handler, seen))
    quote = await adapter.get_quote(_request(amount=2_500_000, from_decimals=6), make_chain())

    assert quote.to_amount == 2500000
    assert quote.min_output == 2480000
    assert quote.price_impact_pct == pytest.approx(0.8)
    params = seen[0].url.params
    assert params["amount"] == "2.5"
    assert params["source"] == "app"
    assert params["sender"] == DELEGATOR
    assert params["max_slippage"] == "50"


# ---------------------------------------------------------------------- #
# Uniswap V2 (on-chain)
# ---------------------------------------------------------------------- #

class FakeRouterReader:
    """
    Answers getAmountsOut reads in call order: direct path, then via wrapped native.
    """

    def __init__(self, outcomes):
        self.w3 = AsyncWeb3(AsyncHTTPProvider("http://localhost:8545"))
        self._outcomes = list(outcomes)
        self.reads = []

    async def read(self, awaitable, what):
        awaitable.close()
        self.reads.append(what)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeRegistry:
    def __init__(self, client):
        self._client = client

    def get(self, chain_id):
        return self._client


def _uni_chain():
    return make_chain(uniswap_v2_router=ROUTER)


async def test_uniswap_picks_best_path_and_encodes_swap():
    reader = FakeRouterReader([[10**18, 900], [10**18, 5, 1000]])
    adapter = UniswapV2Adapter(FakeRegistry(reader), clock=lambda: 1_000)

    quote = await adapter.get_quote(_request(), _uni_chain())

    assert quote.to_amount == 1000
    assert quote.min_output == 1000 * 9950 // 10000
    assert quote.gas_estimate == 220_000
    assert quote.call_target == Web3.to_checksum_address(ROUTER)
    assert quote.call_data.startswith("0x38ed1739")

    amount_in, min_out, path, to, deadline = decode(
        ["uint256", "uint256", "address[]", "address", "uint256"],
        bytes.fromhex(quote.call_data[10:]),
    )
    assert amount_in == 10**18
    assert min_out == quote.min_output
    assert [p.lower() for p in path] == [TOKEN_A, WRAPPED, TOKEN_B]
    assert to.lower() == DELEGATOR
    assert deadline == 1_000 + 1800


async def test_uniswap_missing_pair_is_skipped():
    reader = FakeRouterReader([ContractLogicError("no pair"), [10**18, 5, 700]])
    adapter = UniswapV2Adapter(FakeRegistry(reader))
    quote = await adapter.get_quote(_request(), _uni_chain())
    assert quote.to_amount == 700


async def test_uniswap_no_route_returns_none():
    reader = FakeRouterReader([ContractLogicError("no pair"), ContractLogicError("no pair")])
    adapter = UniswapV2Adapter(FakeRegistry(reader))
    assert await adapter.get_quote(_request(), _uni_chain()) is None


async def test_uniswap_rpc_error_is_a_quote_source_error():
    reader = FakeRouterReader([RpcError("node down")])
    adapter = UniswapV2Adapter(FakeRegistry(reader))
    with pytest.raises(QuoteSourceError):
        await adapter.get_quote(_request(), _uni_chain())


async def test_uniswap_native_legs_and_missing_router():
    adapter = UniswapV2Adapter(FakeRegistry(FakeRouterReader([])))
    assert await adapter.get_quote(_request(from_token=NATIVE_TOKEN), _uni_chain()) is None
    assert adapter.is_available(make_chain(uniswap_v2_router=None)) is False


# ---------------------------------------------------------------------- #
# registry
# ---------------------------------------------------------------------- #

def test_build_adapters_applies_settings():
    settings = Settings(
        mongodb_uri="mongodb://x", mongodb_db_name="t", private_key="", chains={},
        enabled_venues={"paraswap": False}, oneinch_api_key="k",
    )
    adapters = build_adapters(settings, FakeRegistry(None))

    assert set(adapters) == set(VENUE_MIN_INTERVAL_SEC)
    assert adapters["paraswap"].enabled is False
    assert adapters["1inch"].is_available(make_chain()) is True
    assert adapters["0x"].is_available(make_chain()) is False
    assert adapters["1inch"]._rate_limiter.min_interval_sec == 1.0
