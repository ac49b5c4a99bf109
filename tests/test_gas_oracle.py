import pytest

from rebalancer.core.domain.entities.gas_sample_entity import GasSample
from rebalancer.core.domain.exceptions import RpcError
from rebalancer.core.services.gas_oracle_service import GasOracleService, apply_multiplier
from rebalancer.core.services.gas_price_cache import GasPriceCache

from fakes import CHAIN_ID, GWEI, FakeChainClient, FakeChainRegistry, InMemoryGasPriceRepository, make_chain

NOW = 1_700_000_000.0


class Tick:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def _oracle(client=None, repo=None, cache=None, multiplier=1.1):
    client = client or FakeChainClient(gas_price=10 * GWEI)
    chain = make_chain()
    return GasOracleService(
        chains={chain.chain_id: chain},
        chain_clients=FakeChainRegistry({CHAIN_ID: client}),
        cache=cache or GasPriceCache(ttl_sec=15),
        gas_repo=repo or InMemoryGasPriceRepository(),
        multiplier=multiplier,
        clock=lambda: NOW,
    ), chain, client


def test_apply_multiplier_rounds_up_and_never_lowers():
    assert apply_multiplier(10 * GWEI, 1.1) == 11 * GWEI
    assert apply_multiplier(3, 1.1) == 4
    assert apply_multiplier(100, 1.0) == 100


def test_cache_expires_after_ttl():
    tick = Tick()
    cache = GasPriceCache(ttl_sec=15, clock=tick)
    cache.set(1, 42)
    tick.now = 15
    assert cache.get(1) == 42
    tick.now = 15.01
    assert cache.get(1) is None


def test_cache_without_ttl_keeps_entries():
    tick = Tick()
    cache = GasPriceCache(ttl_sec=0, clock=tick)
    cache.set(1, 42)
    tick.now = 10**6
    assert cache.get(1) == 42


async def test_optimal_gas_price_applies_multiplier_and_caches():
    oracle, chain, client = _oracle()
    assert await oracle.get_optimal_gas_price(chain) == 11 * GWEI

    client.gas_price = 50 * GWEI
    # served from cache
    assert await oracle.get_optimal_gas_price(chain) == 11 * GWEI


async def test_optimal_gas_price_falls_back_to_chain_default():
    client = FakeChainClient()
    client.gas_price_error = RpcError("node down")
    oracle, chain, _ = _oracle(client=client)
    assert await oracle.get_optimal_gas_price(chain) == chain.default_gas_price_wei


async def test_sample_once_persists_and_refreshes_cache():
    repo = InMemoryGasPriceRepository()
    cache = GasPriceCache(ttl_sec=15)
    oracle, chain, _ = _oracle(repo=repo, cache=cache)

    assert await oracle.sample_once() == 1

    (sample,) = repo.samples
    assert sample.chain_id == CHAIN_ID
    assert sample.gas_price == 11 * GWEI
    assert sample.raw_gas_price == 10 * GWEI
    assert sample.timestamp == int(NOW * 1000)
    assert cache.get(CHAIN_ID) == 11 * GWEI


async def test_sample_once_stores_default_price_when_node_fails():
    client = FakeChainClient()
    client.gas_price_error = RpcError("node down")
    repo = InMemoryGasPriceRepository()
    cache = GasPriceCache(ttl_sec=15)
    oracle, chain, _ = _oracle(client=client, repo=repo, cache=cache)

    assert await oracle.sample_once() == 1

    (sample,) = repo.samples
    assert sample.gas_price == chain.default_gas_price_wei
    assert sample.raw_gas_price == chain.default_gas_price_wei
    assert sample.timestamp == int(NOW * 1000)
    assert cache.get(CHAIN_ID) is None


def _samples(*gwei, age_sec=60):
    ts = int((NOW - age_sec) * 1000)
    return [GasSample(chain_id=CHAIN_ID, gas_price=g * GWEI, raw_gas_price=g * GWEI, timestamp=ts) for g in gwei]


async def test_gas_stats_over_window():
    stale = _samples(500, age_sec=7200)
    repo = InMemoryGasPriceRepository(_samples(10, 20, 30) + stale)
    oracle, chain, _ = _oracle(repo=repo)

    stats = await oracle.get_gas_stats(chain)
    assert (stats.min, stats.max, stats.avg, stats.count) == (10 * GWEI, 30 * GWEI, 20 * GWEI, 3)

    wide = await oracle.get_gas_stats(chain, hours_back=3)
    assert wide.count == 4


@pytest.mark.parametrize(
    "current_gwei,expected",
    [
        (20, True),    # threshold = 20 + (40 - 20) / 4 = 25 gwei, current 22
        (25, False),   # current 27.5
    ],
)
async def test_is_gas_favorable(current_gwei, expected):
    repo = InMemoryGasPriceRepository(_samples(10, 10, 40))
    oracle, chain, _ = _oracle(client=FakeChainClient(gas_price=current_gwei * GWEI), repo=repo)
    assert await oracle.is_gas_favorable(chain) is expected


async def test_gas_is_favorable_without_history():
    oracle, chain, _ = _oracle()
    assert await oracle.is_gas_favorable(chain) is True


async def test_estimate_tx_cost():
    oracle, chain, _ = _oracle()
    estimate = await oracle.estimate_tx_cost(chain, 100_000, native_price_usd=2000)
    assert estimate.gas_price_wei == 11 * GWEI
    assert estimate.cost_wei == 100_000 * 11 * GWEI
    assert estimate.cost_usd == pytest.approx(100_000 * 11e-9 * 2000)
