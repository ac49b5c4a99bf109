import pytest

from rebalancer.config import GWEI, get_settings
from rebalancer.core.domain.enums.rebalance_enums import VenuePolicy
from rebalancer.core.domain.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    for key in ("CHAINS", "PRIVATE_KEY", "GAS_PRICE_MULTIPLIER", "MAX_GAS_PRICE_GWEI", "ENABLE_0X", "BASE_VENUES",
                "BASE_VENUE_POLICY", "MONAD_NATIVE_VALUE_SUPPORTED", "BASE_PRICE_FEEDS", "ENABLE_PRIVATE_RELAY"):
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    s = get_settings()

    assert set(s.chains) == {"monad", "base"}
    assert s.private_key == ""
    assert s.max_gas_price_wei == 100 * GWEI
    assert s.gas_price_multiplier == 1.1
    assert s.enable_private_relay is False

    monad = s.chain("monad")
    assert monad.chain_id == 10143
    assert monad.native_value_supported is False
    assert monad.venue_policy == VenuePolicy.FALLBACK
    assert monad.venues[0] == "monorail"

    base = s.chain_by_id(84532)
    assert base.name == "base"
    assert base.venue_policy == VenuePolicy.BEST


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("CHAINS", "base")
    monkeypatch.setenv("MAX_GAS_PRICE_GWEI", "2.5")
    monkeypatch.setenv("ENABLE_0X", "false")
    monkeypatch.setenv("BASE_VENUES", "paraswap, 0x")
    monkeypatch.setenv("BASE_VENUE_POLICY", "fallback")
    monkeypatch.setenv("BASE_PRICE_FEEDS", "0xABC:0xfeed")
    monkeypatch.setenv("ENABLE_PRIVATE_RELAY", "yes")

    s = get_settings()

    assert list(s.chains) == ["base"]
    assert s.max_gas_price_wei == int(2.5 * GWEI)
    assert s.venue_enabled("0x") is False
    assert s.venue_enabled("1inch") is True
    assert s.enable_private_relay is True
    base = s.chain("base")
    assert base.venues == ["paraswap", "0x"]
    assert base.venue_policy == VenuePolicy.FALLBACK
    assert base.price_feeds["0xabc"] == "0xfeed"


def test_multiplier_below_one_is_rejected(monkeypatch):
    monkeypatch.setenv("GAS_PRICE_MULTIPLIER", "0.9")
    with pytest.raises(ConfigurationError):
        get_settings()


def test_unknown_chain(monkeypatch):
    s = get_settings()
    with pytest.raises(ConfigurationError):
        s.chain("solana")
    with pytest.raises(ConfigurationError):
        s.chain_by_id(1)


def test_custom_chain_needs_rpc(monkeypatch):
    monkeypatch.setenv("CHAINS", "custom")
    with pytest.raises(ConfigurationError):
        get_settings()

    monkeypatch.setenv("CUSTOM_CHAIN_ID", "31337")
    monkeypatch.setenv("CUSTOM_RPC_URL", "http://localhost:8545")
    get_settings.cache_clear()
    custom = get_settings().chain("custom")
    assert custom.chain_id == 31337
    assert custom.venues == []
