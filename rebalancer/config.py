import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .core.domain.enums.rebalance_enums import VenuePolicy
from .core.domain.exceptions import ConfigurationError
from .core.domain.tokens import NATIVE_TOKEN, normalize_address

load_dotenv()

GWEI = 10**9

ETH_USD_FEED = "0xff61491a931112ddf1bd8147cd1b641375f79f5825126d665480874634fd0ace"
USDC_USD_FEED = "0xeaa020c61cc479712813461ce153894a96a6c00b21ed0cfc2798d1f9a9e9c94a"


@dataclass
class ChainConfig:
    name: str
    chain_id: int
    rpc_url: str
    executor_address: Optional[str] = None
    wrapped_native: Optional[str] = None
    # False -> the executor contract cannot forward native value into swaps,
    # native sources are wrapped first
    native_value_supported: bool = True
    venues: List[str] = field(default_factory=list)  # priority order
    venue_policy: VenuePolicy = VenuePolicy.BEST
    default_gas_price_wei: int = 10 * GWEI
    private_rpc_url: Optional[str] = None
    intent_manager: Optional[str] = None
    uniswap_v2_router: Optional[str] = None
    pyth_contract: Optional[str] = None
    price_feeds: Dict[str, str] = field(default_factory=dict)  # token -> pyth feed id


# Built-in chain defaults; every field can be overridden with <NAME>_<FIELD> env vars.
_CHAIN_DEFAULTS: Dict[str, Dict] = {
    "monad": {
        "chain_id": 10143,
        "rpc_url": "https://testnet-rpc.monad.xyz",
        "wrapped_native": "0xb5a30b0fdc5ea94a52fdc42e3e9760cb8449fb37",
        "native_value_supported": False,
        "venues": ["monorail", "uniswap_v2"],
        "venue_policy": VenuePolicy.FALLBACK,
        "uniswap_v2_router": "0xfb8e1c3b833f9e67a71c859a132cf783b645e436",
        "pyth_contract": "0x2880aB155794e7179c9eE2e38200202908C17B43",
        "price_feeds": {
            NATIVE_TOKEN: ETH_USD_FEED,
            "0xb5a30b0fdc5ea94a52fdc42e3e9760cb8449fb37": ETH_USD_FEED,
            "0xf817257fed379853cde0fa4f97ab987181b1e5ea": USDC_USD_FEED,
        },
    },
    "base": {
        "chain_id": 84532,
        "rpc_url": "https://sepolia.base.org",
        "wrapped_native": "0x4200000000000000000000000000000000000006",
        "native_value_supported": True,
        "venues": ["1inch", "0x", "paraswap", "uniswap_v2"],
        "venue_policy": VenuePolicy.BEST,
        "uniswap_v2_router": "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D",
        "pyth_contract": "0xA2aa501b19aff244D90cc15a4Cf739D2725B5729",
        "price_feeds": {
            NATIVE_TOKEN: ETH_USD_FEED,
            "0x4200000000000000000000000000000000000006": ETH_USD_FEED,
        },
    },
}


@dataclass
class Settings:
    mongodb_uri: str
    mongodb_db_name: str
    private_key: str  # empty -> read-only, submit raises ConfigurationError

    chains: Dict[str, ChainConfig]

    # --- Scheduler / queue ---
    monitoring_interval_sec: int = 30
    health_check_interval_sec: int = 300
    gas_sample_interval_sec: int = 10
    queue_concurrency: int = 2
    queue_max_attempts: int = 3
    queue_backoff_base_sec: float = 2.0
    queue_lease_sec: int = 300

    # --- Strategy evaluation ---
    default_drift_threshold_bps: int = 500
    weight_tolerance_bps: int = 0
    min_trade_usd: float = 1.0
    price_max_age_sec: int = 120
    stable_token_addresses: List[str] = field(default_factory=list)

    # --- Quotes ---
    max_slippage_bps: int = 100
    max_price_impact_pct: float = 3.0
    enabled_venues: Dict[str, bool] = field(default_factory=dict)
    oneinch_api_key: str = ""
    zerox_api_key: str = ""
    monorail_app_id: str = "rebalancer"
    aggregator_timeout_sec: float = 10.0
    monorail_timeout_sec: float = 15.0

    # --- Gas ---
    max_gas_price_wei: int = 100 * GWEI
    gas_price_multiplier: float = 1.1
    gas_cache_ttl_sec: float = 15.0
    gas_stats_window_hours: float = 1.0

    # --- MEV ---
    enable_private_relay: bool = False
    enable_intents: bool = False
    mev_max_delay_ms: int = 3000
    intent_ttl_sec: int = 300

    # --- Chain I/O ---
    rpc_timeout_sec: float = 10.0
    receipt_timeout_sec: float = 120.0

    # --- Alerts ---
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    def chain(self, name: str) -> ChainConfig:
        cfg = self.chains.get(name)
        if cfg is None:
            raise ConfigurationError(f"unknown chain '{name}'")
        return cfg

    def chain_by_id(self, chain_id: int) -> ChainConfig:
        for cfg in self.chains.values():
            if cfg.chain_id == int(chain_id):
                return cfg
        raise ConfigurationError(f"no chain configured for chain_id={chain_id}")

    def venue_enabled(self, venue: str) -> bool:
        return self.enabled_venues.get(venue, True)


def _csv(s: Optional[str]) -> List[str]:
    if not s:
        return []
    return [x.strip() for x in s.split(",") if x.strip()]


def _bool(s: Optional[str]) -> bool:
    return str(s or "").strip().lower() in ("1", "true", "yes", "y", "on")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return _bool(raw)


def _feeds(s: Optional[str]) -> Dict[str, str]:
    """
    "0xtoken:0xfeed,0xtoken2:0xfeed2" -> {token: feed}
    """
    out: Dict[str, str] = {}
    for pair in _csv(s):
        token, _, feed = pair.partition(":")
        if token and feed:
            out[normalize_address(token)] = feed.strip()
    return out


def _gwei_to_wei(value: str) -> int:
    return int(float(value) * GWEI)


def _load_chain(name: str) -> ChainConfig:
    defaults = _CHAIN_DEFAULTS.get(name, {})
    prefix = name.upper() + "_"

    def env(key: str, fallback=None):
        v = os.environ.get(prefix + key)
        return v if v not in (None, "") else fallback

    chain_id = env("CHAIN_ID", defaults.get("chain_id"))
    rpc_url = env("RPC_URL", defaults.get("rpc_url"))
    if chain_id is None or not rpc_url:
        raise ConfigurationError(f"chain '{name}' needs {prefix}CHAIN_ID and {prefix}RPC_URL")

    venues = _csv(env("VENUES")) or list(defaults.get("venues", []))
    policy = VenuePolicy(env("VENUE_POLICY", defaults.get("venue_policy", VenuePolicy.BEST)))

    feeds = dict(defaults.get("price_feeds", {}))
    feeds.update(_feeds(env("PRICE_FEEDS")))

    native_raw = env("NATIVE_VALUE_SUPPORTED")
    native_supported = _bool(native_raw) if native_raw is not None else defaults.get("native_value_supported", True)

    default_gas = env("DEFAULT_GAS_PRICE_GWEI")

    return ChainConfig(
        name=name,
        chain_id=int(chain_id),
        rpc_url=rpc_url,
        executor_address=env("EXECUTOR_ADDRESS", defaults.get("executor_address")),
        wrapped_native=env("WRAPPED_NATIVE", defaults.get("wrapped_native")),
        native_value_supported=native_supported,
        venues=venues,
        venue_policy=policy,
        default_gas_price_wei=_gwei_to_wei(default_gas) if default_gas else 10 * GWEI,
        private_rpc_url=env("PRIVATE_RPC_URL", defaults.get("private_rpc_url")),
        intent_manager=env("INTENT_MANAGER", defaults.get("intent_manager")),
        uniswap_v2_router=env("UNISWAP_V2_ROUTER", defaults.get("uniswap_v2_router")),
        pyth_contract=env("PYTH_CONTRACT", defaults.get("pyth_contract")),
        price_feeds=feeds,
    )


@lru_cache()
def get_settings() -> Settings:
    chains = {name: _load_chain(name) for name in _csv(os.environ.get("CHAINS", "monad,base"))}

    multiplier = float(os.environ.get("GAS_PRICE_MULTIPLIER", "1.1"))
    if multiplier < 1.0:
        raise ConfigurationError(f"GAS_PRICE_MULTIPLIER must be >= 1, got {multiplier}")

    return Settings(
        mongodb_uri=os.environ.get("MONGODB_URI", "mongodb://localhost:27017"),
        mongodb_db_name=os.environ.get("MONGODB_DB_NAME", "rebalancer"),
        private_key=os.environ.get("PRIVATE_KEY", ""),  # keep empty when missing
        chains=chains,

        monitoring_interval_sec=int(os.environ.get("MONITORING_INTERVAL_SEC", "30")),
        health_check_interval_sec=int(os.environ.get("HEALTH_CHECK_INTERVAL_SEC", "300")),
        gas_sample_interval_sec=int(os.environ.get("GAS_SAMPLE_INTERVAL_SEC", "10")),
        queue_concurrency=int(os.environ.get("QUEUE_CONCURRENCY", "2")),
        queue_max_attempts=int(os.environ.get("QUEUE_MAX_ATTEMPTS", "3")),
        queue_backoff_base_sec=float(os.environ.get("QUEUE_BACKOFF_BASE_SEC", "2.0")),
        queue_lease_sec=int(os.environ.get("QUEUE_LEASE_SEC", "300")),

        default_drift_threshold_bps=int(os.environ.get("DEFAULT_DRIFT_THRESHOLD_BPS", "500")),
        weight_tolerance_bps=int(os.environ.get("WEIGHT_TOLERANCE_BPS", "0")),
        min_trade_usd=float(os.environ.get("MIN_TRADE_USD", "1.0")),
        price_max_age_sec=int(os.environ.get("PRICE_MAX_AGE_SEC", "120")),
        stable_token_addresses=[normalize_address(a) for a in _csv(os.environ.get("STABLE_TOKEN_ADDRESSES"))],

        max_slippage_bps=int(os.environ.get("MAX_SLIPPAGE_BPS", "100")),
        max_price_impact_pct=float(os.environ.get("MAX_PRICE_IMPACT_PCT", "3.0")),
        enabled_venues={
            "1inch": _env_bool("ENABLE_1INCH", True),
            "0x": _env_bool("ENABLE_0X", True),
            "paraswap": _env_bool("ENABLE_PARASWAP", True),
            "monorail": _env_bool("ENABLE_MONORAIL", True),
            "uniswap_v2": _env_bool("ENABLE_UNISWAP_V2", True),
        },
        oneinch_api_key=os.environ.get("ONEINCH_API_KEY", ""),
        zerox_api_key=os.environ.get("ZEROX_API_KEY", ""),
        monorail_app_id=os.environ.get("MONORAIL_APP_ID", "rebalancer"),
        aggregator_timeout_sec=float(os.environ.get("AGGREGATOR_TIMEOUT_SEC", "10")),
        monorail_timeout_sec=float(os.environ.get("MONORAIL_TIMEOUT_SEC", "15")),

        max_gas_price_wei=_gwei_to_wei(os.environ.get("MAX_GAS_PRICE_GWEI", "100")),
        gas_price_multiplier=multiplier,
        gas_cache_ttl_sec=float(os.environ.get("GAS_CACHE_TTL_SEC", "15")),
        gas_stats_window_hours=float(os.environ.get("GAS_STATS_WINDOW_HOURS", "1")),

        enable_private_relay=_bool(os.environ.get("ENABLE_PRIVATE_RELAY")),
        enable_intents=_bool(os.environ.get("ENABLE_INTENTS")),
        mev_max_delay_ms=int(os.environ.get("MEV_MAX_DELAY_MS", "3000")),
        intent_ttl_sec=int(os.environ.get("INTENT_TTL_SEC", "300")),

        rpc_timeout_sec=float(os.environ.get("RPC_TIMEOUT_SEC", "10")),
        receipt_timeout_sec=float(os.environ.get("RECEIPT_TIMEOUT_SEC", "120")),

        telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN", ""),
        telegram_chat_id=os.environ.get("TELEGRAM_CHAT_ID", ""),
    )
