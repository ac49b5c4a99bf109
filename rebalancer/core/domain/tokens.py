NATIVE_TOKEN = "0x0000000000000000000000000000000000000000"
# placeholder most HTTP aggregators use for the native asset
AGGREGATOR_NATIVE_TOKEN = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

NATIVE_DECIMALS = 18

# WETH9-style deposit()
WRAP_DEPOSIT_CALLDATA = "0xd0e30db0"


def normalize_address(address: str) -> str:
    return (address or "").strip().lower()


def is_native(address: str) -> bool:
    addr = normalize_address(address)
    return addr in (NATIVE_TOKEN, AGGREGATOR_NATIVE_TOKEN.lower())
