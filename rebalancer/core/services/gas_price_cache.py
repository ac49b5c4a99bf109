import time
from typing import Dict, Optional, Tuple


class GasPriceCache:
    """
    Process-wide gas price cache, one entry per chain.

    Methods never await, so each read/write is atomic for the event loop.
    ttl_sec <= 0 keeps entries until overwritten.
    """

    def __init__(self, ttl_sec: float = 15.0, clock=time.monotonic):
        self._ttl = ttl_sec
        self._clock = clock
        self._entries: Dict[int, Tuple[int, float]] = {}

    def get(self, chain_id: int) -> Optional[int]:
        entry = self._entries.get(chain_id)
        if entry is None:
            return None
        price, stored_at = entry
        if self._ttl > 0 and self._clock() - stored_at > self._ttl:
            self._entries.pop(chain_id, None)
            return None
        return price

    def set(self, chain_id: int, price_wei: int) -> None:
        self._entries[chain_id] = (int(price_wei), self._clock())

    def clear(self) -> None:
        self._entries.clear()
