import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ....config import ChainConfig
from ....core.domain.exceptions import QuoteSourceError
from ....core.domain.swap import Quote, QuoteRequest
from ....core.domain.tokens import AGGREGATOR_NATIVE_TOKEN, is_native
from ....core.services.rate_limiter import RateLimiter


class QuoteSourceAdapter(ABC):
    """
    Uniform interface to one liquidity venue.

    get_quote() returns a Quote, or None when the venue has no route.
    Transport problems raise QuoteSourceError; the aggregator isolates them.
    Every call first waits on the venue's RateLimiter.
    """

    name: str = ""

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        timeout_sec: float = 10.0,
        enabled: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self._rate_limiter = rate_limiter or RateLimiter(0)
        self._timeout = timeout_sec
        self.enabled = enabled
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def is_available(self, chain: ChainConfig) -> bool:
        """
        Enabled and usable on this chain (keys, contract addresses...).
        """
        return self.enabled

    async def get_quote(self, request: QuoteRequest, chain: ChainConfig) -> Optional[Quote]:
        await self._rate_limiter.acquire()
        return await self._fetch_quote(request, chain)

    @abstractmethod
    async def _fetch_quote(self, request: QuoteRequest, chain: ChainConfig) -> Optional[Quote]:
        ...


class HttpQuoteSourceAdapter(QuoteSourceAdapter):
    """
    Base for REST aggregators: bounded-timeout httpx client, non-200 -> None.
    """

    def __init__(
        self,
        base_url: str,
        rate_limiter: Optional[RateLimiter] = None,
        timeout_sec: float = 10.0,
        enabled: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(rate_limiter=rate_limiter, timeout_sec=timeout_sec, enabled=enabled, logger=logger)
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {}

    async def _request_json(self, method: str, path: str, **kwargs) -> Optional[Dict[str, Any]]:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise QuoteSourceError(self.name, f"{method} {url} failed: {exc!r}") from exc

        if r.status_code == 200:
            return r.json()
        self._logger.warning("%s non-200 %s: %s %s", self.name, url, r.status_code, r.text[:300])
        return None

    @staticmethod
    def _venue_token(address: str) -> str:
        return AGGREGATOR_NATIVE_TOKEN if is_native(address) else address


def to_int(value: Any) -> int:
    """
    Venue numbers come as ints, decimal strings or 0x-hex strings.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, str):
        return int(value, 16) if value.lower().startswith("0x") else int(value)
    return int(value)
