"""
Telegram Bot API notifier (HTTP only).

Unconfigured (missing token or chat id) -> every call is a logged no-op.
Delivery problems are logged, never raised.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from ....core.services.notifier import Notifier


class TelegramNotifier(Notifier):
    def __init__(
        self,
        token: str = "",
        chat_id: str = "",
        timeout_sec: float = 10.0,
        base_url: str = "https://api.telegram.org",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._chat_id = chat_id
        self._timeout = timeout_sec
        self._transport = transport
        self._base = f"{base_url.rstrip('/')}/bot{token}"
        self.enabled = bool(token and chat_id)
        if not self.enabled:
            self._logger.warning(
                "Telegram not configured (missing TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID). Notifications will be skipped."
            )

    async def _post(self, method: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.enabled:
            return None
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.post(f"{self._base}/{method}", json=payload)
        except httpx.HTTPError as exc:
            self._logger.warning("[TELEGRAM] error: %s", exc)
            return None

        if r.status_code != 200:
            self._logger.warning("[TELEGRAM] HTTP %s: %s", r.status_code, r.text[:300])
            return None
        try:
            data = r.json()
        except ValueError:
            self._logger.warning("[TELEGRAM] non-JSON response: %s", r.text[:300])
            return None
        if not data.get("ok"):
            self._logger.warning("[TELEGRAM] API not ok: %s", str(data)[:300])
            return None
        return data

    async def send_text(self, text: str) -> Optional[int]:
        resp = await self._post(
            "sendMessage",
            {"chat_id": self._chat_id, "text": text, "disable_web_page_preview": True},
        )
        if resp and "result" in resp:
            return resp["result"].get("message_id")
        return None

    async def rebalance_started(self, strategy_id: str, drift_bps: int) -> None:
        await self.send_text(f"Rebalance started\nstrategy: {strategy_id}\ndrift: {drift_bps / 100:.2f}%")

    async def rebalance_completed(
        self,
        strategy_id: str,
        success: bool,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        if success:
            await self.send_text(f"Rebalance completed\nstrategy: {strategy_id}\ntx: {tx_hash}")
        else:
            await self.send_text(f"Rebalance FAILED\nstrategy: {strategy_id}\nerror: {error}")

    async def system_alert(self, message: str) -> None:
        await self.send_text(f"[ALERT] {message}")
