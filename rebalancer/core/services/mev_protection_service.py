import asyncio
import logging
import random
import secrets
import time
from dataclasses import replace
from typing import Optional

from ...config import ChainConfig
from ..domain.entities.intent_entity import IntentEntity
from ..domain.enums.rebalance_enums import IntentStatus, MevMode
from ..domain.swap import TxRequest
from ..repositories.intent_repository import IntentRepository

# fee at stake (gas * price) above this counts as "high value" for risk scoring
HIGH_VALUE_WEI = 10**18


class MevProtectionService:
    """
    Transforms an outgoing TxRequest before broadcast.

    Preference order, each step falling through when unconfigured or failing:
      1. private relay   (ENABLE_PRIVATE_RELAY + chain.private_rpc_url)
      2. intent record   (ENABLE_INTENTS + chain.intent_manager)
      3. random delay    (0..max_delay_ms, always available)
    """

    def __init__(
        self,
        intent_repo: Optional[IntentRepository],
        enable_private_relay: bool = False,
        enable_intents: bool = False,
        max_delay_ms: int = 3000,
        intent_ttl_sec: int = 300,
        rng: Optional[random.Random] = None,
        sleep=asyncio.sleep,
        clock=time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self._intents = intent_repo
        self._relay = enable_private_relay
        self._intents_enabled = enable_intents
        self._max_delay_ms = max(0, int(max_delay_ms))
        self._intent_ttl = intent_ttl_sec
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def protect(
        self,
        tx: TxRequest,
        chain: ChainConfig,
        strategy_id: str = "",
        user_address: str = "",
    ) -> TxRequest:
        risk = self.estimate_mev_risk(tx)
        self._logger.info("MEV: risk score %.1f for strategy %s on %s", risk, strategy_id, chain.name)

        if self._relay:
            if chain.private_rpc_url:
                self._logger.info("MEV: routing tx through private relay on %s", chain.name)
                return replace(tx, relay_url=chain.private_rpc_url, mev_mode=MevMode.PRIVATE_RELAY.value)
            self._logger.warning("MEV: private relay enabled but no relay URL for %s, falling back", chain.name)

        if self._intents_enabled:
            if chain.intent_manager and self._intents is not None:
                try:
                    intent_id = await self._create_intent(tx, chain, strategy_id, user_address, risk)
                    return replace(tx, intent_id=intent_id, mev_mode=MevMode.INTENT.value)
                except Exception as exc:
                    self._logger.warning("MEV: intent creation failed on %s, falling back: %s", chain.name, exc)
            else:
                self._logger.warning("MEV: intents enabled but no intent manager for %s, falling back", chain.name)

        delay_ms = self._rng.randint(0, self._max_delay_ms) if self._max_delay_ms else 0
        if delay_ms:
            self._logger.debug("MEV: random pre-broadcast delay %sms", delay_ms)
            await self._sleep(delay_ms / 1000)
        return replace(tx, mev_mode=MevMode.RANDOM_DELAY.value)

    async def _create_intent(
        self, tx: TxRequest, chain: ChainConfig, strategy_id: str, user_address: str, risk: float
    ) -> str:
        now = self._clock()
        deadline = int(now) + self._intent_ttl
        intent = IntentEntity(
            id=secrets.token_hex(8),
            user_address=user_address,
            strategy_id=strategy_id,
            chain_id=chain.chain_id,
            intent_data={
                "target": tx.to,
                "calldata": tx.data,
                "value": str(tx.value),
                "deadline": deadline,
                "intent_manager": chain.intent_manager,
                "mev_risk": risk,
            },
            status=IntentStatus.PENDING,
            created_at=int(now * 1000),
            expires_at=deadline * 1000,
        )
        await self._intents.insert(intent)
        self._logger.info("MEV: intent %s created for strategy %s", intent.id, strategy_id)
        return intent.id

    def estimate_mev_risk(self, tx: TxRequest) -> float:
        """
        Rough 0..1 score from the fee at stake: above 1 native unit 0.8, above 0.1 0.5, else 0.2.
        """
        at_stake = int(tx.gas or 0) * int(tx.gas_price or 0)
        if at_stake > HIGH_VALUE_WEI:
            return 0.8
        if at_stake > HIGH_VALUE_WEI // 10:
            return 0.5
        return 0.2
