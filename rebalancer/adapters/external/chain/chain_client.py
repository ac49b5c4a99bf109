import asyncio
import logging
from typing import Any, Dict, Optional

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from ....config import ChainConfig, Settings
from ....core.domain.exceptions import (
    ConfigurationError,
    RebalancerError,
    RpcError,
    SimulationRevertedError,
    TransactionRevertedError,
)
from ....core.domain.swap import TxOutcome, TxRequest
from ....core.domain.tokens import NATIVE_DECIMALS, is_native
from .abis import ERC20_ABI
from .utils import to_json_safe

# used when estimate_gas fails for a non-revert reason
DEFAULT_GAS_LIMIT = 1_500_000


class ChainClient:
    """
    Thin async wrapper around one chain's JSON-RPC endpoint.

    Every RPC is bounded by rpc_timeout_sec and surfaces as RpcError,
    except contract reverts which keep their own meaning.
    """

    def __init__(
        self,
        chain: ChainConfig,
        private_key: str = "",
        rpc_timeout_sec: float = 10.0,
        receipt_timeout_sec: float = 120.0,
        w3: Optional[AsyncWeb3] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.chain = chain
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(chain.rpc_url))
        self._account = Account.from_key(private_key) if private_key else None
        self._rpc_timeout = rpc_timeout_sec
        self._receipt_timeout = receipt_timeout_sec
        self._decimals: Dict[str, int] = {}
        self._relays: Dict[str, AsyncWeb3] = {}
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def sender_address(self) -> Optional[str]:
        return self._account.address if self._account is not None else None

    async def read(self, awaitable, what: str):
        """
        Await any web3 call under the RPC timeout (for adapters building their own contracts).
        """
        return await self._rpc(awaitable, what)

    async def _rpc(self, awaitable, what: str):
        try:
            return await asyncio.wait_for(awaitable, timeout=self._rpc_timeout)
        except (ContractLogicError, RebalancerError):
            raise
        except asyncio.TimeoutError as exc:
            raise RpcError(f"{self.chain.name}: {what} timed out after {self._rpc_timeout}s") from exc
        except Exception as exc:
            raise RpcError(f"{self.chain.name}: {what} failed: {exc}") from exc

    # ------------------------------------------------------------------ #
    # reads
    # ------------------------------------------------------------------ #
    async def get_native_balance(self, owner: str) -> int:
        return int(await self._rpc(self.w3.eth.get_balance(Web3.to_checksum_address(owner)), "get_balance"))

    async def get_erc20_balance(self, token: str, owner: str) -> int:
        if is_native(token):
            return await self.get_native_balance(owner)
        c = self.w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)
        bal = await self._rpc(c.functions.balanceOf(Web3.to_checksum_address(owner)).call(), "balanceOf")
        return int(bal)

    async def get_decimals(self, token: str) -> int:
        if is_native(token):
            return NATIVE_DECIMALS
        key = token.lower()
        if key in self._decimals:
            return self._decimals[key]

        c = self.w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)
        try:
            dec = int(await self._rpc(c.functions.decimals().call(), "decimals"))
        except (RpcError, ContractLogicError) as exc:
            self._logger.warning("decimals() failed for %s on %s, assuming 18: %s", token, self.chain.name, exc)
            return NATIVE_DECIMALS
        self._decimals[key] = dec
        return dec

    async def get_gas_price(self) -> int:
        return int(await self._rpc(self.w3.eth.gas_price, "gas_price"))

    # ------------------------------------------------------------------ #
    # writes
    # ------------------------------------------------------------------ #
    def _base_params(self, tx: TxRequest) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "to": Web3.to_checksum_address(tx.to),
            "data": tx.data,
            "value": int(tx.value),
        }
        sender = tx.from_address or self.sender_address()
        if sender:
            params["from"] = Web3.to_checksum_address(sender)
        return params

    async def simulate(self, tx: TxRequest) -> None:
        """
        eth_call dry-run of the exact payload; raises SimulationRevertedError on revert.
        """
        try:
            await self._rpc(self.w3.eth.call(self._base_params(tx)), "eth_call")
        except ContractLogicError as exc:
            raise SimulationRevertedError(str(exc)) from exc

    async def _estimate_gas(self, params: Dict[str, Any]) -> int:
        try:
            est = int(await self._rpc(self.w3.eth.estimate_gas(params), "estimate_gas"))
        except ContractLogicError as exc:
            raise SimulationRevertedError(str(exc)) from exc
        except RpcError as exc:
            self._logger.warning("estimate_gas failed on %s, using %s: %s", self.chain.name, DEFAULT_GAS_LIMIT, exc)
            return DEFAULT_GAS_LIMIT
        return int(est * 1.25) + 10_000

    def _relay(self, url: str) -> AsyncWeb3:
        w3 = self._relays.get(url)
        if w3 is None:
            w3 = AsyncWeb3(AsyncHTTPProvider(url))
            self._relays[url] = w3
        return w3

    async def send_transaction(self, tx: TxRequest) -> str:
        """
        Sign with the executor key and broadcast. Returns the 0x tx hash.
        relay_url (set by MEV protection) sends the raw tx to that endpoint instead.
        """
        if self._account is None:
            raise ConfigurationError("PRIVATE_KEY is not configured, cannot submit transactions")

        params = self._base_params(tx)
        params["from"] = self._account.address
        params["chainId"] = self.chain.chain_id
        params["nonce"] = await self._rpc(
            self.w3.eth.get_transaction_count(self._account.address, "pending"), "nonce"
        )
        params["gas"] = int(tx.gas) if tx.gas else await self._estimate_gas(params)
        params["gasPrice"] = int(tx.gas_price) if tx.gas_price else await self.get_gas_price()

        signed = self._account.sign_transaction(params)
        w3 = self._relay(tx.relay_url) if tx.relay_url else self.w3
        tx_hash = await self._rpc(w3.eth.send_raw_transaction(signed.raw_transaction), "send_raw_transaction")
        tx_hash_hex = Web3.to_hex(tx_hash)
        self._logger.info(
            "tx sent on %s: %s (nonce=%s gas=%s gasPrice=%s)",
            self.chain.name, tx_hash_hex, params["nonce"], params["gas"], params["gasPrice"],
        )
        return tx_hash_hex

    async def wait_for_receipt(self, tx_hash: str) -> TxOutcome:
        try:
            rcpt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
        except TimeExhausted as exc:
            raise RpcError(f"{self.chain.name}: no receipt for {tx_hash} after {self._receipt_timeout}s") from exc

        receipt = to_json_safe(dict(rcpt))
        status = int(rcpt.get("status", 0))
        if status == 0:
            raise TransactionRevertedError(tx_hash, receipt, "Transaction reverted (status=0)")

        return TxOutcome(
            tx_hash=tx_hash,
            status=status,
            gas_used=int(rcpt.get("gasUsed") or 0),
            effective_gas_price=int(rcpt.get("effectiveGasPrice") or 0),
            block_number=rcpt.get("blockNumber"),
            receipt=receipt,
        )


class ChainClientRegistry:
    """
    chain_id -> ChainClient. Unknown chains are a configuration problem.
    """

    def __init__(self, clients: Dict[int, ChainClient]):
        self._clients = dict(clients)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChainClientRegistry":
        return cls(
            {
                cfg.chain_id: ChainClient(
                    cfg,
                    private_key=settings.private_key,
                    rpc_timeout_sec=settings.rpc_timeout_sec,
                    receipt_timeout_sec=settings.receipt_timeout_sec,
                )
                for cfg in settings.chains.values()
            }
        )

    def get(self, chain_id: int) -> ChainClient:
        client = self._clients.get(int(chain_id))
        if client is None:
            raise ConfigurationError(f"no RPC client for chain_id={chain_id}")
        return client

    def chain_ids(self):
        return list(self._clients.keys())
