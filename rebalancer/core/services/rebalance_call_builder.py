import logging
from typing import List, Optional

from eth_abi import encode
from web3 import Web3

from ...config import ChainConfig
from ..domain.entities.delegation_entity import ZERO_BYTES32, DelegationEntity
from ..domain.entities.strategy_entity import StrategyEntity
from ..domain.exceptions import ConfigurationError
from ..domain.swap import RoutedSwap, TxRequest

REBALANCE_SIGNATURE = "rebalance(address,uint256,address[],address[],bytes[],uint256[],uint256[],bytes[],bytes32[])"
REBALANCE_SELECTOR = bytes(Web3.keccak(text=REBALANCE_SIGNATURE)[:4])

DELEGATION_ARRAY_TYPE = "(address,address,bytes32,(address,bytes,bytes)[],uint256,bytes)[]"

# batch call type, default exec type: calldata is an abi-encoded batch
MODE_BATCH_DEFAULT = b"\x01" + b"\x00" * 31


def _hex_bytes(value: Optional[str]) -> bytes:
    if not value or value == "0x":
        return b""
    return Web3.to_bytes(hexstr=value)


class RebalanceCallBuilder:
    """
    Encodes one RebalanceExecutor.rebalance() call for a list of routed swaps.

    The delegated account is both userAccount and the delegation's delegator;
    the executor contract redeems the delegation and runs the swaps from it,
    so msg.value is always 0 (native legs ride on nativeValues[]).
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @staticmethod
    def encode_permission_context(delegation: DelegationEntity, delegator: str) -> bytes:
        caveats = [
            (Web3.to_checksum_address(c.enforcer), _hex_bytes(c.terms), _hex_bytes(c.args))
            for c in delegation.caveats
        ]
        authority = _hex_bytes(delegation.authority or ZERO_BYTES32).rjust(32, b"\x00")
        return encode(
            [DELEGATION_ARRAY_TYPE],
            [
                [
                    (
                        Web3.to_checksum_address(delegation.delegate),
                        Web3.to_checksum_address(delegator),
                        authority,
                        caveats,
                        int(delegation.salt),
                        _hex_bytes(delegation.signature),
                    )
                ]
            ],
        )

    def build(
        self,
        strategy: StrategyEntity,
        delegation: DelegationEntity,
        swaps: List[RoutedSwap],
        chain: ChainConfig,
    ) -> TxRequest:
        if not chain.executor_address:
            raise ConfigurationError(f"{chain.name}: executor contract address is not configured")
        delegator = strategy.delegator_address or delegation.delegator
        if not delegator:
            raise ConfigurationError(f"strategy {strategy.id} has no delegated account")

        account = Web3.to_checksum_address(delegator)
        permission_context = self.encode_permission_context(delegation, account)

        tokens_in: List[str] = [Web3.to_checksum_address(s.from_token) for s in swaps]
        targets: List[str] = [Web3.to_checksum_address(s.target) for s in swaps]
        call_datas: List[bytes] = [_hex_bytes(s.call_data) for s in swaps]
        min_outputs: List[int] = [int(s.min_output) for s in swaps]
        native_values: List[int] = [int(s.native_value) for s in swaps]

        args = encode(
            ["address", "uint256", "address[]", "address[]", "bytes[]", "uint256[]", "uint256[]", "bytes[]", "bytes32[]"],
            [
                account,
                int(strategy.onchain_id),
                tokens_in,
                targets,
                call_datas,
                min_outputs,
                native_values,
                [permission_context],
                [MODE_BATCH_DEFAULT],
            ],
        )

        self._logger.debug(
            "rebalance() for strategy %s on %s: swaps=%s native_values=%s",
            strategy.id, chain.name, len(swaps), native_values,
        )
        return TxRequest(
            chain_id=chain.chain_id,
            to=Web3.to_checksum_address(chain.executor_address),
            data=Web3.to_hex(REBALANCE_SELECTOR + args),
            value=0,
        )
