from typing import List, Optional


class RebalancerError(Exception):
    """
    Base class for every error raised by the rebalance pipeline.
    """


class ConfigurationError(RebalancerError):
    """
    Something the pipeline needs is not configured: a missing delegation,
    a missing executor contract address, an unknown chain, no signer key.
    Retrying does not help until an operator fixes the setup.
    """


class ValidationError(RebalancerError):
    """
    The strategy definition itself is malformed.
    The strategy is skipped for this cycle, nothing is recorded.
    """


class ParseError(ValidationError):
    def __init__(self, strategy_id: str, errors: List[str]):
        super().__init__(f"strategy {strategy_id} is invalid: {'; '.join(errors)}")
        self.strategy_id = strategy_id
        self.errors = errors


class TransientExternalError(RebalancerError):
    """
    An external collaborator (venue API, RPC node, price feed) timed out
    or answered with garbage. Expected to clear on a later attempt.
    """


class QuoteSourceError(TransientExternalError):
    def __init__(self, venue: str, msg: str):
        super().__init__(f"[{venue}] {msg}")
        self.venue = venue


class RpcError(TransientExternalError):
    pass


class PriceUnavailableError(TransientExternalError):
    def __init__(self, token: str, msg: str):
        super().__init__(f"price unavailable for {token}: {msg}")
        self.token = token


class EconomicGateError(RebalancerError):
    """
    Execution is possible but not worth it right now
    (gas too expensive, no quote inside the price-impact ceiling).
    """


class GasTooHighError(EconomicGateError):
    def __init__(self, gas_price_wei: int, ceiling_wei: int):
        super().__init__(
            f"Gas too high: {gas_price_wei / 1e9:.2f} gwei exceeds ceiling {ceiling_wei / 1e9:.2f} gwei"
        )
        self.gas_price_wei = gas_price_wei
        self.ceiling_wei = ceiling_wei


class NoAcceptableQuoteError(EconomicGateError):
    def __init__(self, from_token: str, to_token: str, reason: str):
        super().__init__(f"No acceptable quote for {from_token} -> {to_token}: {reason}")
        self.from_token = from_token
        self.to_token = to_token


class OnChainFailure(RebalancerError):
    """
    The chain refused the call, either in simulation or after mining.
    Always recorded and surfaced to the user.
    """


class SimulationRevertedError(OnChainFailure):
    """
    Raised by the dry-run (eth_call) BEFORE broadcasting.
    Nothing was sent on-chain, no gas was spent.
    """
    def __init__(self, reason: str):
        super().__init__(f"Simulation reverted: {reason}")
        self.reason = reason


class TransactionRevertedError(OnChainFailure):
    """
    Raised when the tx was actually sent on-chain, mined, and status == 0.
    Gas was ALREADY paid.
    """
    def __init__(self, tx_hash: str, receipt: Optional[dict], msg: str):
        super().__init__(msg)
        self.tx_hash = tx_hash
        self.receipt = receipt
        self.msg = msg
