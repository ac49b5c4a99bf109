import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from ..domain.entities.strategy_entity import StrategyEntity
from ..domain.enums.strategy_enums import ActionType, ConditionOperator, ConditionType
from ..domain.evaluation import ParsedAsset, ParsedCondition, ParsedStrategy
from ..domain.exceptions import ParseError
from ..domain.tokens import normalize_address

TOTAL_WEIGHT_BPS = 10_000

# condition types that must name one of the strategy tokens
_TOKEN_CONDITIONS = (ConditionType.PRICE, ConditionType.ASSET_VALUE)


class StrategyParserService:
    """
    Stage 1 of the evaluation pipeline: turns a stored strategy document into
    a ParsedStrategy or raises ParseError listing every problem found.

    Checks:
      - at least one token, no empty/duplicate addresses, positive weights
      - weights sum to 10000 bps (+/- tolerance)
      - exactly one rebalance action, interval >= 1s when given
      - conditions have a known type/operator, finite value and a known token
    """

    def __init__(
        self,
        default_drift_threshold_bps: int = 500,
        weight_tolerance_bps: int = 0,
        logger: Optional[logging.Logger] = None,
    ):
        self._default_threshold = default_drift_threshold_bps
        self._tolerance = weight_tolerance_bps
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def parse(self, strategy: StrategyEntity) -> ParsedStrategy:
        errors: List[str] = []

        if not strategy.delegator_address:
            errors.append("missing delegated account address")

        assets = self._parse_assets(strategy, errors)
        known_tokens = {a.address for a in assets}

        rebalance_actions = []
        for idx, action in enumerate(strategy.actions):
            if action.action_type != ActionType.REBALANCE.value:
                errors.append(f"action[{idx}]: unsupported action_type '{action.action_type}'")
                continue
            if action.interval_sec is not None and action.interval_sec < 1:
                errors.append(f"action[{idx}]: interval must be >= 1s")
            if action.drift_threshold_bps is not None and not (0 < action.drift_threshold_bps <= TOTAL_WEIGHT_BPS):
                errors.append(f"action[{idx}]: drift threshold must be in (0, 10000] bps")
            rebalance_actions.append(action)

        if not rebalance_actions:
            errors.append("strategy needs one rebalance action")
        elif len(rebalance_actions) > 1:
            errors.append("strategy declares more than one rebalance action")

        conditions = self._parse_conditions(strategy, known_tokens, errors)

        if strategy.drift_threshold_bps is not None and not (0 < strategy.drift_threshold_bps <= TOTAL_WEIGHT_BPS):
            errors.append("drift threshold must be in (0, 10000] bps")

        if strategy.rebalance_interval < 1:
            errors.append("rebalance interval must be >= 1s")

        if errors:
            raise ParseError(strategy.id, errors)

        action = rebalance_actions[0]
        threshold = (
            strategy.drift_threshold_bps
            or action.drift_threshold_bps
            or self._default_threshold
        )
        interval = action.interval_sec or strategy.rebalance_interval

        return ParsedStrategy(
            strategy_id=strategy.id,
            chain_id=strategy.chain_id,
            delegator=normalize_address(strategy.delegator_address),
            assets=tuple(assets),
            conditions=tuple(conditions),
            drift_threshold_bps=int(threshold),
            interval_sec=int(interval),
        )

    def _parse_assets(self, strategy: StrategyEntity, errors: List[str]) -> List[ParsedAsset]:
        if not strategy.tokens:
            errors.append("token list is empty")
            return []

        assets: List[ParsedAsset] = []
        seen = set()
        for idx, tok in enumerate(strategy.tokens):
            addr = normalize_address(tok.address)
            if not addr:
                errors.append(f"token[{idx}]: empty address")
                continue
            if addr in seen:
                errors.append(f"token[{idx}]: duplicate address {addr}")
                continue
            if tok.weight_bps <= 0:
                errors.append(f"token[{idx}]: weight must be > 0 bps")
                continue
            seen.add(addr)
            assets.append(ParsedAsset(address=addr, weight_bps=tok.weight_bps, symbol=tok.symbol, decimals=tok.decimals))

        total = sum(t.weight_bps for t in strategy.tokens)
        if abs(total - TOTAL_WEIGHT_BPS) > self._tolerance:
            errors.append(f"weights sum to {total} bps, expected {TOTAL_WEIGHT_BPS}")
        return assets

    def _parse_conditions(self, strategy: StrategyEntity, known_tokens: set, errors: List[str]) -> List[ParsedCondition]:
        out: List[ParsedCondition] = []
        for idx, cond in enumerate(strategy.conditions):
            try:
                ctype = ConditionType(cond.condition_type)
            except ValueError:
                errors.append(f"condition[{idx}]: unknown type '{cond.condition_type}'")
                continue
            try:
                op = ConditionOperator(str(cond.operator).upper())
            except ValueError:
                errors.append(f"condition[{idx}]: unknown operator '{cond.operator}'")
                continue
            try:
                value = Decimal(str(cond.value))
            except InvalidOperation:
                errors.append(f"condition[{idx}]: value is not a number")
                continue
            if not value.is_finite() or value < 0:
                errors.append(f"condition[{idx}]: value must be a finite number >= 0")
                continue

            token = normalize_address(cond.token) if cond.token else None
            if ctype in _TOKEN_CONDITIONS:
                if not token:
                    errors.append(f"condition[{idx}]: '{ctype.value}' needs a token")
                    continue
                if token not in known_tokens:
                    errors.append(f"condition[{idx}]: token {token} is not part of the strategy")
                    continue

            out.append(ParsedCondition(condition_type=ctype, operator=op, value=value, token=token))
        return out
