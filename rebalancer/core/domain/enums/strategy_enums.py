from enum import Enum


class ConditionType(str, Enum):
    """
    Extra trigger conditions a strategy may declare on top of drift.
    """
    PRICE = "price"                                # token price (USD) vs value
    PORTFOLIO_VALUE = "portfolio_value"            # total portfolio USD vs value
    ASSET_VALUE = "asset_value"                    # one token's USD holding vs value
    TIME_SINCE_REBALANCE = "time_since_rebalance"  # seconds since last rebalance vs value


class ConditionOperator(str, Enum):
    GT = "GT"
    GTE = "GTE"
    LT = "LT"
    LTE = "LTE"


class ActionType(str, Enum):
    REBALANCE = "rebalance"
