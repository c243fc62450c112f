# fx_layers/L0_adaptive_config/enums.py
"""
Shared vocabulary for every layer.

MarketState is the discrete regime label produced by Layer 2.
DecisionMode is the operating strategy family chosen by Layer 3.
Both are str-valued so YAML keys map onto them directly.
"""

from __future__ import annotations

from enum import Enum


class MarketState(str, Enum):
    """Discrete market regime (exactly one per symbol per cycle)."""
    TRENDING_BULL = "TrendingBull"
    TRENDING_BEAR = "TrendingBear"
    RANGE_BOUND = "RangeBound"
    HIGH_VOLATILITY = "HighVolatility"
    LOW_VOLATILITY = "LowVolatility"
    BREAKOUT = "Breakout"
    REVERSAL = "Reversal"
    NEWS_IMPACT = "NewsImpact"
    SESSION_TRANSITION = "SessionTransition"
    UNCERTAIN = "Uncertain"


class DecisionMode(str, Enum):
    """Operating strategy family (exactly one active per symbol)."""
    CONSERVATIVE = "Conservative"
    MODERATE = "Moderate"
    AGGRESSIVE = "Aggressive"
    SCALPING = "Scalping"
    SWING = "Swing"
    TREND_FOLLOWING = "TrendFollowing"
    MEAN_REVERSION = "MeanReversion"
    BREAKOUT_HUNTER = "BreakoutHunter"
    NEWS_TRADER = "NewsTrader"
    ML_DRIVEN = "MLDriven"


# States a regime break can come FROM
STABLE_STATES = frozenset({
    MarketState.TRENDING_BULL,
    MarketState.TRENDING_BEAR,
    MarketState.RANGE_BOUND,
    MarketState.LOW_VOLATILITY,
})

# States a regime break goes TO
REGIME_BREAK_STATES = frozenset({
    MarketState.REVERSAL,
    MarketState.NEWS_IMPACT,
    MarketState.HIGH_VOLATILITY,
})


def is_regime_break(previous: MarketState | None, current: MarketState) -> bool:
    """True when the state jumps from a stable regime into a disruptive one."""
    return (
        previous is not None
        and previous in STABLE_STATES
        and current in REGIME_BREAK_STATES
    )
