# fx_layers/L2_market_state/__init__.py
"""Layer 2: Market State Classification"""
from fx_layers.L0_adaptive_config.enums import MarketState
from fx_layers.L2_market_state.market_state import (
    ComponentInputs,
    MarketProfile,
    MarketStateClassifier,
    COMPONENTS,
    NEUTRAL,
)

__all__ = [
    "MarketState",
    "ComponentInputs",
    "MarketProfile",
    "MarketStateClassifier",
    "COMPONENTS",
    "NEUTRAL",
]
