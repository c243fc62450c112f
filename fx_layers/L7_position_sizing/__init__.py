# fx_layers/L7_position_sizing/__init__.py
"""Layer 7: Risk-Adjusted Position Sizing"""
from fx_layers.L7_position_sizing.risk_sizer import (
    DrawdownContext,
    RiskAdjustedSizer,
    drawdown_penalty,
)

__all__ = ["DrawdownContext", "RiskAdjustedSizer", "drawdown_penalty"]
