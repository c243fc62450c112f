# fx_layers/L7_position_sizing/risk_sizer.py
"""
Risk-adjusted position sizing.

Formula:
    base     = max_risk_per_trade × (confidence / 100) × win_probability
    penalty  = (1 − drawdown / max_drawdown) ^ exponent, floored at 0
    size     = base × penalty

Then clamped to:
    - max_risk_per_trade
    - max_portfolio_risk − open_risk (remaining budget)
Sizes below min_risk_per_trade round down to 0.

Returns None (no trade) when the decision failed its filters; 0.0 is a
sized-out trade. The learning loop relies on that distinction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from fx_layers.L0_adaptive_config import RiskLimits
from fx_layers.L6_signal_fusion import DecisionMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawdownContext:
    """Portfolio state at sizing time, both as fractions of equity."""
    current_drawdown: float = 0.0
    open_risk: float = 0.0


def drawdown_penalty(current_drawdown: float, limits: RiskLimits) -> float:
    """1.0 at zero drawdown, falling monotonically to 0.0 at max_drawdown."""
    dd = max(float(current_drawdown), 0.0)
    headroom = max(1.0 - dd / limits.max_drawdown, 0.0)
    return float(headroom ** limits.drawdown_exponent)


class RiskAdjustedSizer:
    """Turns DecisionMetrics into a bounded risk fraction."""

    def __init__(self, limits: RiskLimits):
        self.limits = limits

    def size(
        self,
        metrics: DecisionMetrics,
        drawdown: Optional[DrawdownContext] = None,
        limits: Optional[RiskLimits] = None,
    ) -> Optional[float]:
        """
        Size a scored decision.

        Args:
            metrics: Output of SignalFusionScorer
            drawdown: Current drawdown and open risk
            limits: Override for the configured RiskLimits

        Returns:
            Fraction of equity to risk in [0, max_risk_per_trade], or
            None when the decision does not pass its filters
        """
        if not metrics.passes_dynamic_filters:
            return None

        limits = limits or self.limits
        drawdown = drawdown or DrawdownContext()

        confidence = float(np.clip(metrics.confidence_level, 0.0, 100.0)) / 100.0
        p_win = float(np.clip(metrics.win_probability, 0.0, 1.0))
        base = limits.max_risk_per_trade * confidence * p_win

        size = base * drawdown_penalty(drawdown.current_drawdown, limits)

        budget = max(limits.max_portfolio_risk - max(drawdown.open_risk, 0.0), 0.0)
        size = min(size, limits.max_risk_per_trade, budget)

        if size < limits.min_risk_per_trade:
            logger.debug(
                "%s size %.5f below minimum %.5f, no position",
                metrics.symbol, size, limits.min_risk_per_trade,
            )
            return 0.0

        return float(size)
