# fx_layers/L5_learning/reward.py
"""
Risk-Adjusted Reward for experience entries.

Reward formula:
    R = sign(P) · ln(1 + |P|) − λ · |DD|

Where:
    P  = realized trade return in percent of equity
    DD = max adverse excursion during the trade (fraction)
    λ  = drawdown penalty

The log transform compresses outliers so a single lucky spike does
not dominate the recorded experience.
"""

from __future__ import annotations

import math


def compute_reward(realized_return: float, max_drawdown: float, dd_penalty: float = 2.0) -> float:
    """
    Compute risk-adjusted reward from a trade outcome.

    Args:
        realized_return: Trade return in percent of equity (e.g., 0.8 for +0.8%)
        max_drawdown: Worst drawdown during the trade (e.g., 0.01 for 1%)
        dd_penalty: Drawdown penalty λ

    Returns:
        Reward, roughly in [-3, 3] for ordinary trades
    """
    sign = 1.0 if realized_return >= 0 else -1.0
    log_component = math.log(1 + abs(realized_return))
    return sign * log_component - dd_penalty * abs(max_drawdown)
