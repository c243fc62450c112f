# fx_layers/L12_performance_benchmark/performance_metrics.py
"""
LAYER 12 — PERFORMANCE & BENCHMARKING (Analytics Layer)

Realized-trade metrics for the decision engine.

Inputs:
- Per-trade returns in percent of equity (0.8 = +0.8%)

Outputs:
- Equity curve
- Risk-adjusted metrics (Sharpe, Sortino)
- Drawdown analysis
- Win rate
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd


def equity_curve(returns_pct: Sequence[float]) -> pd.Series:
    """
    Compound per-trade returns into an equity curve starting at 1.0.

    Args:
        returns_pct: Trade returns in percent of equity

    Returns:
        Series of len(returns) + 1 equity values
    """
    growth = 1.0 + np.asarray(returns_pct, dtype=float) / 100.0
    return pd.Series(np.concatenate([[1.0], np.cumprod(growth)]))


def sharpe_ratio(returns: pd.Series, periods_per_year: int = 252) -> float:
    """
    Annualized Sharpe ratio of periodic returns (no risk-free leg).

    Returns:
        Sharpe ratio, or NaN with fewer than two returns or zero dispersion
    """
    if len(returns) < 2:
        return np.nan
    std = returns.std(ddof=1)
    if std == 0:
        return np.nan
    return float(np.sqrt(periods_per_year) * returns.mean() / std)


def sortino_ratio(returns: pd.Series, periods_per_year: int = 252) -> float:
    """Annualized Sortino ratio (downside deviation only)."""
    if len(returns) < 2:
        return np.nan
    downside = returns[returns < 0]
    if len(downside) < 2 or downside.std(ddof=1) == 0:
        return np.nan
    return float(np.sqrt(periods_per_year) * returns.mean() / downside.std(ddof=1))


def max_drawdown(equity: pd.Series) -> float:
    """
    Largest peak-to-trough decline.

    Returns:
        Drawdown as a positive fraction (0.15 for a 15% drawdown)
    """
    if equity is None or len(equity) < 2:
        return 0.0
    cum_max = equity.cummax()
    drawdowns = (equity - cum_max) / cum_max
    return float(abs(drawdowns.min()))


def compute_all_metrics(returns_pct: Sequence[float], periods_per_year: int = 252) -> dict:
    """
    Compute all performance metrics for a sequence of trade returns.

    Args:
        returns_pct: Trade returns in percent of equity
        periods_per_year: Annualization factor for Sharpe / Sortino

    Returns:
        Dict of all computed metrics
    """
    returns = pd.Series(np.asarray(returns_pct, dtype=float) / 100.0)
    equity = equity_curve(returns_pct)

    return {
        "num_trades": len(returns),
        "total_return": float(equity.iloc[-1] - 1.0),
        "avg_return": float(returns.mean()) if len(returns) else 0.0,
        "sharpe_ratio": sharpe_ratio(returns, periods_per_year),
        "sortino_ratio": sortino_ratio(returns, periods_per_year),
        "max_drawdown": max_drawdown(equity),
        "win_rate": float((returns > 0).mean()) if len(returns) else 0.0,
    }
