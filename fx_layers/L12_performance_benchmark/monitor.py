# fx_layers/L12_performance_benchmark/monitor.py
"""
LAYER 12 — MONITORING, EXPLANATION & PERFORMANCE

Trust & transparency layer.

Outputs:
- Realized trade log with decision reasoning
- Mode / state attribution
- Risk metrics (Sharpe, DD, win rate)
- PerformanceSummary snapshot for GetPerformanceSummary()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from fx_layers.L12_performance_benchmark.performance_metrics import compute_all_metrics
from fx_layers.L6_signal_fusion import DecisionMetrics


@dataclass
class PerformanceMetrics:
    """Realized performance over all resolved trades."""
    num_trades: int = 0
    total_return: float = 0.0
    avg_return: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    max_drawdown: float = 0.0
    win_rate: float = 0.0

    def to_dict(self) -> dict:
        return {
            "num_trades": self.num_trades,
            "total_return": f"{self.total_return:.2%}",
            "avg_return": f"{self.avg_return:.3%}",
            "sharpe_ratio": f"{self.sharpe_ratio:.2f}",
            "sortino_ratio": f"{self.sortino_ratio:.2f}",
            "max_drawdown": f"{self.max_drawdown:.2%}",
            "win_rate": f"{self.win_rate:.1%}",
        }


@dataclass
class PerformanceSummary:
    """Read-only snapshot of everything the engine has learned."""
    records: pd.DataFrame
    overall: PerformanceMetrics
    experience_size: int
    experience_capacity: int
    experience_evicted: int
    pending_trades: int
    weights: Dict[str, dict] = field(default_factory=dict)
    learning: Dict[str, object] = field(default_factory=dict)
    mode_switches: pd.DataFrame = field(default_factory=pd.DataFrame)
    generated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "records": self.records.to_dict(orient="records"),
            "overall": self.overall.to_dict(),
            "experience_size": self.experience_size,
            "experience_capacity": self.experience_capacity,
            "experience_evicted": self.experience_evicted,
            "pending_trades": self.pending_trades,
            "weights": self.weights,
            "learning": self.learning,
            "mode_switches": len(self.mode_switches),
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }


class PerformanceMonitor:
    """
    Tracks realized trades and reports system performance.
    """

    def __init__(self):
        self.trade_history: List[dict] = []

    def record_trade(
        self,
        metrics: DecisionMetrics,
        realized_return: float,
        max_drawdown: float,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """Record a resolved trade (return in percent of equity)."""
        self.trade_history.append({
            "DecisionId": metrics.decision_id,
            "Symbol": metrics.symbol,
            "Mode": metrics.mode.value,
            "State": metrics.state.value,
            "Direction": metrics.direction.value if metrics.direction else None,
            "Confidence": metrics.confidence_level,
            "Size": metrics.position_size_fraction,
            "Return": realized_return,
            "Drawdown": max_drawdown,
            "Timestamp": timestamp or metrics.timestamp,
        })

    def compute_metrics(self, periods_per_year: int = 252) -> PerformanceMetrics:
        """Compute current performance metrics."""
        if not self.trade_history:
            return PerformanceMetrics()

        raw = compute_all_metrics([t["Return"] for t in self.trade_history], periods_per_year)
        # NaN ratios (too few trades / no dispersion) report as 0
        clean = {k: (0.0 if isinstance(v, float) and np.isnan(v) else v) for k, v in raw.items()}
        return PerformanceMetrics(**clean)

    def get_mode_attribution(self) -> pd.DataFrame:
        """Get realized performance attribution by mode and state."""
        if not self.trade_history:
            return pd.DataFrame(columns=["Mode", "State", "Trades", "Avg Return", "Win Rate"])

        df = pd.DataFrame(self.trade_history)
        grouped = df.groupby(["Mode", "State"])["Return"]
        return pd.DataFrame({
            "Trades": grouped.count(),
            "Avg Return": grouped.mean(),
            "Win Rate": grouped.apply(lambda r: (r > 0).mean()),
        }).reset_index()
