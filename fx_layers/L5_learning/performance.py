# fx_layers/L5_learning/performance.py
"""
Per (mode, state) performance statistics.

Every field is an exponentially-weighted moving value:
    new = old * (1 - alpha) + observation * alpha
with alpha = AdaptiveConfig.adaptation_speed. Records are immutable;
each outcome produces a replacement.

Returns are percent of equity (0.8 = +0.8%); drawdowns are fractions.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterator, Optional, Tuple

import pandas as pd

from fx_layers.L0_adaptive_config import DecisionMode, MarketState


def ewma(old: float, observation: float, alpha: float) -> float:
    return old * (1.0 - alpha) + observation * alpha


@dataclass(frozen=True)
class PerformanceRecord:
    """Learned track record of one mode in one market state."""
    accuracy: float = 0.5
    profitability: float = 0.0
    trade_count: int = 0
    avg_holding_time: float = 0.0  # seconds
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0
    return_variance: float = 0.0
    last_update: Optional[datetime] = None

    def risk_adjusted_profitability(self, drawdown_penalty: float = 0.5) -> float:
        return self.profitability - drawdown_penalty * self.max_drawdown

    def updated(
        self,
        realized_return: float,
        drawdown: float,
        alpha: float,
        timestamp: datetime,
        holding_time: Optional[float] = None,
    ) -> "PerformanceRecord":
        """Fold one trade outcome into the record."""
        win = 1.0 if realized_return > 0 else 0.0

        # EW mean / variance (West's incremental form)
        diff = realized_return - self.profitability
        mean = self.profitability + alpha * diff
        variance = (1.0 - alpha) * (self.return_variance + alpha * diff * diff)
        sharpe = mean / math.sqrt(variance) if variance > 1e-12 else 0.0

        return replace(
            self,
            accuracy=ewma(self.accuracy, win, alpha),
            profitability=mean,
            trade_count=self.trade_count + 1,
            avg_holding_time=(
                ewma(self.avg_holding_time, holding_time, alpha)
                if holding_time is not None else self.avg_holding_time
            ),
            max_drawdown=ewma(self.max_drawdown, abs(drawdown), alpha),
            sharpe_ratio=sharpe,
            return_variance=variance,
            last_update=timestamp,
        )


class PerformanceTable:
    """Process-lifetime (mode, state) -> PerformanceRecord table."""

    def __init__(self):
        self._records: Dict[Tuple[DecisionMode, MarketState], PerformanceRecord] = {}

    def get(self, mode: DecisionMode, state: MarketState) -> PerformanceRecord:
        return self._records.get((mode, state), PerformanceRecord())

    def put(self, mode: DecisionMode, state: MarketState, record: PerformanceRecord) -> None:
        self._records[(mode, state)] = record

    def by_state(self, state: MarketState) -> Dict[DecisionMode, PerformanceRecord]:
        """Records for every mode that has traded in this state."""
        return {m: r for (m, s), r in self._records.items() if s == state}

    def __iter__(self) -> Iterator[Tuple[Tuple[DecisionMode, MarketState], PerformanceRecord]]:
        return iter(sorted(self._records.items(), key=lambda kv: (kv[0][0].value, kv[0][1].value)))

    def __len__(self) -> int:
        return len(self._records)

    def to_frame(self, drawdown_penalty: float = 0.5) -> pd.DataFrame:
        """Records as a DataFrame, one row per (mode, state)."""
        columns = [
            "Mode", "State", "Trades", "Accuracy", "Profitability",
            "RiskAdjusted", "MaxDrawdown", "Sharpe", "AvgHoldingTime", "LastUpdate",
        ]
        if not self._records:
            return pd.DataFrame(columns=columns)

        return pd.DataFrame([
            {
                "Mode": mode.value,
                "State": state.value,
                "Trades": r.trade_count,
                "Accuracy": r.accuracy,
                "Profitability": r.profitability,
                "RiskAdjusted": r.risk_adjusted_profitability(drawdown_penalty),
                "MaxDrawdown": r.max_drawdown,
                "Sharpe": r.sharpe_ratio,
                "AvgHoldingTime": r.avg_holding_time,
                "LastUpdate": r.last_update,
            }
            for (mode, state), r in self
        ], columns=columns)
