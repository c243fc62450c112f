# fx_layers/L12_performance_benchmark/__init__.py
"""Layer 12: Performance & Benchmarking"""

from fx_layers.L12_performance_benchmark.monitor import (
    PerformanceMonitor,
    PerformanceMetrics,
    PerformanceSummary,
)
from fx_layers.L12_performance_benchmark.performance_metrics import (
    equity_curve,
    sharpe_ratio,
    sortino_ratio,
    max_drawdown,
    compute_all_metrics,
)

__all__ = [
    "PerformanceMonitor",
    "PerformanceMetrics",
    "PerformanceSummary",
    "equity_curve",
    "sharpe_ratio",
    "sortino_ratio",
    "max_drawdown",
    "compute_all_metrics",
]
