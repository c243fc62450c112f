# fx_layers/L6_signal_fusion/__init__.py
"""Layer 6: Signal Fusion & Confidence Scoring"""
from fx_layers.L6_signal_fusion.scorer import (
    DecisionMetrics,
    SignalFusionScorer,
    VolatilityContext,
    win_probability,
)

__all__ = [
    "DecisionMetrics",
    "SignalFusionScorer",
    "VolatilityContext",
    "win_probability",
]
