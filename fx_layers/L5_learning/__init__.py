# fx_layers/L5_learning/__init__.py
"""
Layer 5: Learning Feedback Loop

Performance records  → EWMA per (mode, state), read by mode selection
Adaptive weights     → per-mode fusion weights + thresholds, read by fusion
Experience buffer    → bounded FIFO history of resolved trades
"""

from fx_layers.L5_learning.experience import ExperienceBuffer, ExperienceEntry
from fx_layers.L5_learning.learning_loop import LearningFeedbackLoop, PendingDecision
from fx_layers.L5_learning.performance import PerformanceRecord, PerformanceTable, ewma
from fx_layers.L5_learning.reward import compute_reward
from fx_layers.L5_learning.weights import AdaptiveWeightTable, FusionWeights, project_to_bounds

__all__ = [
    "ExperienceBuffer",
    "ExperienceEntry",
    "LearningFeedbackLoop",
    "PendingDecision",
    "PerformanceRecord",
    "PerformanceTable",
    "ewma",
    "compute_reward",
    "AdaptiveWeightTable",
    "FusionWeights",
    "project_to_bounds",
]
