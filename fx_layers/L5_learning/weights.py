# fx_layers/L5_learning/weights.py
"""
Adaptive fusion weights and confidence thresholds, per DecisionMode.

Written by the learning loop, read by the signal fusion scorer.

Math:
  - Reinforce / decay: w_i += ±lr · share_i, where share_i is the
    component's share of the fused opportunity score
  - Weights are projected back onto the bounded simplex
    (sum = 1, low <= w_i <= high) after every change
  - decay_toward_defaults pulls weights and thresholds slowly back to
    their configured values so old history never pins them forever
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping

import numpy as np

from fx_layers.L0_adaptive_config import (
    DecisionMode,
    EngineSettings,
    FUSION_COMPONENTS,
)


@dataclass(frozen=True)
class FusionWeights:
    signal: float
    ml: float
    sentiment: float

    def as_dict(self) -> Dict[str, float]:
        return {"signal": self.signal, "ml": self.ml, "sentiment": self.sentiment}


def project_to_bounds(weights: np.ndarray, low: float, high: float) -> np.ndarray:
    """
    Project weights onto {sum = 1, low <= w <= high}.

    Fixes clamped entries and spreads the residual over the free ones;
    converges in at most len(weights) rounds.
    """
    w = np.clip(np.asarray(weights, dtype=float), low, high)
    for _ in range(len(w) + 1):
        residual = 1.0 - w.sum()
        if abs(residual) < 1e-12:
            break
        free = (w < high) if residual > 0 else (w > low)
        if not free.any():
            break
        w[free] += residual / free.sum()
        w = np.clip(w, low, high)
    return w


class AdaptiveWeightTable:
    """Learned per-mode fusion weights and minimum-confidence thresholds."""

    def __init__(self, settings: EngineSettings):
        self.settings = settings
        learning = settings.learning
        self.weight_low, self.weight_high = learning.weight_bounds
        self.threshold_low, self.threshold_high = learning.threshold_bounds

        self._defaults: Dict[DecisionMode, np.ndarray] = {}
        self._weights: Dict[DecisionMode, np.ndarray] = {}
        self._default_thresholds: Dict[DecisionMode, float] = {}
        self._thresholds: Dict[DecisionMode, float] = {}

        for mode, profile in settings.modes.items():
            base = np.array([profile.weights[c] for c in FUSION_COMPONENTS], dtype=float)
            base = project_to_bounds(base, self.weight_low, self.weight_high)
            self._defaults[mode] = base
            self._weights[mode] = base.copy()
            threshold = float(np.clip(profile.min_confidence, self.threshold_low, self.threshold_high))
            self._default_thresholds[mode] = threshold
            self._thresholds[mode] = threshold

    def weights_for(self, mode: DecisionMode) -> FusionWeights:
        w = self._weights[mode]
        return FusionWeights(signal=float(w[0]), ml=float(w[1]), sentiment=float(w[2]))

    def threshold_for(self, mode: DecisionMode) -> float:
        return self._thresholds[mode]

    def nudge(self, mode: DecisionMode, contributions: Mapping[str, float], reinforce: bool) -> FusionWeights:
        """
        Reinforce (or decay) the components that drove a decision.

        Args:
            mode: Mode the decision was made in
            contributions: Component -> weighted contribution to opportunity score
            reinforce: True when outcome agreed with the predicted edge
        """
        contrib = np.array([max(contributions.get(c, 0.0), 0.0) for c in FUSION_COMPONENTS], dtype=float)
        total = contrib.sum()
        if total <= 0:
            return self.weights_for(mode)

        share = contrib / total
        step = self.settings.learning.weight_learning_rate * (1.0 if reinforce else -1.0)
        updated = self._weights[mode] + step * share
        self._weights[mode] = project_to_bounds(updated, self.weight_low, self.weight_high)
        return self.weights_for(mode)

    def adjust_threshold(self, mode: DecisionMode, won: bool) -> float:
        """Losses tighten the gate by one step; wins relax it by half a step."""
        step = self.settings.learning.threshold_step
        delta = -0.5 * step if won else step
        self._thresholds[mode] = float(np.clip(
            self._thresholds[mode] + delta, self.threshold_low, self.threshold_high
        ))
        return self._thresholds[mode]

    def decay_toward_defaults(self, factor: float | None = None) -> None:
        factor = self.settings.learning.decay_factor if factor is None else factor
        for mode in self._weights:
            blended = factor * self._weights[mode] + (1.0 - factor) * self._defaults[mode]
            self._weights[mode] = project_to_bounds(blended, self.weight_low, self.weight_high)
            self._thresholds[mode] = (
                factor * self._thresholds[mode] + (1.0 - factor) * self._default_thresholds[mode]
            )

    def snapshot(self) -> Dict[str, dict]:
        return {
            mode.value: {
                **self.weights_for(mode).as_dict(),
                "min_confidence": self._thresholds[mode],
            }
            for mode in self._weights
        }
