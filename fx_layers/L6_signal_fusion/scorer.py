# fx_layers/L6_signal_fusion/scorer.py
"""
Signal Fusion Scoring.

Opportunity = w_signal × strength + w_ml × ML agreement + w_sentiment × aligned sentiment

Weights are per DecisionMode and adapted online by Layer 5; the scorer
only reads them. Components a mode does not use (or that are switched
off) drop out and the remaining weights are renormalized.

Then:
    confidence      = opportunity − Σ marginal filter penalties   (never raised)
    win_probability = expit((confidence − 50) / 15)
    expected_reward = p × RR − (1 − p)

Pure: identical inputs and identical weight table give identical output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from scipy.special import expit

from fx_layers.L0_adaptive_config import DecisionMode, EngineSettings, MarketState
from fx_layers.L1_data_features import (
    BaseSignal,
    Direction,
    MLOutput,
    PortfolioCollaborator,
)
from fx_layers.L4_dynamic_filters import (
    DynamicFilter,
    FilterRequest,
    FilterResult,
    apply_filters,
    build_default_filters,
)
from fx_layers.L5_learning import AdaptiveWeightTable

logger = logging.getLogger(__name__)

NEUTRAL = 50.0
WIN_PROBABILITY_SCALE = 15.0  # confidence points per logit unit


@dataclass(frozen=True)
class VolatilityContext:
    """Volatility / liquidity readings for the symbol, 0-100."""
    level: float = NEUTRAL
    liquidity: float = NEUTRAL
    regime: str = ""


@dataclass(frozen=True)
class DecisionMetrics:
    """One decision. Immutable once produced."""
    symbol: str
    direction: Optional[Direction]
    mode: DecisionMode
    state: MarketState
    signal_strength: float
    risk_level: float
    opportunity_score: float
    confidence_level: float
    expected_reward: float
    max_drawdown_risk: float
    win_probability: float
    required_confirmations: int
    passes_dynamic_filters: bool
    reasoning: Tuple[str, ...] = ()
    component_contributions: Dict[str, float] = field(default_factory=dict)
    filter_results: Tuple[FilterResult, ...] = ()
    position_size_fraction: float = 0.0
    decision_id: str = field(default="", compare=False)
    timestamp: Optional[datetime] = None

    @property
    def is_trade(self) -> bool:
        """True only for decisions that passed every gate and got a size."""
        return self.passes_dynamic_filters and self.position_size_fraction > 0

    def with_size(self, size: float, note: Optional[str] = None) -> "DecisionMetrics":
        reasoning = self.reasoning + (note,) if note else self.reasoning
        return replace(self, position_size_fraction=size, reasoning=reasoning)

    def to_dict(self) -> dict:
        return {
            "decision_id": self.decision_id,
            "symbol": self.symbol,
            "direction": self.direction.value if self.direction else None,
            "mode": self.mode.value,
            "state": self.state.value,
            "signal_strength": self.signal_strength,
            "risk_level": self.risk_level,
            "opportunity_score": self.opportunity_score,
            "confidence_level": self.confidence_level,
            "expected_reward": self.expected_reward,
            "max_drawdown_risk": self.max_drawdown_risk,
            "win_probability": self.win_probability,
            "required_confirmations": self.required_confirmations,
            "passes_dynamic_filters": self.passes_dynamic_filters,
            "position_size_fraction": self.position_size_fraction,
            "reasoning": list(self.reasoning),
        }


def _clip100(value: float) -> float:
    return float(np.clip(value, 0.0, 100.0))


def _finite(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if np.isfinite(value) else None


def _reading(value: Optional[float]) -> float:
    """0-100 context reading; a NaN or infinite value counts as neutral."""
    value = _finite(value)
    return NEUTRAL if value is None else _clip100(value)


def win_probability(confidence: float) -> float:
    return float(expit((confidence - NEUTRAL) / WIN_PROBABILITY_SCALE))


class SignalFusionScorer:
    """
    Fuses technical signal, ML output and sentiment into DecisionMetrics.

    Reads fusion weights and minimum-confidence thresholds from the
    shared AdaptiveWeightTable.
    """

    def __init__(
        self,
        settings: EngineSettings,
        weights: AdaptiveWeightTable,
        filters: Optional[Sequence[DynamicFilter]] = None,
        portfolio: Optional[PortfolioCollaborator] = None,
    ):
        self.settings = settings
        self.weights = weights
        self.filters = list(filters) if filters is not None else build_default_filters(settings.filters)
        self.portfolio = portfolio

    def _component_weights(self, mode: DecisionMode, include_ml: bool, include_sentiment: bool) -> Dict[str, float]:
        w = self.weights.weights_for(mode).as_dict()
        if not include_ml:
            w["ml"] = 0.0
        if not include_sentiment:
            w["sentiment"] = 0.0
        total = sum(w.values())
        if total <= 0:
            return {"signal": 1.0, "ml": 0.0, "sentiment": 0.0}
        return {k: v / total for k, v in w.items()}

    def score(
        self,
        symbol: str,
        base_signal: Optional[BaseSignal],
        ml_output: Optional[MLOutput],
        sentiment_score: Optional[float],
        volatility_context: VolatilityContext,
        mode: DecisionMode,
        state: MarketState = MarketState.UNCERTAIN,
        use_ml: bool = True,
        use_sentiment: bool = True,
        use_dynamic_filters: bool = True,
        timestamp: Optional[datetime] = None,
        decision_id: str = "",
    ) -> DecisionMetrics:
        """
        Score one candidate trade.

        Args:
            symbol: FX symbol
            base_signal: Technical signal, or None when there is none this cycle
            ml_output: ML prediction (optional)
            sentiment_score: 0-100, 50 = neutral (optional)
            volatility_context: Volatility and liquidity readings
            mode: Active DecisionMode
            state: MarketState the decision is made in
            use_ml / use_sentiment / use_dynamic_filters: AdaptiveConfig toggles

        Returns:
            DecisionMetrics with position_size_fraction still 0
        """
        profile = self.settings.profile(mode)
        volatility = _reading(volatility_context.level)
        liquidity = _reading(volatility_context.liquidity)

        if base_signal is not None and _finite(base_signal.strength) is None:
            logger.warning("%s signal strength %r is not finite; treated as no signal", symbol, base_signal.strength)
            base_signal = None
        if ml_output is not None and (_finite(ml_output.confidence) is None or _finite(ml_output.value) is None):
            logger.warning("%s ML output is not finite; treated as unavailable", symbol)
            ml_output = None

        if base_signal is None:
            return DecisionMetrics(
                symbol=symbol,
                direction=None,
                mode=mode,
                state=state,
                signal_strength=0.0,
                risk_level=volatility,
                opportunity_score=0.0,
                confidence_level=0.0,
                expected_reward=0.0,
                max_drawdown_risk=0.0,
                win_probability=0.0,
                required_confirmations=profile.required_confirmations,
                passes_dynamic_filters=False,
                reasoning=("No technical signal this cycle",),
                decision_id=decision_id,
                timestamp=timestamp,
            )

        direction = base_signal.direction
        strength = _clip100(base_signal.strength)
        include_ml = use_ml and profile.use_ml and ml_output is not None
        include_sentiment = use_sentiment

        reasoning = [f"{direction.value} signal strength {strength:.1f} in {mode.value}/{state.value}"]

        # ML agreement: confidence when it points our way, its complement otherwise
        ml_component = NEUTRAL
        if include_ml:
            ml_conf = _clip100(ml_output.confidence)
            agrees = ml_output.value * direction.sign >= 0
            ml_component = ml_conf if agrees else 100.0 - ml_conf
            reasoning.append(f"ML {'agrees' if agrees else 'disagrees'} ({ml_conf:.1f})")
        elif ml_output is None and use_ml and profile.use_ml:
            reasoning.append("ML unavailable, weight redistributed")

        sentiment = _finite(sentiment_score)
        if sentiment is not None:
            sentiment = _clip100(sentiment)
        aligned_sentiment = NEUTRAL
        if include_sentiment and sentiment is not None:
            aligned_sentiment = sentiment if direction is Direction.BUY else 100.0 - sentiment

        weights = self._component_weights(mode, include_ml, include_sentiment)
        contributions = {
            "signal": weights["signal"] * strength,
            "ml": weights["ml"] * ml_component,
            "sentiment": weights["sentiment"] * aligned_sentiment,
        }
        opportunity = _clip100(sum(contributions.values()))

        results: Tuple[FilterResult, ...] = ()
        passes = True
        if use_dynamic_filters:
            request = FilterRequest(
                symbol=symbol,
                signal=base_signal,
                profile=profile,
                volatility=volatility,
                liquidity=liquidity,
                sentiment=sentiment if include_sentiment else None,
                ml_output=ml_output if include_ml else None,
                portfolio=self.portfolio,
            )
            results = tuple(apply_filters(self.filters, request))
            passes = all(r.passed for r in results)
            reasoning.extend(f"{r.name}: {r.reason}" for r in results if not r.passed or r.penalty > 0)
        else:
            reasoning.append("Dynamic filters disabled")

        penalty = sum(r.penalty for r in results if r.passed)
        confidence = _clip100(opportunity - penalty)

        threshold = self.weights.threshold_for(mode)
        if passes and confidence < threshold:
            passes = False
            reasoning.append(f"Confidence {confidence:.1f} below {mode.value} threshold {threshold:.1f}")

        p = win_probability(confidence)
        risk_level = _clip100(0.6 * volatility + 0.4 * (100.0 - confidence))

        metrics = DecisionMetrics(
            symbol=symbol,
            direction=direction,
            mode=mode,
            state=state,
            signal_strength=strength,
            risk_level=risk_level,
            opportunity_score=opportunity,
            confidence_level=confidence,
            expected_reward=p * profile.reward_risk_ratio - (1.0 - p),
            max_drawdown_risk=risk_level / 100.0 * (1.0 - p),
            win_probability=p,
            required_confirmations=profile.required_confirmations,
            passes_dynamic_filters=passes,
            reasoning=tuple(reasoning),
            component_contributions=contributions,
            filter_results=results,
            decision_id=decision_id,
            timestamp=timestamp,
        )
        logger.debug(
            "%s scored: opportunity=%.2f confidence=%.2f passes=%s",
            symbol, opportunity, confidence, passes,
        )
        return metrics
