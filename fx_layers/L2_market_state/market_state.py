# fx_layers/L2_market_state/market_state.py
"""
Market State Classification.

Maps five component scores (trend, volatility, liquidity, sentiment,
seasonal; 0-100, 50 = neutral) to exactly one MarketState per symbol.

Each state has a signature: a match score in [0, 1] built from linear
ramps over the normalized components. The best match wins; confidence
is the gap to the runner-up. A previous state within tie_epsilon of
the best score is kept, which stops flapping at state boundaries.

Missing components are substituted with the neutral midpoint and the
profile is flagged as reduced-confidence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple

import numpy as np

from fx_layers.L0_adaptive_config import (
    ClassifierSettings,
    MarketState,
    is_regime_break,
)

logger = logging.getLogger(__name__)

NEUTRAL = 50.0
HIGH_IMPACT_DAMPING = 0.5  # other signatures during high-impact news
COMPONENTS = ("trend", "volatility", "liquidity", "sentiment", "seasonal")


def _ramp(x: float, lo: float, hi: float) -> float:
    """0 below lo, 1 above hi, linear in between."""
    return float(np.clip((x - lo) / (hi - lo), 0.0, 1.0))


def _clean(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    if not np.isfinite(value):
        return None
    return float(np.clip(value, 0.0, 100.0))


@dataclass(frozen=True)
class ComponentInputs:
    """Raw component scores for one cycle; None = collaborator had no data."""
    trend: Optional[float] = None
    volatility: Optional[float] = None
    liquidity: Optional[float] = None
    sentiment: Optional[float] = None
    seasonal: Optional[float] = None
    news_impact: Optional[float] = None
    is_session_transition: bool = False
    is_high_impact_news: bool = False

    def missing(self) -> Tuple[str, ...]:
        return tuple(name for name in COMPONENTS if _clean(getattr(self, name)) is None)

    def resolved(self, name: str) -> float:
        value = _clean(getattr(self, name))
        return NEUTRAL if value is None else value

    def cleaned(self, name: str) -> Optional[float]:
        """Clipped score, or None when missing or non-finite."""
        return _clean(getattr(self, name))


@dataclass(frozen=True)
class MarketProfile:
    """
    Classification result for one symbol.

    trend_strength is the signed directional bias in [-100, 100].
    Rebuilt every cycle; never partially updated.
    """
    symbol: str
    current_state: MarketState
    previous_state: Optional[MarketState]
    state_confidence: float
    trend_strength: float
    volatility_level: float
    liquidity_level: float
    sentiment_score: float
    seasonal_score: float
    news_impact_level: float
    timestamp: datetime
    is_session_transition: bool = False
    is_high_impact_news: bool = False
    reduced_confidence: bool = False
    missing_components: Tuple[str, ...] = ()
    state_scores: Dict[MarketState, float] = field(default_factory=dict, compare=False)

    @property
    def is_regime_break(self) -> bool:
        return is_regime_break(self.previous_state, self.current_state)

    def feature_vector(self) -> np.ndarray:
        """Snapshot used by the experience buffer."""
        return np.array([
            self.trend_strength,
            self.volatility_level,
            self.liquidity_level,
            self.sentiment_score,
            self.seasonal_score,
            self.news_impact_level,
            self.state_confidence,
        ], dtype=float)


class MarketStateClassifier:
    """
    Signature-matching regime classifier.

    Owns the per-symbol MarketProfile; other layers read it only.
    """

    def __init__(self, settings: Optional[ClassifierSettings] = None):
        self.settings = settings or ClassifierSettings()
        self._profiles: Dict[str, MarketProfile] = {}

    def get_profile(self, symbol: str) -> Optional[MarketProfile]:
        return self._profiles.get(symbol)

    def directional_bias(self, inputs: ComponentInputs) -> float:
        """Weighted signed bias in [-1, 1]."""
        w = self.settings.component_weights
        signed = {
            name: (inputs.resolved(name) - NEUTRAL) / NEUTRAL
            for name in ("trend", "sentiment", "seasonal")
        }
        return float(np.clip(sum(w[name] * signed[name] for name in signed), -1.0, 1.0))

    def signature_scores(
        self,
        inputs: ComponentInputs,
        previous_bias: Optional[float] = None,
    ) -> Dict[MarketState, float]:
        """Match score in [0, 1] for every MarketState."""
        s = self.settings
        b = self.directional_bias(inputs)
        abs_b = abs(b)
        v = inputs.resolved("volatility") / 100.0
        liq = inputs.resolved("liquidity") / 100.0
        news = (_clean(inputs.news_impact) or 0.0) / 100.0

        calm = 1.0 - _ramp(v, 0.60, 0.85)

        reversal = 0.0
        if previous_bias is not None and previous_bias * b < 0:
            reversal = _ramp(min(abs(previous_bias), abs_b), 0.15, 0.45)

        high_impact = inputs.is_high_impact_news or news * 100.0 >= s.high_impact_news_threshold

        scores = {
            MarketState.TRENDING_BULL: _ramp(b, 0.20, 0.60) * calm,
            MarketState.TRENDING_BEAR: _ramp(-b, 0.20, 0.60) * calm,
            MarketState.RANGE_BOUND: (1.0 - _ramp(abs_b, 0.10, 0.35)) * (1.0 - _ramp(v, 0.45, 0.70)),
            MarketState.HIGH_VOLATILITY: _ramp(v, 0.65, 0.90),
            MarketState.LOW_VOLATILITY: (1.0 - _ramp(v, 0.10, 0.30)) * (1.0 - _ramp(abs_b, 0.20, 0.50)),
            MarketState.BREAKOUT: _ramp(abs_b, 0.30, 0.70) * _ramp(v, 0.45, 0.70) * _ramp(liq, 0.40, 0.70),
            MarketState.REVERSAL: reversal,
            MarketState.NEWS_IMPACT: 1.0 if high_impact else _ramp(news, 0.50, 0.80),
            MarketState.SESSION_TRANSITION: s.session_transition_score if inputs.is_session_transition else 0.0,
            MarketState.UNCERTAIN: s.uncertain_baseline,
        }
        if high_impact:
            # Scheduled high-impact news overrides whatever the chart says
            scores = {
                st: v if st is MarketState.NEWS_IMPACT else v * HIGH_IMPACT_DAMPING
                for st, v in scores.items()
            }
        return scores

    def _pick_state(
        self,
        scores: Dict[MarketState, float],
        previous_state: Optional[MarketState],
    ) -> Tuple[MarketState, float]:
        # Enum order breaks exact ties
        best = max(MarketState, key=lambda st: scores[st])
        chosen = best
        if (
            previous_state is not None
            and previous_state != best
            and scores[previous_state] >= scores[best] - self.settings.tie_epsilon
        ):
            chosen = previous_state

        runner_up = max(v for st, v in scores.items() if st != chosen)
        margin = max(0.0, scores[chosen] - runner_up)
        return chosen, margin * 100.0

    def peek(self, symbol: str, inputs: ComponentInputs) -> MarketState:
        """Classify without committing the profile."""
        state, _, _ = self._classify_state(inputs, self._profiles.get(symbol))
        return state

    def _classify_state(
        self,
        inputs: ComponentInputs,
        previous: Optional[MarketProfile],
    ) -> Tuple[MarketState, float, Dict[MarketState, float]]:
        previous_bias = previous.trend_strength / 100.0 if previous else None
        scores = self.signature_scores(inputs, previous_bias)

        missing = inputs.missing()
        if len(missing) > self.settings.max_missing_components:
            return MarketState.UNCERTAIN, 0.0, scores

        previous_state = previous.current_state if previous else None
        state, confidence = self._pick_state(scores, previous_state)
        confidence *= self.settings.missing_component_penalty ** len(missing)
        return state, float(np.clip(confidence, 0.0, 100.0)), scores

    def classify(
        self,
        symbol: str,
        inputs: ComponentInputs,
        timestamp: Optional[datetime] = None,
    ) -> MarketProfile:
        """
        Classify the current market and overwrite the symbol's profile.

        Args:
            symbol: FX symbol
            inputs: Component scores (None entries are treated as neutral)
            timestamp: Cycle time (defaults to now)

        Returns:
            The new MarketProfile
        """
        previous = self._profiles.get(symbol)
        missing = inputs.missing()
        state, confidence, scores = self._classify_state(inputs, previous)
        high_impact = scores[MarketState.NEWS_IMPACT] >= 1.0

        profile = MarketProfile(
            symbol=symbol,
            current_state=state,
            previous_state=previous.current_state if previous else None,
            state_confidence=confidence,
            trend_strength=self.directional_bias(inputs) * 100.0,
            volatility_level=inputs.resolved("volatility"),
            liquidity_level=inputs.resolved("liquidity"),
            sentiment_score=inputs.resolved("sentiment"),
            seasonal_score=inputs.resolved("seasonal"),
            news_impact_level=_clean(inputs.news_impact) or 0.0,
            timestamp=timestamp or datetime.now(),
            is_session_transition=inputs.is_session_transition,
            is_high_impact_news=high_impact,
            reduced_confidence=bool(missing),
            missing_components=missing,
            state_scores=scores,
        )

        if previous is not None and previous.current_state != state:
            logger.info(
                "%s state %s -> %s (confidence %.1f)",
                symbol, previous.current_state.value, state.value, confidence,
            )

        self._profiles[symbol] = profile
        return profile
