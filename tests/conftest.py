"""
Pytest configuration and shared fixtures.

Stub collaborators return fixed, mutable values so each test can
shape the cycle it needs without any market data or network.
"""

from datetime import datetime
from typing import Optional

import numpy as np
import pandas as pd
import pytest

from fx_layers.L0_adaptive_config import DecisionMode, MarketState, load_engine_settings
from fx_layers.L1_data_features import (
    AnalyzerReading,
    BaseSignal,
    Direction,
    MLOutput,
    PositionValidation,
)
from fx_layers.L2_market_state import MarketProfile
from fx_layers.L6_signal_fusion import DecisionMetrics
from pipeline import AdaptiveDecisionEngine

# Wednesday, London session, away from any session boundary
FIXED_NOW = datetime(2024, 3, 6, 10, 0)


class StubSignalSource:
    def __init__(self, signal: Optional[BaseSignal] = None):
        self.signal = signal
        self.calls = 0

    def get_signal(self, symbol):
        self.calls += 1
        return self.signal


class StubML:
    def __init__(self, output: Optional[MLOutput] = None):
        self.output = output

    def predict(self, symbol, horizon):
        return self.output


class StubSentiment:
    def __init__(self, score: Optional[float] = 50.0):
        self.score = score

    def get_sentiment(self, symbol):
        return self.score


class StubAnalyzer:
    def __init__(self, score: Optional[float] = 50.0, regime: str = ""):
        self.score = score
        self.regime = regime

    def read(self, symbol):
        if self.score is None:
            return None
        return AnalyzerReading(score=self.score, regime=self.regime)


class FailingAnalyzer:
    def read(self, symbol):
        raise ConnectionError("feed down")


class StubPortfolio:
    def __init__(
        self,
        drawdown_pct: float = 0.0,
        open_risk: float = 0.0,
        correlation: Optional[float] = None,
        accept: bool = True,
        max_allowed: Optional[float] = None,
    ):
        self.drawdown_pct = drawdown_pct
        self.risk = open_risk
        self.correlation = correlation
        self.accept = accept
        self.max_allowed = max_allowed

    def validate_position(self, symbol, proposed_size):
        allowed = proposed_size if self.max_allowed is None else self.max_allowed
        return PositionValidation(accepted=self.accept, max_allowed=allowed)

    def current_drawdown(self):
        return self.drawdown_pct

    def open_risk(self):
        return self.risk

    def correlation_exposure(self, symbol, direction):
        return self.correlation


@pytest.fixture
def settings():
    return load_engine_settings()


@pytest.fixture
def buy_signal():
    return BaseSignal(direction=Direction.BUY, strength=70.0, contributing_indicators=("MA_Cross", "ADX"))


@pytest.fixture
def bullish_analyzers():
    """Strong, calm uptrend: classifies as TrendingBull."""
    return {
        "trend": StubAnalyzer(95.0),
        "volatility": StubAnalyzer(30.0),
        "liquidity": StubAnalyzer(60.0),
        "seasonal": StubAnalyzer(70.0),
    }


@pytest.fixture
def make_engine(settings, buy_signal, bullish_analyzers):
    """Factory for engines wired to stub collaborators."""

    def _make(**overrides):
        kwargs = dict(
            signal_source=StubSignalSource(buy_signal),
            ml_predictor=StubML(MLOutput(value=0.5, confidence=60.0)),
            sentiment_analyzer=StubSentiment(80.0),
            analyzers=dict(bullish_analyzers),
            portfolio=StubPortfolio(),
            settings=settings,
            clock=lambda: FIXED_NOW,
            detect_sessions=False,
        )
        kwargs.update(overrides)
        return AdaptiveDecisionEngine(**kwargs)

    return _make


@pytest.fixture
def make_profile():
    """Factory for MarketProfile values without running the classifier."""

    def _make(
        state: MarketState,
        previous: Optional[MarketState] = None,
        symbol: str = "EURUSD",
        confidence: float = 80.0,
        volatility: float = 40.0,
    ) -> MarketProfile:
        return MarketProfile(
            symbol=symbol,
            current_state=state,
            previous_state=previous,
            state_confidence=confidence,
            trend_strength=60.0,
            volatility_level=volatility,
            liquidity_level=60.0,
            sentiment_score=60.0,
            seasonal_score=50.0,
            news_impact_level=0.0,
            timestamp=FIXED_NOW,
        )

    return _make


@pytest.fixture
def make_metrics():
    """Factory for a tradeable DecisionMetrics."""

    def _make(
        decision_id: str = "EURUSD-1",
        mode: DecisionMode = DecisionMode.TREND_FOLLOWING,
        state: MarketState = MarketState.TRENDING_BULL,
        opportunity: float = 66.0,
        passes: bool = True,
        size: float = 0.01,
    ) -> DecisionMetrics:
        return DecisionMetrics(
            symbol=decision_id.split("-")[0],
            direction=Direction.BUY,
            mode=mode,
            state=state,
            signal_strength=70.0,
            risk_level=40.0,
            opportunity_score=opportunity,
            confidence_level=opportunity,
            expected_reward=0.5,
            max_drawdown_risk=0.1,
            win_probability=0.7,
            required_confirmations=2,
            passes_dynamic_filters=passes,
            component_contributions={"signal": 42.0, "ml": 15.0, "sentiment": 9.0},
            position_size_fraction=size,
            decision_id=decision_id,
            timestamp=FIXED_NOW,
        )

    return _make


@pytest.fixture
def synthetic_bars():
    """300 business days of a drifting random walk."""
    rng = np.random.default_rng(42)
    index = pd.bdate_range("2023-01-02", periods=300)
    returns = rng.normal(0.0004, 0.005, len(index))
    close = 1.10 * np.exp(np.cumsum(returns))
    spread = np.abs(rng.normal(0.003, 0.001, len(index))) * close
    return pd.DataFrame(
        {
            "Open": close * (1 - returns / 2),
            "High": close + spread,
            "Low": close - spread,
            "Close": close,
        },
        index=index,
    )
