# fx_layers/L1_data_features/collaborators.py
"""
External collaborator contracts.

The engine never looks collaborators up globally: the host builds
them once and passes them to AdaptiveDecisionEngine. Any of these
may return None (no data this cycle); the engine substitutes a
neutral default and carries on.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Tuple, runtime_checkable


class Direction(str, Enum):
    BUY = "Buy"
    SELL = "Sell"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.BUY else -1


@dataclass(frozen=True)
class BaseSignal:
    """Technical signal for one symbol."""
    direction: Direction
    strength: float  # 0-100
    contributing_indicators: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MLOutput:
    """Prediction from the ML collaborator."""
    value: float       # predicted move; sign gives direction, 0 = no view
    confidence: float  # 0-100


@dataclass(frozen=True)
class AnalyzerReading:
    """Normalized [0, 100] score plus the analyzer's own regime tag."""
    score: float
    regime: str = ""


@dataclass(frozen=True)
class PositionValidation:
    accepted: bool
    max_allowed: float


@runtime_checkable
class SignalSource(Protocol):
    def get_signal(self, symbol: str) -> Optional[BaseSignal]: ...


@runtime_checkable
class MLPredictor(Protocol):
    def predict(self, symbol: str, horizon: int) -> Optional[MLOutput]: ...


@runtime_checkable
class SentimentAnalyzer(Protocol):
    def get_sentiment(self, symbol: str) -> Optional[float]: ...


@runtime_checkable
class MarketAnalyzer(Protocol):
    """Trend / volatility / liquidity / seasonality / news analyzers."""
    def read(self, symbol: str) -> Optional[AnalyzerReading]: ...


@runtime_checkable
class PortfolioCollaborator(Protocol):
    def validate_position(self, symbol: str, proposed_size: float) -> PositionValidation: ...

    def current_drawdown(self) -> float:
        """Current drawdown in percent (e.g. 4.5 for 4.5%)."""
        ...

    def open_risk(self) -> float:
        """Risk already committed to open positions, as a fraction of equity."""
        ...

    def correlation_exposure(self, symbol: str, direction: Direction) -> Optional[float]:
        """0-100 correlation of a new position with the open book."""
        ...
