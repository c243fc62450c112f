# fx_layers/L4_dynamic_filters/dynamic_filters.py
"""
Dynamic Trade Filters (Safety Gate).

Applied in fixed order after fusion:
1. Volatility    - reject above the mode's volatility ceiling
2. Liquidity     - reject below the liquidity floor (spread proxy)
3. Correlation   - reject when the portfolio is already exposed
4. Sentiment     - reject when sentiment strongly contradicts direction
5. Confirmation  - reject with fewer agreeing sources than the mode needs

A rejection is a normal "no trade" outcome, never an exception.
A filter that passes within marginal_band of its limit returns a
penalty that the scorer subtracts from confidence.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from fx_layers.L0_adaptive_config import FilterSettings, ModeProfile
from fx_layers.L1_data_features import (
    BaseSignal,
    Direction,
    MLOutput,
    PortfolioCollaborator,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterRequest:
    """Everything a filter may look at for one candidate trade."""
    symbol: str
    signal: BaseSignal
    profile: ModeProfile
    volatility: float
    liquidity: float
    sentiment: Optional[float] = None
    ml_output: Optional[MLOutput] = None
    portfolio: Optional[PortfolioCollaborator] = None

    @property
    def direction(self) -> Direction:
        return self.signal.direction

    def aligned_sentiment(self) -> Optional[float]:
        """Sentiment seen from the trade's side: high = supportive."""
        if self.sentiment is None:
            return None
        return self.sentiment if self.direction is Direction.BUY else 100.0 - self.sentiment


@dataclass(frozen=True)
class FilterResult:
    """Result of one filter check."""
    name: str
    passed: bool
    penalty: float = 0.0
    reason: str = ""


class DynamicFilter(ABC):
    """Base class for a single gating check."""

    name = "Filter"

    def __init__(self, settings: FilterSettings):
        self.settings = settings

    @abstractmethod
    def evaluate(self, request: FilterRequest) -> FilterResult:
        ...

    def marginal_penalty(self, headroom: float) -> float:
        """Linear penalty for passing with less than marginal_band of headroom."""
        band = self.settings.marginal_band
        if headroom >= band:
            return 0.0
        return self.settings.marginal_penalty * (band - max(headroom, 0.0)) / band

    def _pass(self, headroom: float, reason: str) -> FilterResult:
        penalty = self.marginal_penalty(headroom)
        if penalty > 0:
            reason = f"{reason} (marginal, -{penalty:.1f})"
        return FilterResult(self.name, True, penalty, reason)

    def _reject(self, reason: str) -> FilterResult:
        return FilterResult(self.name, False, 0.0, reason)


class VolatilityFilter(DynamicFilter):
    name = "Volatility"

    def evaluate(self, request: FilterRequest) -> FilterResult:
        ceiling = request.profile.volatility_ceiling
        if request.volatility > ceiling:
            return self._reject(f"volatility {request.volatility:.1f} > ceiling {ceiling:.1f}")
        return self._pass(ceiling - request.volatility, f"volatility {request.volatility:.1f} <= {ceiling:.1f}")


class LiquidityFilter(DynamicFilter):
    name = "Liquidity"

    def evaluate(self, request: FilterRequest) -> FilterResult:
        floor = self.settings.min_liquidity
        if request.liquidity < floor:
            return self._reject(f"liquidity {request.liquidity:.1f} < {floor:.1f}")
        return self._pass(request.liquidity - floor, f"liquidity {request.liquidity:.1f}")


class CorrelationFilter(DynamicFilter):
    """Delegates the exposure figure to the portfolio collaborator."""

    name = "Correlation"

    def evaluate(self, request: FilterRequest) -> FilterResult:
        if request.portfolio is None:
            return FilterResult(self.name, True, 0.0, "no portfolio collaborator")

        try:
            exposure = request.portfolio.correlation_exposure(request.symbol, request.direction)
        except Exception as e:
            logger.warning("Correlation exposure for %s unavailable: %s", request.symbol, e)
            exposure = None
        if exposure is None or not math.isfinite(exposure):
            return FilterResult(self.name, True, 0.0, "no correlation data")

        limit = self.settings.max_correlation
        if exposure > limit:
            return self._reject(f"correlation exposure {exposure:.1f} > {limit:.1f}")
        return self._pass(limit - exposure, f"correlation exposure {exposure:.1f}")


class SentimentAlignmentFilter(DynamicFilter):
    name = "SentimentAlignment"

    def evaluate(self, request: FilterRequest) -> FilterResult:
        aligned = request.aligned_sentiment()
        if aligned is None:
            return FilterResult(self.name, True, 0.0, "no sentiment data")

        threshold = self.settings.sentiment_contradiction
        if aligned < threshold:
            return self._reject(
                f"sentiment contradicts {request.direction.value} (aligned {aligned:.1f} < {threshold:.1f})"
            )
        return self._pass(aligned - threshold, f"sentiment aligned {aligned:.1f}")


class ConfirmationFilter(DynamicFilter):
    """Counts independent sources agreeing with the signal direction."""

    name = "Confirmation"

    def count_confirmations(self, request: FilterRequest) -> int:
        count = max(1, len(set(request.signal.contributing_indicators)))

        ml = request.ml_output
        if (
            ml is not None
            and ml.value * request.direction.sign > 0
            and ml.confidence >= self.settings.ml_confirmation_confidence
        ):
            count += 1

        aligned = request.aligned_sentiment()
        if aligned is not None and aligned >= self.settings.aligned_sentiment_confirmation:
            count += 1

        return count

    def evaluate(self, request: FilterRequest) -> FilterResult:
        count = self.count_confirmations(request)
        required = request.profile.required_confirmations
        if count < required:
            return self._reject(f"{count} confirmations < {required} required")
        return FilterResult(self.name, True, 0.0, f"{count}/{required} confirmations")


def build_default_filters(settings: FilterSettings) -> List[DynamicFilter]:
    """The standard chain, in evaluation order."""
    return [
        VolatilityFilter(settings),
        LiquidityFilter(settings),
        CorrelationFilter(settings),
        SentimentAlignmentFilter(settings),
        ConfirmationFilter(settings),
    ]


def apply_filters(filters: Sequence[DynamicFilter], request: FilterRequest) -> List[FilterResult]:
    """
    Run filters in order, stopping at the first rejection.

    Returns:
        Results of every filter that ran; the last one failed if any did
    """
    results: List[FilterResult] = []
    for f in filters:
        result = f.evaluate(request)
        results.append(result)
        if not result.passed:
            logger.debug("%s rejected by %s: %s", request.symbol, result.name, result.reason)
            break
    return results
