# fx_layers/L1_data_features/replay.py
"""
Historical replay collaborators.

ReplayMarket walks a set of OHLC frames bar by bar and answers every
collaborator protocol from data up to the current bar only:
- SignalSource:       fast/slow moving-average cross
- MLPredictor:        short-horizon momentum t-statistic
- SentimentAnalyzer:  RSI proxy
- MarketAnalyzer:     one analyzer per component score

ReplayPortfolio keeps an equity curve and open positions so the
engine's drawdown, open-risk and correlation checks see real state.

Used by the replay host (main.py) and tests; the engine core never
imports this module.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from fx_layers.L1_data_features.collaborators import (
    AnalyzerReading,
    BaseSignal,
    Direction,
    MLOutput,
    PositionValidation,
)
from fx_layers.L1_data_features.features import (
    _flatten,
    compute_all_features,
    liquidity_score,
    seasonal_score,
    trend_score,
    volatility_score,
)

FAST_MA = 10
SLOW_MA = 30
CROSS_SATURATION = 0.005  # MA gap (fraction of price) that reads as full strength


def _regime_tag(score: Optional[float]) -> str:
    if score is None:
        return ""
    if score >= 66:
        return "High"
    if score <= 33:
        return "Low"
    return "Normal"


class ReplayAnalyzer:
    """MarketAnalyzer over one component of a ReplayMarket."""

    def __init__(self, market: "ReplayMarket", scorer: Callable[[pd.DataFrame], Optional[float]]):
        self.market = market
        self.scorer = scorer

    def read(self, symbol: str) -> Optional[AnalyzerReading]:
        view = self.market.view(symbol)
        if view is None:
            return None
        score = self.scorer(view)
        if score is None:
            return None
        return AnalyzerReading(score=score, regime=_regime_tag(score))


class ReplayMarket:
    """
    Bar-by-bar view over historical FX data.

    Args:
        bars: Symbol -> OHLC DataFrame with a DatetimeIndex
        warmup: Bars required before any collaborator answers
    """

    def __init__(self, bars: Dict[str, pd.DataFrame], warmup: int = 60):
        self.warmup = warmup
        self.features: Dict[str, pd.DataFrame] = {}
        for symbol, df in bars.items():
            df = _flatten(df).dropna(subset=["Open", "High", "Low", "Close"])
            enriched = compute_all_features(df)
            enriched["MA_Fast"] = enriched["Close"].rolling(FAST_MA).mean()
            enriched["MA_Slow"] = enriched["Close"].rolling(SLOW_MA).mean()
            self.features[symbol] = enriched

        index = pd.DatetimeIndex([])
        for df in self.features.values():
            index = index.union(df.index)
        self.timestamps = index
        self.now: Optional[pd.Timestamp] = None

    @property
    def symbols(self) -> List[str]:
        return list(self.features)

    def advance_to(self, ts) -> None:
        self.now = pd.Timestamp(ts)

    def view(self, symbol: str) -> Optional[pd.DataFrame]:
        """Features up to and including the current bar, or None during warmup."""
        df = self.features.get(symbol)
        if df is None or self.now is None:
            return None
        view = df.loc[:self.now]
        if len(view) < self.warmup:
            return None
        return view

    # ── collaborator protocols ───────────────────────────────

    def get_signal(self, symbol: str) -> Optional[BaseSignal]:
        view = self.view(symbol)
        if view is None:
            return None
        last = view.iloc[-1]
        fast, slow = last["MA_Fast"], last["MA_Slow"]
        if pd.isna(fast) or pd.isna(slow) or slow == 0 or fast == slow:
            return None

        direction = Direction.BUY if fast > slow else Direction.SELL
        gap = abs(fast - slow) / slow
        strength = 50.0 + 50.0 * float(np.clip(gap / CROSS_SATURATION, 0.0, 1.0))

        indicators = ["MA_Cross"]
        slope = last["MA_Slope"]
        if not pd.isna(slope) and np.sign(slope) == direction.sign:
            indicators.append("MA_Slope")
        rsi = last["RSI"]
        if not pd.isna(rsi) and (rsi - 50.0) * direction.sign > 0:
            indicators.append("RSI")

        return BaseSignal(direction=direction, strength=strength, contributing_indicators=tuple(indicators))

    def predict(self, symbol: str, horizon: int) -> Optional[MLOutput]:
        view = self.view(symbol)
        if view is None:
            return None
        window = max(5, 5 * horizon)
        returns = view["Return_1D"].dropna().iloc[-window:]
        if len(returns) < 3:
            return None
        std = returns.std()
        if not std or np.isnan(std):
            return MLOutput(value=0.0, confidence=0.0)
        t_stat = returns.mean() / (std / np.sqrt(len(returns)))
        return MLOutput(
            value=float(returns.mean() * horizon),
            confidence=float(np.clip(abs(t_stat) * 25.0, 0.0, 100.0)),
        )

    def get_sentiment(self, symbol: str) -> Optional[float]:
        view = self.view(symbol)
        if view is None:
            return None
        rsi = view["RSI"].iloc[-1]
        return None if pd.isna(rsi) else float(rsi)

    def analyzers(self) -> Dict[str, ReplayAnalyzer]:
        """Analyzers for trend, volatility, liquidity and seasonal scores."""
        return {
            "trend": ReplayAnalyzer(self, trend_score),
            "volatility": ReplayAnalyzer(self, volatility_score),
            "liquidity": ReplayAnalyzer(self, liquidity_score),
            "seasonal": ReplayAnalyzer(self, seasonal_score),
        }

    # ── trade resolution ─────────────────────────────────────

    def resolve_trade(
        self,
        symbol: str,
        direction: Direction,
        risk_fraction: float,
        entry_ts,
        hold_bars: int,
    ) -> Optional[Tuple[float, float, pd.Timestamp]]:
        """
        Resolve a trade opened at entry_ts's close and held hold_bars bars.

        A move of one daily volatility against the position loses
        risk_fraction of equity.

        Returns:
            (return in percent of equity, max drawdown fraction, exit time),
            or None when the data ends before the exit bar
        """
        df = self.features[symbol]
        pos = df.index.get_indexer([pd.Timestamp(entry_ts)])[0]
        if pos < 0 or pos + hold_bars >= len(df):
            return None

        entry = df["Close"].iloc[pos]
        daily_vol = df["Realized_Vol"].iloc[pos] / np.sqrt(252)
        if pd.isna(daily_vol) or daily_vol <= 0:
            daily_vol = 0.005

        path = df.iloc[pos + 1: pos + hold_bars + 1]
        exit_price = path["Close"].iloc[-1]
        move = direction.sign * (exit_price / entry - 1.0)

        adverse = path["Low"] if direction is Direction.BUY else path["High"]
        worst = float((direction.sign * (adverse / entry - 1.0)).min())

        realized_pct = 100.0 * risk_fraction * move / daily_vol
        max_dd = risk_fraction * max(-worst, 0.0) / daily_vol
        return float(realized_pct), float(max_dd), path.index[-1]


class ReplayPortfolio:
    """
    Minimal book for replay: equity curve, open positions, correlation.

    Args:
        market: ReplayMarket used for correlation lookups
        correlation_lookback: Bars of returns used for pairwise correlation
    """

    def __init__(self, market: ReplayMarket, correlation_lookback: int = 60):
        self.market = market
        self.correlation_lookback = correlation_lookback
        self.equity: List[float] = [1.0]
        self.positions: Dict[str, Tuple[Direction, float]] = {}

    def validate_position(self, symbol: str, proposed_size: float) -> PositionValidation:
        if symbol in self.positions:
            return PositionValidation(accepted=False, max_allowed=0.0)
        return PositionValidation(accepted=True, max_allowed=proposed_size)

    def current_drawdown(self) -> float:
        peak = max(self.equity)
        return 100.0 * (peak - self.equity[-1]) / peak

    def open_risk(self) -> float:
        return sum(size for _, size in self.positions.values())

    def correlation_exposure(self, symbol: str, direction: Direction) -> Optional[float]:
        if not self.positions:
            return None
        mine = self.market.view(symbol)
        if mine is None:
            return None
        mine = mine["Return_1D"].iloc[-self.correlation_lookback:]

        exposures = []
        for other, (other_dir, _) in self.positions.items():
            if other == symbol:
                continue
            theirs = self.market.view(other)
            if theirs is None:
                continue
            aligned = pd.concat([mine, theirs["Return_1D"]], axis=1, join="inner").dropna()
            if len(aligned) < 10:
                continue
            corr = aligned.iloc[:, 0].corr(aligned.iloc[:, 1])
            if pd.isna(corr):
                continue
            # Same-side exposure to a positively correlated pair adds risk
            exposures.append(corr * direction.sign * other_dir.sign * 100.0)

        if not exposures:
            return None
        return float(np.clip(max(exposures), 0.0, 100.0))

    def open_position(self, symbol: str, direction: Direction, size: float) -> None:
        self.positions[symbol] = (direction, size)

    def close_position(self, symbol: str, realized_return_pct: float) -> None:
        self.positions.pop(symbol, None)
        self.equity.append(self.equity[-1] * (1.0 + realized_return_pct / 100.0))
