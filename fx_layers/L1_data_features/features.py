# fx_layers/L1_data_features/features.py
"""
Reference feature adapters for FX bars.

Transforms raw OHLC data into the five normalized component scores
(0-100, 50 = neutral) consumed by the market state classifier:
- Trend: ADX strength signed by moving-average slope
- Volatility: percentile of realized volatility in its trailing window
- Liquidity: inverse percentile of the relative bar range
- Sentiment proxy: RSI
- Seasonality: same-weekday mean return, z-scored

These are host-side collaborators; the engine only sees the scores.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
import pandas as pd


def _flatten(df: pd.DataFrame) -> pd.DataFrame:
    """Flatten yfinance multi-index columns."""
    if isinstance(df.columns, pd.MultiIndex):
        df = df.copy()
        df.columns = df.columns.get_level_values(0)
    return df


def compute_realized_volatility(df: pd.DataFrame, window: int = 20) -> pd.DataFrame:
    """
    Compute rolling realized volatility from log returns.

    Returns:
        DataFrame with 'Realized_Vol' column (annualized)
    """
    result = _flatten(df).copy()
    log_returns = np.log(result["Close"] / result["Close"].shift(1))
    result["Realized_Vol"] = log_returns.rolling(window=window).std() * np.sqrt(252)
    return result


def compute_adx(df: pd.DataFrame, period: int = 14) -> pd.DataFrame:
    """
    Compute Average Directional Index (ADX) for trend strength.

    Returns:
        DataFrame with 'ADX' column (0-100 scale)
    """
    result = _flatten(df).copy()

    high = result["High"].to_numpy(dtype=float)
    low = result["Low"].to_numpy(dtype=float)
    close = result["Close"].to_numpy(dtype=float)

    # True Range
    prev_close = np.roll(close, 1)
    tr = np.maximum(np.maximum(high - low, np.abs(high - prev_close)), np.abs(low - prev_close))
    tr[0] = np.nan

    # Directional Movement
    up_move = np.diff(high, prepend=high[0])
    down_move = np.diff(-low, prepend=-low[0])
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    atr = pd.Series(tr, index=result.index).rolling(window=period).mean()
    plus_di = 100 * pd.Series(plus_dm, index=result.index).rolling(window=period).mean() / (atr + 1e-10)
    minus_di = 100 * pd.Series(minus_dm, index=result.index).rolling(window=period).mean() / (atr + 1e-10)

    dx = 100 * (plus_di - minus_di).abs() / (plus_di + minus_di + 1e-10)
    result["ADX"] = dx.rolling(window=period).mean()
    return result


def compute_ma_slope(df: pd.DataFrame, period: int = 20) -> pd.DataFrame:
    """
    Compute slope of moving average as trend direction.

    Returns:
        DataFrame with 'MA_Slope' column (5-bar percent change of the MA)
    """
    result = _flatten(df).copy()
    ma = result["Close"].rolling(window=period).mean()
    result["MA_Slope"] = (ma - ma.shift(5)) / ma.shift(5)
    return result


def compute_rsi(df: pd.DataFrame, period: int = 14) -> pd.DataFrame:
    """Wilder RSI in 'RSI' column."""
    result = _flatten(df).copy()
    delta = result["Close"].diff()
    gain = delta.clip(lower=0).ewm(alpha=1 / period, adjust=False).mean()
    loss = (-delta.clip(upper=0)).ewm(alpha=1 / period, adjust=False).mean()
    rs = gain / loss.replace(0, np.nan)
    rsi = 100 - 100 / (1 + rs)
    # No losses in the window means maximal strength
    result["RSI"] = rsi.where(loss > 0, 100.0)
    return result


def compute_all_features(df: pd.DataFrame) -> pd.DataFrame:
    """Compute every column the component scores read."""
    result = compute_realized_volatility(df)
    result = compute_adx(result)
    result = compute_ma_slope(result)
    result = compute_rsi(result)
    result["Rel_Range"] = (result["High"] - result["Low"]) / result["Close"]
    result["Return_1D"] = np.log(result["Close"] / result["Close"].shift(1))
    return result


def _percentile_of_last(series: pd.Series, lookback: int) -> Optional[float]:
    window = series.dropna().iloc[-lookback:]
    if len(window) < 2:
        return None
    last = window.iloc[-1]
    return float((window <= last).mean() * 100)


def trend_score(features: pd.DataFrame) -> Optional[float]:
    """50 +/- 50 scaled by ADX, signed by MA slope."""
    adx = features["ADX"].iloc[-1]
    slope = features["MA_Slope"].iloc[-1]
    if pd.isna(adx) or pd.isna(slope):
        return None
    strength = float(np.clip(adx / 50.0, 0.0, 1.0))
    return 50.0 + 50.0 * float(np.sign(slope)) * strength


def volatility_score(features: pd.DataFrame, lookback: int = 120) -> Optional[float]:
    return _percentile_of_last(features["Realized_Vol"], lookback)


def liquidity_score(features: pd.DataFrame, lookback: int = 120) -> Optional[float]:
    """Wide, disorderly bars relative to recent history read as thin liquidity."""
    pct = _percentile_of_last(features["Rel_Range"], lookback)
    return None if pct is None else 100.0 - pct


def sentiment_proxy(features: pd.DataFrame) -> Optional[float]:
    rsi = features["RSI"].iloc[-1]
    return None if pd.isna(rsi) else float(rsi)


def seasonal_score(features: pd.DataFrame, min_samples: int = 8) -> Optional[float]:
    """
    Same-weekday mean return relative to all returns.

    Requires a DatetimeIndex; z-score is mapped to 50 +/- 25 per sigma.
    """
    if not isinstance(features.index, pd.DatetimeIndex):
        return None
    returns = features["Return_1D"].dropna()
    if len(returns) < min_samples * 2:
        return None
    weekday = features.index[-1].dayofweek
    same_day = returns[returns.index.dayofweek == weekday]
    std = returns.std()
    if len(same_day) < min_samples or not std or np.isnan(std):
        return None
    z = (same_day.mean() - returns.mean()) / (std / np.sqrt(len(same_day)))
    return float(np.clip(50.0 + 25.0 * z, 0.0, 100.0))


def compute_component_scores(df: pd.DataFrame) -> dict[str, Optional[float]]:
    """
    Score the latest bar of an OHLC frame.

    Returns:
        {"trend", "volatility", "liquidity", "sentiment", "seasonal"} -> 0-100 or None
    """
    features = compute_all_features(df)
    return {
        "trend": trend_score(features),
        "volatility": volatility_score(features),
        "liquidity": liquidity_score(features),
        "sentiment": sentiment_proxy(features),
        "seasonal": seasonal_score(features),
    }
