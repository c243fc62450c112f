# utils/fx_sessions.py
"""
FX Session Calendar

Provides the major FX trading sessions in UTC, weekend closure, and
detection of session transitions (the minutes around a session open
or close, when liquidity shifts between centres).

Session hours are fixed UTC windows and do not follow daylight saving.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Tuple

import pandas as pd

# (open hour, close hour) in UTC; a close below the open wraps past midnight
FX_SESSIONS: Dict[str, Tuple[int, int]] = {
    "Sydney": (21, 6),
    "Tokyo": (0, 9),
    "London": (7, 16),
    "NewYork": (12, 21),
}

# Market closes Friday 21:00 UTC, reopens Sunday 21:00 UTC
WEEKEND_CLOSE = (4, 21)  # (weekday, hour)
WEEKEND_OPEN = (6, 21)

DEFAULT_TRANSITION_WINDOW = timedelta(minutes=30)


def utc_now() -> datetime:
    """Timezone-aware current time in UTC; the default engine clock."""
    return datetime.now(timezone.utc)


def _to_utc(ts) -> pd.Timestamp:
    ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        return ts
    return ts.tz_convert("UTC").tz_localize(None)


def is_fx_market_open(ts) -> bool:
    """
    Return True when the spot FX market is open.

    Args:
        ts: datetime or pandas Timestamp (naive values are taken as UTC)
    """
    ts = _to_utc(ts)
    weekday, hour = ts.weekday(), ts.hour
    if weekday == 5:
        return False
    if weekday == WEEKEND_CLOSE[0] and hour >= WEEKEND_CLOSE[1]:
        return False
    if weekday == WEEKEND_OPEN[0] and hour < WEEKEND_OPEN[1]:
        return False
    return True


def _in_window(hour: int, open_hour: int, close_hour: int) -> bool:
    if open_hour < close_hour:
        return open_hour <= hour < close_hour
    return hour >= open_hour or hour < close_hour


def active_sessions(ts) -> List[str]:
    """Names of the sessions trading at ts (empty over the weekend)."""
    if not is_fx_market_open(ts):
        return []
    hour = _to_utc(ts).hour
    return [name for name, (o, c) in FX_SESSIONS.items() if _in_window(hour, o, c)]


def session_boundaries(day) -> List[pd.Timestamp]:
    """Every session open and close on the given UTC calendar day."""
    start = _to_utc(day).normalize()
    hours = sorted({h for pair in FX_SESSIONS.values() for h in pair})
    return [start + pd.Timedelta(hours=h) for h in hours]


def is_session_transition(ts, window: timedelta = DEFAULT_TRANSITION_WINDOW) -> bool:
    """
    Return True when ts lies within `window` of a session open or close.

    Boundaries on neighbouring days are considered, so 23:50 is close
    to the 00:00 Tokyo open.
    """
    if not is_fx_market_open(ts):
        return False
    ts = _to_utc(ts)
    day = ts.normalize()
    candidates = []
    for offset in (-1, 0, 1):
        candidates.extend(session_boundaries(day + pd.Timedelta(days=offset)))
    return any(abs(ts - b) <= pd.Timedelta(window) for b in candidates)
