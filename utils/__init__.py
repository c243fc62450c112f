# utils/__init__.py
"""
Utility modules for the FX decision engine.
"""

from .fx_sessions import (
    FX_SESSIONS,
    active_sessions,
    is_fx_market_open,
    is_session_transition,
    session_boundaries,
    utc_now,
)

__all__ = [
    "FX_SESSIONS",
    "active_sessions",
    "is_fx_market_open",
    "is_session_transition",
    "session_boundaries",
    "utc_now",
]
