# fx_layers/L3_mode_selection/mode_selector.py
"""
Decision Mode Selection.

Handles:
- Static preference per MarketState (preferred mode + ranked alternates)
- Performance-driven adaptation (alternate must beat the preferred
  mode's risk-adjusted profitability by switch_margin, with enough samples)
- Switch hysteresis (a new mode commits only after confirm_cycles
  consecutive cycles, unless the regime breaks)
- Switch history tracking (most recent history_limit switches)
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from fx_layers.L0_adaptive_config import (
    DecisionMode,
    EngineSettings,
    MarketState,
)
from fx_layers.L2_market_state import MarketProfile
from fx_layers.L5_learning import PerformanceRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeSelection:
    """Result of one mode selection cycle."""
    mode: DecisionMode              # active (committed) mode
    preferred_mode: DecisionMode    # static default for the state
    candidate_mode: DecisionMode    # what this cycle wanted
    fallback_mode: DecisionMode
    mode_confidence: float
    switched: bool
    pending_mode: Optional[DecisionMode]
    reason: str


@dataclass(frozen=True)
class SwitchRecord:
    """Record of a committed mode switch."""
    timestamp: datetime
    symbol: str
    from_mode: Optional[DecisionMode]
    to_mode: DecisionMode
    state: MarketState
    reason: str


@dataclass
class _Hysteresis:
    active: Optional[DecisionMode] = None
    pending: Optional[DecisionMode] = None
    pending_count: int = 0


class ModeSelector:
    """
    Maps a MarketProfile plus per-mode track records to a DecisionMode.

    Keeps one hysteresis state per symbol.
    """

    def __init__(self, settings: EngineSettings):
        self.settings = settings
        self.params = settings.mode_selection
        self.switch_history: Deque[SwitchRecord] = deque(maxlen=self.params.history_limit)
        self._state: Dict[str, _Hysteresis] = {}

    def active_mode(self, symbol: str) -> Optional[DecisionMode]:
        state = self._state.get(symbol)
        return state.active if state else None

    def _score(self, record: Optional[PerformanceRecord]) -> Optional[float]:
        if record is None or record.trade_count < self.params.min_samples:
            return None
        return record.risk_adjusted_profitability(self.params.drawdown_penalty)

    def rank_candidates(
        self,
        state: MarketState,
        performance_by_mode: Mapping[DecisionMode, PerformanceRecord],
    ) -> tuple[DecisionMode, Dict[DecisionMode, float], bool]:
        """
        Pick this cycle's candidate mode for a state.

        Returns:
            (candidate, scored modes, whether any record was usable)
        """
        prefs = self.settings.preferences(state)
        preferred, alternates = prefs[0], prefs[1:]

        preferred_score = self._score(performance_by_mode.get(preferred))
        scored: Dict[DecisionMode, float] = {
            preferred: preferred_score if preferred_score is not None else 0.0
        }
        for mode in alternates:
            score = self._score(performance_by_mode.get(mode))
            if score is not None:
                scored[mode] = score

        has_data = preferred_score is not None or len(scored) > 1

        candidate = preferred
        eligible = [(m, scored[m]) for m in alternates if m in scored]
        if eligible:
            # max() keeps the first of equal scores, i.e. the higher-ranked alternate
            best_mode, best_score = max(eligible, key=lambda kv: kv[1])
            if best_score > scored[preferred] + self.params.switch_margin:
                candidate = best_mode

        return candidate, scored, has_data

    def _confidence(
        self,
        mode: DecisionMode,
        preferred: DecisionMode,
        scored: Dict[DecisionMode, float],
        has_data: bool,
        profile: MarketProfile,
    ) -> float:
        if not has_data or len(scored) == 1:
            return profile.state_confidence if mode == preferred else 0.0
        if mode not in scored:
            return 0.0
        runner_up = max(v for m, v in scored.items() if m != mode)
        margin = (scored[mode] - runner_up) * self.params.confidence_per_point
        return float(np.clip(margin, 0.0, 100.0))

    def _fallback(self, mode: DecisionMode, prefs: List[DecisionMode], scored: Dict[DecisionMode, float]) -> DecisionMode:
        others = [(m, scored[m]) for m in prefs if m != mode and m in scored]
        if others:
            return max(others, key=lambda kv: kv[1])[0]
        rest = [m for m in prefs if m != mode]
        return rest[0] if rest else DecisionMode.CONSERVATIVE

    def select_mode(
        self,
        profile: MarketProfile,
        performance_by_mode: Mapping[DecisionMode, PerformanceRecord],
    ) -> ModeSelection:
        """
        Select the operating mode for this cycle.

        Args:
            profile: Current MarketProfile for the symbol
            performance_by_mode: Track records for the profile's state

        Returns:
            ModeSelection with the committed mode and diagnostics
        """
        symbol = profile.symbol
        state = profile.current_state
        prefs = self.settings.preferences(state)
        preferred = prefs[0]

        candidate, scored, has_data = self.rank_candidates(state, performance_by_mode)
        hyst = self._state.setdefault(symbol, _Hysteresis())
        previous = hyst.active
        switched = False

        if hyst.active is None:
            reason = "Initial mode selection"
            self._commit(hyst, symbol, candidate, profile, reason)
            switched = True
        elif candidate == hyst.active:
            hyst.pending, hyst.pending_count = None, 0
            reason = "Active mode still preferred"
        elif profile.is_regime_break:
            reason = (
                f"Regime break {profile.previous_state.value} -> {state.value}"
            )
            self._commit(hyst, symbol, candidate, profile, reason)
            switched = True
        else:
            if candidate == hyst.pending:
                hyst.pending_count += 1
            else:
                hyst.pending, hyst.pending_count = candidate, 1

            if hyst.pending_count >= self.params.confirm_cycles:
                reason = f"{candidate.value} preferred for {hyst.pending_count} consecutive cycles"
                self._commit(hyst, symbol, candidate, profile, reason)
                switched = True
            else:
                reason = (
                    f"Switch to {candidate.value} pending "
                    f"({hyst.pending_count}/{self.params.confirm_cycles} cycles)"
                )

        active = hyst.active
        if switched:
            logger.info("%s mode %s -> %s: %s", symbol,
                        previous.value if previous else "None", active.value, reason)

        return ModeSelection(
            mode=active,
            preferred_mode=preferred,
            candidate_mode=candidate,
            fallback_mode=self._fallback(active, prefs, scored),
            mode_confidence=self._confidence(active, preferred, scored, has_data, profile),
            switched=switched,
            pending_mode=hyst.pending,
            reason=reason,
        )

    def _commit(
        self,
        hyst: _Hysteresis,
        symbol: str,
        mode: DecisionMode,
        profile: MarketProfile,
        reason: str,
    ) -> None:
        self.switch_history.append(SwitchRecord(
            timestamp=profile.timestamp,
            symbol=symbol,
            from_mode=hyst.active,
            to_mode=mode,
            state=profile.current_state,
            reason=reason,
        ))
        hyst.active = mode
        hyst.pending, hyst.pending_count = None, 0

    def get_history_df(self) -> pd.DataFrame:
        """Get switch history as DataFrame."""
        if not self.switch_history:
            return pd.DataFrame(columns=["Timestamp", "Symbol", "From", "To", "State", "Reason"])

        return pd.DataFrame([
            {
                "Timestamp": r.timestamp,
                "Symbol": r.symbol,
                "From": r.from_mode.value if r.from_mode else "None",
                "To": r.to_mode.value,
                "State": r.state.value,
                "Reason": r.reason,
            }
            for r in self.switch_history
        ])
