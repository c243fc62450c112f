# fx_layers/L9_adaptation_scheduler/scheduler.py
"""
Adaptation Scheduling.

Handles:
- Cycle cadence (re-classify / re-select only every adaptation_period)
- Regime-break override (stable state -> Reversal / NewsImpact /
  HighVolatility runs the next cycle immediately)
- Learning pass cadence
- Per-symbol cycle stage machine:
      Idle -> Classifying -> ModeSelecting -> Scoring -> Sizing -> Done -> Idle
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Set

from fx_layers.L0_adaptive_config import (
    AdaptiveConfig,
    MarketState,
    SchedulerSettings,
    is_regime_break,
)

logger = logging.getLogger(__name__)


class CycleStage(str, Enum):
    IDLE = "Idle"
    CLASSIFYING = "Classifying"
    MODE_SELECTING = "ModeSelecting"
    SCORING = "Scoring"
    SIZING = "Sizing"
    DONE = "Done"


_NEXT_STAGE = {
    CycleStage.IDLE: CycleStage.CLASSIFYING,
    CycleStage.CLASSIFYING: CycleStage.MODE_SELECTING,
    CycleStage.MODE_SELECTING: CycleStage.SCORING,
    CycleStage.SCORING: CycleStage.SIZING,
    CycleStage.SIZING: CycleStage.DONE,
    CycleStage.DONE: CycleStage.IDLE,
}


class AdaptationScheduler:
    """
    Decides when the adaptive parts of a cycle may run.

    Scoring and sizing run on every call; classification and mode
    selection only when a cycle is due.
    """

    def __init__(self, settings: Optional[SchedulerSettings] = None, started_at: Optional[datetime] = None):
        self.settings = settings or SchedulerSettings()
        self._overrides: Set[str] = set()
        self._stages: Dict[str, CycleStage] = {}
        self._started_at = started_at
        self.last_learning_pass: Optional[datetime] = None

    # ── cadence ──────────────────────────────────────────────

    def should_run_cycle(self, symbol: str, now: datetime, config: AdaptiveConfig) -> bool:
        """
        True when the symbol's classification/mode-selection cycle is due.

        Due when no cycle has run yet, the adaptation period has elapsed
        since config.last_adaptation, or a regime-break override is pending.
        """
        if symbol in self._overrides:
            return True
        if config.last_adaptation is None:
            return True
        return now - config.last_adaptation >= config.adaptation_period

    def observe_state(
        self,
        symbol: str,
        previous: Optional[MarketState],
        current: MarketState,
    ) -> bool:
        """
        Feed the latest (uncommitted) classification.

        Returns:
            True if it raised a regime-break override
        """
        if is_regime_break(previous, current):
            if symbol not in self._overrides:
                logger.info(
                    "%s regime break %s -> %s, forcing adaptation cycle",
                    symbol, previous.value, current.value,
                )
            self._overrides.add(symbol)
            return True
        return False

    def override_pending(self, symbol: str) -> bool:
        return symbol in self._overrides

    def mark_cycle_run(self, symbol: str) -> None:
        self._overrides.discard(symbol)

    def should_run_learning_pass(self, now: datetime) -> bool:
        """
        True once learning_period has elapsed since the last pass.

        The first call only starts the clock.
        """
        reference = self.last_learning_pass or self._started_at
        if reference is None:
            self._started_at = now
            return False
        return now - reference >= self.settings.learning_period

    def mark_learning_pass(self, now: datetime) -> None:
        self.last_learning_pass = now

    # ── stage machine ────────────────────────────────────────

    def stage(self, symbol: str) -> CycleStage:
        return self._stages.get(symbol, CycleStage.IDLE)

    def advance(self, symbol: str, to: CycleStage) -> CycleStage:
        """Move the symbol's cycle one stage forward; anything else is a bug."""
        current = self.stage(symbol)
        if _NEXT_STAGE[current] is not to:
            raise RuntimeError(
                f"{symbol}: illegal cycle transition {current.value} -> {to.value}"
            )
        self._stages[symbol] = to
        return to

    def reset(self, symbol: str) -> None:
        """Return an interrupted cycle to Idle."""
        self._stages[symbol] = CycleStage.IDLE
