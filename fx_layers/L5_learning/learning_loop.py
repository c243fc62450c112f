# fx_layers/L5_learning/learning_loop.py
"""
LAYER 5 — LEARNING FEEDBACK LOOP

Always-on adaptation layer.

Loop:
1. Engine registers every decision that became a trade
2. Execution resolves the trade later
3. record_outcome() appends an ExperienceEntry
4. (mode, state) PerformanceRecord gets an EWMA update
5. Fusion weights for the mode are reinforced or decayed
6. The mode's confidence threshold is tightened or relaxed
7. Hourly learning pass: decay toward defaults, then replay buffered
   rewards per (mode, state) into the thresholds

Properties:
- Synchronous: updates land in call order (EWMA is order-sensitive)
- O(1) per outcome
- Null decisions (filtered / zero size) are never recorded as trades
- Trades awaiting an outcome are bounded by pending_capacity (FIFO)
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Dict, Optional, Tuple

import numpy as np

from fx_layers.L0_adaptive_config import DecisionMode, EngineSettings
from fx_layers.L5_learning.experience import ExperienceBuffer, ExperienceEntry
from fx_layers.L5_learning.performance import PerformanceTable
from fx_layers.L5_learning.reward import compute_reward
from fx_layers.L5_learning.weights import AdaptiveWeightTable
from utils.fx_sessions import utc_now

if TYPE_CHECKING:
    from fx_layers.L6_signal_fusion.scorer import DecisionMetrics

logger = logging.getLogger(__name__)

# Fused scores are 0-100; above this the decision predicted a gain
NEUTRAL_OPPORTUNITY = 50.0


def _elapsed_seconds(start: datetime, end: datetime) -> float:
    # Naive timestamps are read as UTC when mixed with aware ones
    if (start.tzinfo is None) != (end.tzinfo is None):
        start, end = (t if t.tzinfo else t.replace(tzinfo=timezone.utc) for t in (start, end))
    return max((end - start).total_seconds(), 0.0)


@dataclass
class PendingDecision:
    """A trade awaiting its outcome."""
    metrics: "DecisionMetrics"
    features_snapshot: np.ndarray
    registered_at: datetime
    adaptation_speed: float
    adapt_weights: bool = True


@dataclass
class LearningStats:
    outcomes_recorded: int = 0
    unknown_outcomes: int = 0
    reinforcements: int = 0
    decays: int = 0
    learning_passes: int = 0
    replay_adjustments: int = 0
    pending_evicted: int = 0
    last_update: Optional[datetime] = None
    last_learning_pass: Optional[datetime] = None


class LearningFeedbackLoop:
    """
    Online learner fed by realized trade outcomes.

    Owns the experience buffer and the performance table; shares the
    AdaptiveWeightTable with the signal fusion scorer.
    """

    def __init__(
        self,
        settings: EngineSettings,
        performance: Optional[PerformanceTable] = None,
        weights: Optional[AdaptiveWeightTable] = None,
        buffer: Optional[ExperienceBuffer] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        # Empty tables are falsy (__len__), so test against None
        self.performance = performance if performance is not None else PerformanceTable()
        self.weights = weights if weights is not None else AdaptiveWeightTable(settings)
        self.buffer = buffer if buffer is not None else ExperienceBuffer(settings.learning.buffer_capacity)
        self.clock = clock
        self.stats = LearningStats()
        self._pending: "OrderedDict[str, PendingDecision]" = OrderedDict()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def pending_capacity(self) -> int:
        return self.settings.learning.pending_capacity

    def is_pending(self, decision_id: str) -> bool:
        return decision_id in self._pending

    def register_decision(
        self,
        metrics: "DecisionMetrics",
        features_snapshot: np.ndarray,
        adaptation_speed: float,
        adapt_weights: bool = True,
    ) -> bool:
        """
        Remember a trade so its outcome can be attributed later.

        Returns False (and remembers nothing) for no-trade decisions.
        Beyond pending_capacity the oldest unresolved trade is dropped.
        """
        if not metrics.is_trade:
            return False
        self._pending[metrics.decision_id] = PendingDecision(
            metrics=metrics,
            features_snapshot=np.asarray(features_snapshot, dtype=float),
            registered_at=metrics.timestamp or self.clock(),
            adaptation_speed=adaptation_speed,
            adapt_weights=adapt_weights,
        )
        while len(self._pending) > self.pending_capacity:
            stale_id, _ = self._pending.popitem(last=False)
            self.stats.pending_evicted += 1
            logger.warning("No outcome for %s before pending capacity was reached; dropped", stale_id)
        return True

    def record_outcome(
        self,
        decision_id: str,
        realized_return: float,
        max_drawdown: float,
        holding_time: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[ExperienceEntry]:
        """
        Fold a resolved trade back into the learned state.

        Args:
            decision_id: Id from DecisionMetrics
            realized_return: Trade return, percent of equity
            max_drawdown: Worst drawdown during the trade, fraction
            holding_time: Seconds the position was held (optional)
            timestamp: Resolution time (defaults to clock)

        Returns:
            The appended ExperienceEntry, or None for unknown ids
        """
        pending = self._pending.pop(decision_id, None)
        if pending is None:
            self.stats.unknown_outcomes += 1
            logger.warning("Outcome for unknown or non-trade decision %s ignored", decision_id)
            return None

        now = timestamp or self.clock()
        metrics = pending.metrics
        alpha = pending.adaptation_speed
        if holding_time is None:
            holding_time = _elapsed_seconds(pending.registered_at, now)

        reward = compute_reward(
            realized_return, max_drawdown, self.settings.learning.reward_drawdown_penalty
        )
        entry = ExperienceEntry(
            decision_id=decision_id,
            symbol=metrics.symbol,
            features_snapshot=pending.features_snapshot,
            chosen_mode=metrics.mode,
            chosen_state=metrics.state,
            realized_return=realized_return,
            realized_reward=reward,
            max_drawdown=max_drawdown,
            timestamp=now,
        )
        self.buffer.append(entry)

        record = self.performance.get(metrics.mode, metrics.state)
        self.performance.put(
            metrics.mode,
            metrics.state,
            record.updated(realized_return, max_drawdown, alpha, now, holding_time),
        )

        if pending.adapt_weights:
            edge = metrics.opportunity_score - NEUTRAL_OPPORTUNITY
            reinforce = edge * realized_return > 0
            if edge != 0 and realized_return != 0:
                self.weights.nudge(metrics.mode, metrics.component_contributions, reinforce)
                if reinforce:
                    self.stats.reinforcements += 1
                else:
                    self.stats.decays += 1
            self.weights.adjust_threshold(metrics.mode, won=realized_return > 0)

        self.stats.outcomes_recorded += 1
        self.stats.last_update = now
        logger.debug(
            "Outcome %s: %s/%s return=%.3f reward=%.3f",
            decision_id, metrics.mode.value, metrics.state.value, realized_return, reward,
        )
        return entry

    def replay_rewards(self) -> Dict[DecisionMode, float]:
        """
        Mean buffered reward per mode.

        Only (mode, state) groups with at least min_replay_samples
        entries contribute; modes with no qualifying group are absent.
        """
        min_samples = self.settings.learning.min_replay_samples
        totals: Dict[DecisionMode, Tuple[float, int]] = {}
        for mode, state in self.buffer.keys():
            rewards = self.buffer.rewards_for(mode, state)
            if len(rewards) < min_samples:
                continue
            total, count = totals.get(mode, (0.0, 0))
            totals[mode] = (total + float(rewards.sum()), count + len(rewards))
        return {mode: total / count for mode, (total, count) in totals.items()}

    def run_learning_pass(self, timestamp: Optional[datetime] = None) -> None:
        """
        Periodic maintenance.

        Decays adapted parameters toward their defaults, then replays the
        experience buffer: a mode whose buffered trades lost on average
        has its confidence threshold tightened, a profitable one relaxed.
        """
        self.weights.decay_toward_defaults()
        for mode, mean_reward in self.replay_rewards().items():
            if mean_reward == 0:
                continue
            self.weights.adjust_threshold(mode, won=mean_reward > 0)
            self.stats.replay_adjustments += 1
        self.stats.learning_passes += 1
        self.stats.last_learning_pass = timestamp or self.clock()
        logger.info(
            "Learning pass #%d (%d experiences, %d pending)",
            self.stats.learning_passes, len(self.buffer), self.pending_count,
        )

    def get_stats(self) -> dict:
        return {
            "outcomes_recorded": self.stats.outcomes_recorded,
            "unknown_outcomes": self.stats.unknown_outcomes,
            "reinforcements": self.stats.reinforcements,
            "decays": self.stats.decays,
            "learning_passes": self.stats.learning_passes,
            "replay_adjustments": self.stats.replay_adjustments,
            "pending_evicted": self.stats.pending_evicted,
            "pending": self.pending_count,
            "experience_size": len(self.buffer),
            "experience_evicted": self.buffer.evicted,
            "last_update": self.stats.last_update.isoformat() if self.stats.last_update else None,
        }
