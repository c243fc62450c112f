"""
Learning feedback loop tests: EWMA records, experience buffer,
bounded weight adaptation and adaptive thresholds.

Run with: pytest tests/test_learning.py -v
"""

import math
from dataclasses import replace
from datetime import datetime

import numpy as np
import pytest

from fx_layers.L0_adaptive_config import DecisionMode, MarketState
from fx_layers.L5_learning import (
    AdaptiveWeightTable,
    ExperienceBuffer,
    ExperienceEntry,
    LearningFeedbackLoop,
    PerformanceRecord,
    compute_reward,
    ewma,
    project_to_bounds,
)

TF = DecisionMode.TREND_FOLLOWING
TB = MarketState.TRENDING_BULL
T0 = datetime(2024, 3, 6, 10, 0)


@pytest.fixture
def loop(settings):
    return LearningFeedbackLoop(settings, clock=lambda: T0)


def entry(i: int, reward: float = 0.0) -> ExperienceEntry:
    return ExperienceEntry(
        decision_id=f"EURUSD-{i}",
        symbol="EURUSD",
        features_snapshot=np.zeros(7),
        chosen_mode=TF,
        chosen_state=TB,
        realized_return=float(i),
        realized_reward=reward,
        max_drawdown=0.0,
        timestamp=T0,
    )


class TestPerformanceRecord:

    def test_ewma(self):
        assert ewma(10.0, 20.0, 0.1) == pytest.approx(11.0)

    def test_single_update(self):
        record = PerformanceRecord().updated(2.0, 0.01, alpha=0.1, timestamp=T0, holding_time=3600)
        assert record.trade_count == 1
        assert record.profitability == pytest.approx(0.2)
        assert record.accuracy == pytest.approx(0.55)
        assert record.max_drawdown == pytest.approx(0.001)
        assert record.avg_holding_time == pytest.approx(360.0)
        assert record.last_update == T0

    def test_order_sensitive(self):
        a = PerformanceRecord().updated(1.0, 0, 0.5, T0).updated(-1.0, 0, 0.5, T0)
        b = PerformanceRecord().updated(-1.0, 0, 0.5, T0).updated(1.0, 0, 0.5, T0)
        assert a.profitability != b.profitability


class TestExperienceBuffer:

    def test_fifo_eviction_at_capacity(self):
        buffer = ExperienceBuffer(capacity=3)
        for i in range(5):
            buffer.append(entry(i))

        assert len(buffer) == 3
        assert buffer.evicted == 2
        assert buffer.total_appended == 5
        assert [e.decision_id for e in buffer] == ["EURUSD-2", "EURUSD-3", "EURUSD-4"]

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            ExperienceBuffer(capacity=0)

    def test_frame(self):
        buffer = ExperienceBuffer(capacity=5)
        buffer.append(entry(1))
        frame = buffer.to_frame()
        assert list(frame["Mode"]) == ["TrendFollowing"]

    def test_queries(self):
        buffer = ExperienceBuffer(capacity=5)
        for i in range(4):
            buffer.append(entry(i))
        assert [e.decision_id for e in buffer.latest(2)] == ["EURUSD-2", "EURUSD-3"]
        assert len(buffer.rewards_for(TF, TB)) == 4
        assert len(buffer.rewards_for(TF, MarketState.RANGE_BOUND)) == 0


class TestReward:

    def test_log_compression_and_drawdown_penalty(self):
        assert compute_reward(0.0, 0.0) == 0.0
        assert compute_reward(1.0, 0.0) == pytest.approx(math.log(2))
        assert compute_reward(-1.0, 0.1) == pytest.approx(-math.log(2) - 0.2)


class TestFeedbackLoop:

    def test_outcome_updates_record_and_buffer(self, loop, make_metrics):
        metrics = make_metrics()
        assert loop.register_decision(metrics, np.ones(7), adaptation_speed=0.1)

        result = loop.record_outcome(metrics.decision_id, realized_return=2.0, max_drawdown=0.01)

        assert result is not None
        assert result.chosen_mode == TF and result.chosen_state == TB
        record = loop.performance.get(TF, TB)
        assert record.trade_count == 1
        assert record.profitability == pytest.approx(0.2)
        assert len(loop.buffer) == 1
        assert loop.pending_count == 0

    def test_non_trade_is_never_recorded(self, loop, make_metrics):
        assert not loop.register_decision(make_metrics(passes=False), np.zeros(7), 0.1)
        assert not loop.register_decision(make_metrics(size=0.0), np.zeros(7), 0.1)
        assert loop.record_outcome("EURUSD-1", 1.0, 0.0) is None
        assert len(loop.buffer) == 0
        assert len(loop.performance) == 0
        assert loop.get_stats()["unknown_outcomes"] == 1

    def test_outcome_recorded_once(self, loop, make_metrics):
        metrics = make_metrics()
        loop.register_decision(metrics, np.zeros(7), 0.1)
        assert loop.record_outcome(metrics.decision_id, 1.0, 0.0) is not None
        assert loop.record_outcome(metrics.decision_id, 1.0, 0.0) is None

    def test_winning_trade_reinforces_signal_weight(self, loop, make_metrics):
        before = loop.weights.weights_for(TF)
        metrics = make_metrics()
        loop.register_decision(metrics, np.zeros(7), 0.1)
        loop.record_outcome(metrics.decision_id, 1.0, 0.0)

        after = loop.weights.weights_for(TF)
        assert after.signal > before.signal
        assert sum(after.as_dict().values()) == pytest.approx(1.0)
        assert loop.stats.reinforcements == 1

    def test_losing_trade_tightens_threshold(self, loop, make_metrics):
        before = loop.weights.threshold_for(TF)
        metrics = make_metrics()
        loop.register_decision(metrics, np.zeros(7), 0.1)
        loop.record_outcome(metrics.decision_id, -1.0, 0.02)
        assert loop.weights.threshold_for(TF) == pytest.approx(before + 1.0)

    def test_adaptation_can_be_frozen(self, loop, make_metrics):
        before = loop.weights.snapshot()
        metrics = make_metrics()
        loop.register_decision(metrics, np.zeros(7), 0.1, adapt_weights=False)
        loop.record_outcome(metrics.decision_id, -1.0, 0.02)
        assert loop.weights.snapshot() == before
        assert loop.performance.get(TF, TB).trade_count == 1


class TestBoundedPending:

    @pytest.fixture
    def small_loop(self, settings):
        small = replace(settings, learning=replace(settings.learning, pending_capacity=2))
        return LearningFeedbackLoop(small, clock=lambda: T0)

    def test_oldest_unresolved_trade_dropped(self, small_loop, make_metrics):
        for i in range(1, 5):
            small_loop.register_decision(make_metrics(decision_id=f"EURUSD-{i}"), np.zeros(7), 0.1)

        assert small_loop.pending_count == 2
        assert not small_loop.is_pending("EURUSD-2")
        assert small_loop.is_pending("EURUSD-3") and small_loop.is_pending("EURUSD-4")
        assert small_loop.get_stats()["pending_evicted"] == 2
        assert small_loop.record_outcome("EURUSD-1", 1.0, 0.0) is None

    def test_resolving_frees_room(self, small_loop, make_metrics):
        for i in (1, 2):
            small_loop.register_decision(make_metrics(decision_id=f"EURUSD-{i}"), np.zeros(7), 0.1)
        small_loop.record_outcome("EURUSD-1", 1.0, 0.0)
        small_loop.register_decision(make_metrics(decision_id="EURUSD-3"), np.zeros(7), 0.1)

        assert small_loop.pending_count == 2
        assert small_loop.stats.pending_evicted == 0


class TestExperienceReplay:

    def test_losing_history_tightens_threshold(self, loop):
        before = loop.weights.threshold_for(TF)
        for i in range(5):
            loop.buffer.append(entry(i, reward=-0.5))

        loop.run_learning_pass(T0)

        assert loop.weights.threshold_for(TF) == pytest.approx(before + 1.0)
        assert loop.get_stats()["replay_adjustments"] == 1

    def test_winning_history_relaxes_threshold(self, loop):
        before = loop.weights.threshold_for(TF)
        for i in range(5):
            loop.buffer.append(entry(i, reward=0.4))

        loop.run_learning_pass(T0)

        assert loop.weights.threshold_for(TF) == pytest.approx(before - 0.5)

    def test_thin_history_is_not_replayed(self, loop):
        before = loop.weights.threshold_for(TF)
        for i in range(4):
            loop.buffer.append(entry(i, reward=-0.5))

        assert loop.replay_rewards() == {}
        loop.run_learning_pass(T0)
        assert loop.weights.threshold_for(TF) == pytest.approx(before)
        assert loop.get_stats()["replay_adjustments"] == 0

    def test_replay_only_touches_buffered_modes(self, loop):
        other = DecisionMode.MEAN_REVERSION
        before = loop.weights.threshold_for(other)
        for i in range(6):
            loop.buffer.append(entry(i, reward=-1.0 if i % 2 else 0.2))

        assert loop.replay_rewards() == {TF: pytest.approx(-0.4)}
        loop.run_learning_pass(T0)
        assert loop.weights.threshold_for(other) == pytest.approx(before)


class TestWeightBounds:

    def test_runaway_reinforcement_stays_bounded(self, settings):
        table = AdaptiveWeightTable(settings)
        low, high = settings.learning.weight_bounds
        for _ in range(1000):
            table.nudge(TF, {"signal": 60.0, "ml": 5.0, "sentiment": 1.0}, reinforce=True)

        weights = table.weights_for(TF).as_dict()
        assert all(low - 1e-9 <= w <= high + 1e-9 for w in weights.values())
        assert sum(weights.values()) == pytest.approx(1.0)
        assert weights["signal"] == pytest.approx(high, abs=0.01)

    def test_threshold_bounded(self, settings):
        table = AdaptiveWeightTable(settings)
        low, high = settings.learning.threshold_bounds
        for _ in range(200):
            table.adjust_threshold(TF, won=False)
        assert table.threshold_for(TF) == high
        for _ in range(500):
            table.adjust_threshold(TF, won=True)
        assert table.threshold_for(TF) == low

    def test_decay_pulls_back_to_defaults(self, settings):
        table = AdaptiveWeightTable(settings)
        default = table.weights_for(TF).signal
        for _ in range(20):
            table.nudge(TF, {"signal": 1.0}, reinforce=True)
        drifted = table.weights_for(TF).signal

        table.decay_toward_defaults(factor=0.5)
        decayed = table.weights_for(TF).signal
        assert default < decayed < drifted

    def test_projection(self):
        w = project_to_bounds(np.array([0.95, 0.03, 0.02]), 0.05, 0.80)
        assert w.sum() == pytest.approx(1.0)
        assert w.max() <= 0.80 + 1e-12
        assert w.min() >= 0.05 - 1e-12

    def test_learning_pass_counts(self, loop):
        loop.run_learning_pass(T0)
        assert loop.get_stats()["learning_passes"] == 1
