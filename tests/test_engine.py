"""
End-to-end engine tests with stub collaborators.

TrendingBull scenario (trend 95, volatility 30, liquidity 60,
seasonal 70, sentiment 80; TrendFollowing weights 0.60/0.25/0.15):
    opportunity = 0.60 × 70 + 0.25 × 60 + 0.15 × 80 = 69

Run with: pytest tests/test_engine.py -v
"""

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import timedelta, timezone
from unittest.mock import Mock

import pytest

from fx_layers.L0_adaptive_config import DecisionMode, MarketState
from fx_layers.L4_dynamic_filters import DynamicFilter
from pipeline import AdaptiveDecisionEngine

from conftest import (
    FIXED_NOW,
    FailingAnalyzer,
    StubAnalyzer,
    StubPortfolio,
    StubSentiment,
    StubSignalSource,
)


class TestDecisionCycle:

    def test_trending_bull_trade(self, make_engine):
        engine = make_engine()
        metrics = engine.make_decision("EURUSD")

        assert metrics.decision_id == "EURUSD-1"
        assert metrics.state == MarketState.TRENDING_BULL
        assert metrics.mode == DecisionMode.TREND_FOLLOWING
        assert metrics.opportunity_score == pytest.approx(69.0)
        assert metrics.passes_dynamic_filters
        assert metrics.is_trade
        assert 0 < metrics.position_size_fraction <= 0.02

        profile = engine.get_market_profile("EURUSD")
        assert profile.state_confidence == pytest.approx(85.0)
        assert engine.get_adaptive_config("EURUSD").primary_mode == DecisionMode.TREND_FOLLOWING
        assert engine.learning.pending_count == 1

    def test_outcome_feeds_learning_and_monitor(self, make_engine):
        engine = make_engine()
        metrics = engine.make_decision("EURUSD")

        entry = engine.record_outcome(metrics.decision_id, realized_return=0.8, max_drawdown=0.005)

        assert entry is not None
        record = engine.performance.get(DecisionMode.TREND_FOLLOWING, MarketState.TRENDING_BULL)
        assert record.trade_count == 1
        assert record.profitability == pytest.approx(0.08)
        assert len(engine.monitor.trade_history) == 1
        assert engine.learning.pending_count == 0

    def test_unknown_outcome_is_ignored(self, make_engine):
        engine = make_engine()
        assert engine.record_outcome("EURUSD-999", 1.0, 0.0) is None
        assert len(engine.buffer) == 0

    def test_identical_engines_decide_identically(self, make_engine):
        a, b = make_engine(), make_engine()
        for minutes in (0, 20, 40):
            now = FIXED_NOW + timedelta(minutes=minutes)
            assert a.make_decision("EURUSD", now) == b.make_decision("EURUSD", now)

    def test_no_signal_skips_filters_and_learning(self, make_engine):
        spy = Mock(spec=DynamicFilter)
        engine = make_engine(signal_source=StubSignalSource(None), filters=[spy])

        metrics = engine.make_decision("EURUSD")

        assert metrics.direction is None
        assert metrics.confidence_level == 0.0
        assert not metrics.is_trade
        spy.evaluate.assert_not_called()
        assert engine.learning.pending_count == 0

    def test_deep_drawdown_stops_trading(self, make_engine):
        engine = make_engine(portfolio=StubPortfolio(drawdown_pct=20.0))
        metrics = engine.make_decision("EURUSD")
        assert metrics.passes_dynamic_filters
        assert metrics.position_size_fraction == 0.0
        assert engine.learning.pending_count == 0

    def test_portfolio_can_cap_size(self, make_engine):
        engine = make_engine(portfolio=StubPortfolio(accept=False, max_allowed=0.005))
        metrics = engine.make_decision("EURUSD")
        assert metrics.position_size_fraction == pytest.approx(0.005)
        assert any("Portfolio capped" in r for r in metrics.reasoning)

    def test_decision_ids_unique_across_threads(self, make_engine):
        engine = make_engine()
        symbols = ["EURUSD", "GBPUSD", "USDJPY", "AUDUSD"] * 10
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(engine.make_decision, symbols))
        ids = [m.decision_id for m in results]
        assert len(set(ids)) == len(ids)
        assert all(engine.scheduler.stage(s).value == "Idle" for s in set(symbols))


class TestAdaptationCadence:

    def test_profile_cached_inside_adaptation_period(self, make_engine, bullish_analyzers, buy_signal):
        source = StubSignalSource(buy_signal)
        engine = make_engine(signal_source=source)
        engine.make_decision("EURUSD", FIXED_NOW)

        bullish_analyzers["trend"].score = 50.0
        engine.make_decision("EURUSD", FIXED_NOW + timedelta(minutes=5))

        profile = engine.get_market_profile("EURUSD")
        assert profile.current_state == MarketState.TRENDING_BULL
        assert profile.timestamp == FIXED_NOW
        # Scoring still runs every call
        assert source.calls == 2

        engine.make_decision("EURUSD", FIXED_NOW + timedelta(minutes=16))
        profile = engine.get_market_profile("EURUSD")
        assert profile.current_state == MarketState.RANGE_BOUND
        assert profile.timestamp == FIXED_NOW + timedelta(minutes=16)

    def test_regime_break_forces_immediate_cycle(self, make_engine):
        engine = make_engine()
        engine.make_decision("EURUSD", FIXED_NOW)

        engine.analyzers["news"] = StubAnalyzer(90.0)
        metrics = engine.make_decision("EURUSD", FIXED_NOW + timedelta(minutes=1))

        assert engine.get_market_profile("EURUSD").current_state == MarketState.NEWS_IMPACT
        assert metrics.mode == DecisionMode.NEWS_TRADER
        selection = engine.get_mode_selection("EURUSD")
        assert selection.switched
        assert "Regime break" in selection.reason
        assert not engine.scheduler.override_pending("EURUSD")

    def test_host_news_flag_triggers_regime_break(self, make_engine):
        engine = make_engine()
        engine.make_decision("EURUSD", FIXED_NOW)
        metrics = engine.make_decision("EURUSD", FIXED_NOW + timedelta(minutes=1), high_impact_news=True)
        assert metrics.state == MarketState.NEWS_IMPACT

    def test_learning_pass_runs_hourly(self, make_engine):
        engine = make_engine()
        engine.make_decision("EURUSD", FIXED_NOW)
        engine.make_decision("EURUSD", FIXED_NOW + timedelta(minutes=30))
        assert engine.learning.get_stats()["learning_passes"] == 0

        engine.make_decision("EURUSD", FIXED_NOW + timedelta(hours=1))
        assert engine.learning.get_stats()["learning_passes"] == 1


class TestDegradedInputs:

    def test_failing_analyzer_reduces_confidence(self, make_engine, bullish_analyzers):
        analyzers = dict(bullish_analyzers, seasonal=FailingAnalyzer())
        engine = make_engine(analyzers=analyzers)

        metrics = engine.make_decision("EURUSD")
        profile = engine.get_market_profile("EURUSD")

        assert profile.reduced_confidence
        assert profile.missing_components == ("seasonal",)
        assert profile.current_state == MarketState.TRENDING_BULL
        assert profile.state_confidence == pytest.approx(68.0)
        assert metrics.passes_dynamic_filters

    def test_unknown_analyzer_component_rejected(self, make_engine):
        with pytest.raises(ValueError):
            make_engine(analyzers={"momentum": StubAnalyzer()})

    def test_signal_source_exception_means_no_trade(self, make_engine):
        failing = Mock()
        failing.get_signal.side_effect = TimeoutError("broker")
        engine = make_engine(signal_source=failing)
        metrics = engine.make_decision("EURUSD")
        assert not metrics.is_trade

    def test_correlation_service_failure_does_not_abort_cycle(self, make_engine):
        portfolio = StubPortfolio()
        portfolio.correlation_exposure = Mock(side_effect=ConnectionError("risk service down"))
        engine = make_engine(portfolio=portfolio)

        metrics = engine.make_decision("EURUSD")

        correlation = next(r for r in metrics.filter_results if r.name == "Correlation")
        assert correlation.passed
        assert correlation.reason == "no correlation data"
        assert metrics.is_trade
        assert engine.scheduler.stage("EURUSD").value == "Idle"

    def test_nan_sentiment_is_treated_as_missing(self, make_engine):
        engine = make_engine(sentiment_analyzer=StubSentiment(float("nan")))

        metrics = engine.make_decision("EURUSD")

        assert engine.get_market_profile("EURUSD").missing_components == ("sentiment",)
        assert math.isfinite(metrics.confidence_level)
        assert 0.0 <= metrics.confidence_level <= 100.0
        assert math.isfinite(metrics.position_size_fraction)
        assert not any("SentimentAlignment" in r for r in metrics.reasoning)


class TestSharedLearningState:

    def test_learning_loop_shares_engine_tables(self, make_engine):
        engine = make_engine()
        assert engine.learning.performance is engine.performance
        assert engine.learning.weights is engine.weights
        assert engine.learning.buffer is engine.buffer

    def test_open_trades_bounded_by_pending_capacity(self, make_engine, settings):
        small = replace(settings, learning=replace(settings.learning, pending_capacity=2))
        engine = make_engine(settings=small)

        ids = [engine.make_decision("EURUSD", FIXED_NOW + timedelta(seconds=i)).decision_id for i in range(5)]

        assert engine.learning.pending_count == 2
        assert list(engine._open_trades) == ids[-2:]
        assert engine.learning.get_stats()["pending_evicted"] == 3
        # Dropped trades can no longer be attributed
        assert engine.record_outcome(ids[0], 1.0, 0.0) is None
        assert engine.record_outcome(ids[-1], 1.0, 0.0) is not None
        assert len(engine.monitor.trade_history) == 1

    def test_default_clock_is_utc_aware(self, settings, buy_signal, bullish_analyzers):
        engine = AdaptiveDecisionEngine(
            signal_source=StubSignalSource(buy_signal),
            analyzers=bullish_analyzers,
            sentiment_analyzer=StubSentiment(80.0),
            settings=settings,
            detect_sessions=False,
        )
        assert engine.clock().tzinfo is timezone.utc
        assert engine.learning.clock().tzinfo is timezone.utc

        metrics = engine.make_decision("EURUSD")
        assert metrics.timestamp.tzinfo is timezone.utc
        assert metrics.is_trade
        # A host reporting naive UTC times still resolves the trade
        assert engine.record_outcome(metrics.decision_id, 0.5, 0.0, timestamp=FIXED_NOW) is not None


class TestConfiguration:

    def test_invalid_update_keeps_last_known_good(self, make_engine):
        engine = make_engine()
        before = engine.get_adaptive_config("EURUSD")

        assert not engine.update_config("EURUSD", adaptation_speed=1.5)
        assert not engine.update_config("EURUSD", no_such_field=1)
        assert engine.get_adaptive_config("EURUSD") == before

    def test_valid_update_applies(self, make_engine):
        engine = make_engine()
        assert engine.update_config("EURUSD", use_ml=False)
        assert not engine.get_adaptive_config("EURUSD").use_ml

        metrics = engine.make_decision("EURUSD")
        assert metrics.component_contributions["ml"] == 0.0

    def test_configs_are_per_symbol(self, make_engine):
        engine = make_engine()
        engine.update_config("EURUSD", use_sentiment=False)
        assert engine.get_adaptive_config("USDJPY").use_sentiment


class TestPerformanceSummary:

    def test_summary_after_one_trade(self, make_engine):
        engine = make_engine()
        metrics = engine.make_decision("EURUSD")
        engine.record_outcome(metrics.decision_id, 0.8, 0.005)

        summary = engine.get_performance_summary()

        assert summary.overall.num_trades == 1
        assert list(summary.records["Mode"]) == ["TrendFollowing"]
        assert summary.experience_size == 1
        assert summary.pending_trades == 0
        assert len(summary.mode_switches) == 1
        assert set(summary.weights) == {m.value for m in DecisionMode}

        as_dict = summary.to_dict()
        assert as_dict["experience_capacity"] == 1000
        assert as_dict["overall"]["num_trades"] == 1

        attribution = engine.monitor.get_mode_attribution()
        assert attribution.loc[0, "Trades"] == 1
        assert attribution.loc[0, "Win Rate"] == 1.0

    def test_empty_summary(self, make_engine):
        summary = make_engine().get_performance_summary()
        assert summary.overall.num_trades == 0
        assert summary.records.empty
