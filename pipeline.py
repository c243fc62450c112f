"""
Adaptive Decision Engine — Core Pipeline Orchestrator

Per evaluation cycle (per symbol):
    1. Read component scores from the analyzers (missing -> neutral)
    2. Scheduler: is a classification / mode-selection cycle due?
       (cadence, or regime-break override)
    3. Classify market state                          (L2)
    4. Select decision mode with hysteresis           (L3)
    5. Fuse signal + ML + sentiment, apply filters    (L4, L6)
    6. Size against drawdown and risk limits          (L7)
    7. Validate with the portfolio collaborator
    8. Register trades for later feedback             (L5)

Feedback (asynchronous, from the host):
    record_outcome() -> EWMA performance update, weight nudges,
    threshold adjustment, experience buffer append.

All collaborators are injected at construction; nothing is looked up
globally.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, Mapping, Optional, Sequence

from fx_layers.L0_adaptive_config import (
    AdaptiveConfig,
    EngineSettings,
    InvalidConfiguration,
    load_engine_settings,
)
from fx_layers.L1_data_features import (
    MarketAnalyzer,
    MLPredictor,
    PortfolioCollaborator,
    SentimentAnalyzer,
    SignalSource,
)
from fx_layers.L2_market_state import ComponentInputs, MarketProfile, MarketStateClassifier
from fx_layers.L3_mode_selection import ModeSelection, ModeSelector
from fx_layers.L4_dynamic_filters import DynamicFilter
from fx_layers.L5_learning import (
    AdaptiveWeightTable,
    ExperienceBuffer,
    ExperienceEntry,
    LearningFeedbackLoop,
    PerformanceTable,
)
from fx_layers.L6_signal_fusion import DecisionMetrics, SignalFusionScorer, VolatilityContext
from fx_layers.L7_position_sizing import DrawdownContext, RiskAdjustedSizer
from fx_layers.L9_adaptation_scheduler import AdaptationScheduler, CycleStage
from fx_layers.L12_performance_benchmark import PerformanceMonitor, PerformanceSummary
from utils.fx_sessions import is_session_transition, utc_now

logger = logging.getLogger(__name__)

ANALYZER_COMPONENTS = ("trend", "volatility", "liquidity", "seasonal", "news")


class AdaptiveDecisionEngine:
    """
    Main decision engine wiring layers 0-12.

    Args:
        signal_source: Technical signal collaborator
        ml_predictor: ML collaborator (optional)
        sentiment_analyzer: Sentiment collaborator (optional)
        analyzers: Component name -> MarketAnalyzer for trend, volatility,
            liquidity, seasonal and (optionally) news
        portfolio: Portfolio / risk collaborator (optional)
        settings: Engine settings (packaged YAML defaults if omitted)
        clock: Time source for cycles that do not pass `now` (aware UTC by default)
        filters: Replacement dynamic filter chain
        detect_sessions: Derive session transitions from the FX calendar
    """

    def __init__(
        self,
        signal_source: SignalSource,
        ml_predictor: Optional[MLPredictor] = None,
        sentiment_analyzer: Optional[SentimentAnalyzer] = None,
        analyzers: Optional[Mapping[str, MarketAnalyzer]] = None,
        portfolio: Optional[PortfolioCollaborator] = None,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = utc_now,
        filters: Optional[Sequence[DynamicFilter]] = None,
        detect_sessions: bool = True,
    ):
        self.settings = settings or load_engine_settings()
        self.clock = clock
        self.detect_sessions = detect_sessions

        # Collaborators
        self.signal_source = signal_source
        self.ml_predictor = ml_predictor
        self.sentiment_analyzer = sentiment_analyzer
        self.analyzers: Dict[str, MarketAnalyzer] = dict(analyzers or {})
        unknown = set(self.analyzers) - set(ANALYZER_COMPONENTS)
        if unknown:
            raise ValueError(f"Unknown analyzer components: {sorted(unknown)}")
        self.portfolio = portfolio

        # Shared learned state
        self.performance = PerformanceTable()                                    # L5
        self.weights = AdaptiveWeightTable(self.settings)                        # L5
        self.buffer = ExperienceBuffer(self.settings.learning.buffer_capacity)  # L5
        self.learning = LearningFeedbackLoop(
            self.settings, self.performance, self.weights, self.buffer, clock=clock
        )

        # Layers
        self.classifier = MarketStateClassifier(self.settings.classifier)                # L2
        self.mode_selector = ModeSelector(self.settings)                                 # L3
        self.scorer = SignalFusionScorer(self.settings, self.weights, filters, portfolio)  # L4 + L6
        self.sizer = RiskAdjustedSizer(self.settings.risk_limits)                        # L7
        self.scheduler = AdaptationScheduler(self.settings.scheduler)                    # L9
        self.monitor = PerformanceMonitor()                                              # L12

        # Per-symbol state
        self._configs: Dict[str, AdaptiveConfig] = {}
        self._selections: Dict[str, ModeSelection] = {}
        # Insertion order matches the learning loop's pending trades
        self._open_trades: "OrderedDict[str, DecisionMetrics]" = OrderedDict()

        # One lock per symbol serializes cycles; the shared lock guards
        # the performance table, weights, buffer and id counter
        self._symbol_locks: Dict[str, threading.Lock] = {}
        self._shared_lock = threading.RLock()
        self._decision_counter = itertools.count(1)

    # ── configuration ────────────────────────────────────────

    def get_adaptive_config(self, symbol: str) -> AdaptiveConfig:
        with self._shared_lock:
            return self._configs.setdefault(symbol, self.settings.adaptive_defaults)

    def update_config(self, symbol: str, **changes) -> bool:
        """
        Apply operator overrides to a symbol's AdaptiveConfig.

        Invalid values are rejected and the last-known-good config kept.

        Returns:
            True if the new config was accepted
        """
        current = self.get_adaptive_config(symbol)
        try:
            updated = current.evolve(**changes)
        except (InvalidConfiguration, TypeError) as e:
            logger.warning("Rejected config update for %s: %s", symbol, e)
            return False

        with self._shared_lock:
            self._configs[symbol] = updated
        logger.info("Config for %s updated: %s", symbol, sorted(changes))
        return True

    # ── introspection ────────────────────────────────────────

    def get_market_profile(self, symbol: str) -> Optional[MarketProfile]:
        return self.classifier.get_profile(symbol)

    def get_mode_selection(self, symbol: str) -> Optional[ModeSelection]:
        return self._selections.get(symbol)

    def get_performance_summary(self) -> PerformanceSummary:
        with self._shared_lock:
            return PerformanceSummary(
                records=self.performance.to_frame(self.settings.mode_selection.drawdown_penalty),
                overall=self.monitor.compute_metrics(),
                experience_size=len(self.buffer),
                experience_capacity=self.buffer.capacity,
                experience_evicted=self.buffer.evicted,
                pending_trades=self.learning.pending_count,
                weights=self.weights.snapshot(),
                learning=self.learning.get_stats(),
                mode_switches=self.mode_selector.get_history_df(),
                generated_at=self.clock(),
            )

    # ── decision cycle ───────────────────────────────────────

    def _lock_for(self, symbol: str) -> threading.Lock:
        with self._shared_lock:
            return self._symbol_locks.setdefault(symbol, threading.Lock())

    def _safe_call(self, name: str, symbol: str, fn, *args):
        """Call a collaborator; failures and empty answers become None."""
        try:
            value = fn(*args)
        except Exception as e:
            logger.warning("%s collaborator failed for %s: %s", name, symbol, e)
            return None
        if value is None:
            logger.warning("%s collaborator returned no data for %s", name, symbol)
        return value

    def _read_component(self, name: str, symbol: str) -> Optional[float]:
        analyzer = self.analyzers.get(name)
        if analyzer is None:
            return None
        reading = self._safe_call(name, symbol, analyzer.read, symbol)
        return None if reading is None else reading.score

    def _gather_inputs(
        self,
        symbol: str,
        now: datetime,
        session_transition: Optional[bool],
        high_impact_news: Optional[bool],
    ) -> ComponentInputs:
        sentiment = None
        if self.sentiment_analyzer is not None:
            sentiment = self._safe_call("sentiment", symbol, self.sentiment_analyzer.get_sentiment, symbol)

        if session_transition is None:
            session_transition = self.detect_sessions and is_session_transition(now)

        return ComponentInputs(
            trend=self._read_component("trend", symbol),
            volatility=self._read_component("volatility", symbol),
            liquidity=self._read_component("liquidity", symbol),
            sentiment=sentiment,
            seasonal=self._read_component("seasonal", symbol),
            news_impact=self._read_component("news", symbol),
            is_session_transition=bool(session_transition),
            is_high_impact_news=bool(high_impact_news),
        )

    def _drawdown_context(self, symbol: str) -> DrawdownContext:
        if self.portfolio is None:
            return DrawdownContext()
        dd_pct = self._safe_call("drawdown", symbol, self.portfolio.current_drawdown)
        open_risk = self._safe_call("open_risk", symbol, self.portfolio.open_risk)
        return DrawdownContext(
            current_drawdown=(dd_pct or 0.0) / 100.0,
            open_risk=open_risk or 0.0,
        )

    def make_decision(
        self,
        symbol: str,
        now: Optional[datetime] = None,
        session_transition: Optional[bool] = None,
        high_impact_news: Optional[bool] = None,
    ) -> DecisionMetrics:
        """
        Run one evaluation cycle for a symbol.

        Args:
            symbol: FX symbol
            now: Cycle time (defaults to the engine clock)
            session_transition: Host-supplied flag; derived from the FX
                session calendar when None
            high_impact_news: Host-supplied high-impact news flag

        Returns:
            DecisionMetrics; position_size_fraction > 0 only for trades
        """
        now = now or self.clock()
        with self._lock_for(symbol):
            try:
                return self._run_cycle(symbol, now, session_transition, high_impact_news)
            except BaseException:
                self.scheduler.reset(symbol)
                raise

    def _run_cycle(
        self,
        symbol: str,
        now: datetime,
        session_transition: Optional[bool],
        high_impact_news: Optional[bool],
    ) -> DecisionMetrics:
        config = self.get_adaptive_config(symbol)

        # 1-3. Classification
        self.scheduler.advance(symbol, CycleStage.CLASSIFYING)
        inputs = self._gather_inputs(symbol, now, session_transition, high_impact_news)
        previous = self.classifier.get_profile(symbol)
        peeked = self.classifier.peek(symbol, inputs)
        self.scheduler.observe_state(symbol, previous.current_state if previous else None, peeked)

        run_cycle = previous is None or self.scheduler.should_run_cycle(symbol, now, config)
        profile = self.classifier.classify(symbol, inputs, now) if run_cycle else previous

        # 4. Mode selection
        self.scheduler.advance(symbol, CycleStage.MODE_SELECTING)
        if run_cycle or symbol not in self._selections:
            with self._shared_lock:
                records = self.performance.by_state(profile.current_state)
            selection = self.mode_selector.select_mode(profile, records)
            self._selections[symbol] = selection
            config = config.evolve(
                primary_mode=selection.mode,
                fallback_mode=selection.fallback_mode,
                mode_confidence=selection.mode_confidence,
                last_adaptation=now,
            )
            with self._shared_lock:
                self._configs[symbol] = config
            self.scheduler.mark_cycle_run(symbol)
        mode = config.primary_mode

        # 5. Fusion + filters
        self.scheduler.advance(symbol, CycleStage.SCORING)
        signal = self._safe_call("signal", symbol, self.signal_source.get_signal, symbol)
        ml_output = None
        if self.ml_predictor is not None and config.use_ml and self.settings.profile(mode).use_ml:
            ml_output = self._safe_call(
                "ml", symbol, self.ml_predictor.predict, symbol, self.settings.ml_horizon
            )
        with self._shared_lock:
            decision_id = f"{symbol}-{next(self._decision_counter)}"
            metrics = self.scorer.score(
                symbol=symbol,
                base_signal=signal,
                ml_output=ml_output,
                sentiment_score=inputs.cleaned("sentiment"),
                volatility_context=VolatilityContext(
                    level=profile.volatility_level,
                    liquidity=profile.liquidity_level,
                    regime=profile.current_state.value,
                ),
                mode=mode,
                state=profile.current_state,
                use_ml=config.use_ml,
                use_sentiment=config.use_sentiment,
                use_dynamic_filters=config.use_dynamic_filters,
                timestamp=now,
                decision_id=decision_id,
            )

        # 6-7. Sizing + portfolio validation
        self.scheduler.advance(symbol, CycleStage.SIZING)
        size = self.sizer.size(metrics, self._drawdown_context(symbol))
        if size is not None:
            note = None
            if size > 0 and self.portfolio is not None:
                validation = self._safe_call(
                    "portfolio", symbol, self.portfolio.validate_position, symbol, size
                )
                if validation is not None and not validation.accepted:
                    capped = max(min(size, validation.max_allowed), 0.0)
                    note = f"Portfolio capped size {size:.4f} -> {capped:.4f}"
                    size = capped
            metrics = metrics.with_size(size, note)

        # 8. Feedback registration
        self.scheduler.advance(symbol, CycleStage.DONE)
        with self._shared_lock:
            if self.learning.register_decision(
                metrics,
                profile.feature_vector(),
                config.adaptation_speed,
                adapt_weights=config.use_adaptive_learning,
            ):
                self._open_trades[metrics.decision_id] = metrics
                while len(self._open_trades) > self.learning.pending_capacity:
                    self._open_trades.popitem(last=False)

            if self.scheduler.should_run_learning_pass(now):
                self.learning.run_learning_pass(now)
                self.scheduler.mark_learning_pass(now)

        self.scheduler.advance(symbol, CycleStage.IDLE)
        logger.debug(
            "%s %s/%s -> %s conf=%.1f size=%.4f",
            symbol, profile.current_state.value, mode.value,
            metrics.direction.value if metrics.direction else "NoSignal",
            metrics.confidence_level, metrics.position_size_fraction,
        )
        return metrics

    # ── feedback ─────────────────────────────────────────────

    def record_outcome(
        self,
        decision_id: str,
        realized_return: float,
        max_drawdown: float,
        holding_time: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[ExperienceEntry]:
        """
        Feed a resolved trade back into the learning loop.

        Args:
            decision_id: DecisionMetrics.decision_id of the trade
            realized_return: Return in percent of equity
            max_drawdown: Worst drawdown during the trade, fraction
            holding_time: Seconds held (optional)
            timestamp: Resolution time (defaults to the engine clock)

        Returns:
            The recorded ExperienceEntry, or None for unknown ids
        """
        with self._shared_lock:
            entry = self.learning.record_outcome(
                decision_id, realized_return, max_drawdown, holding_time, timestamp
            )
            metrics = self._open_trades.pop(decision_id, None)
            if entry is not None and metrics is not None:
                self.monitor.record_trade(metrics, realized_return, max_drawdown, entry.timestamp)
        return entry
