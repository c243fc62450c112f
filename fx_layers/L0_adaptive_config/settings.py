# fx_layers/L0_adaptive_config/settings.py
"""
LAYER 0 — ADAPTIVE CONFIGURATION (AUTHORITY LAYER)

Nothing below can override the risk limits defined here.

Purpose: Load the static engine defaults from YAML and hold the
per-symbol AdaptiveConfig that the learning layers evolve.

Inputs:
- engine_config.yaml (packaged defaults) or an explicit path
- Runtime overrides for AdaptiveConfig

Outputs:
- EngineSettings (immutable static tuning)
- AdaptiveConfig (per-symbol, replaced wholesale on every change)
- RiskLimits (hard caps for Layer 7)
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from fx_layers.L0_adaptive_config.enums import DecisionMode, MarketState


# Path to packaged YAML defaults
CONFIG_PATH = Path(__file__).parent / "engine_config.yaml"

FUSION_COMPONENTS = ("signal", "ml", "sentiment")

_settings_cache: Optional["EngineSettings"] = None


class InvalidConfiguration(ValueError):
    """Configuration value outside its valid range."""


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidConfiguration(message)


def _bounds(pair, name: str) -> Tuple[float, float]:
    _require(len(pair) == 2, f"{name} must be a [low, high] pair")
    low, high = float(pair[0]), float(pair[1])
    _require(low < high, f"{name} low ({low}) must be below high ({high})")
    return low, high


@dataclass(frozen=True)
class RiskLimits:
    """External risk caps. All figures are fractions of equity."""
    min_risk_per_trade: float = 0.001
    max_risk_per_trade: float = 0.02
    max_portfolio_risk: float = 0.06
    max_drawdown: float = 0.20
    drawdown_exponent: float = 1.5

    def __post_init__(self):
        _require(0 <= self.min_risk_per_trade <= self.max_risk_per_trade,
                 "min_risk_per_trade must be within [0, max_risk_per_trade]")
        _require(0 < self.max_risk_per_trade <= 1, "max_risk_per_trade must be in (0, 1]")
        _require(self.max_portfolio_risk >= self.max_risk_per_trade,
                 "max_portfolio_risk must be >= max_risk_per_trade")
        _require(0 < self.max_drawdown <= 1, "max_drawdown must be in (0, 1]")
        _require(self.drawdown_exponent > 0, "drawdown_exponent must be positive")


@dataclass(frozen=True)
class ModeProfile:
    """Static parameters for one DecisionMode."""
    mode: DecisionMode
    weights: Dict[str, float]
    volatility_ceiling: float
    required_confirmations: int
    min_confidence: float
    reward_risk_ratio: float
    use_ml: bool = True

    def __post_init__(self):
        missing = [c for c in FUSION_COMPONENTS if c not in self.weights]
        _require(not missing, f"{self.mode.value}: missing fusion weights {missing}")
        _require(all(w >= 0 for w in self.weights.values()),
                 f"{self.mode.value}: fusion weights must be non-negative")
        _require(abs(sum(self.weights[c] for c in FUSION_COMPONENTS) - 1.0) < 1e-6,
                 f"{self.mode.value}: fusion weights must sum to 1.0")
        _require(0 < self.volatility_ceiling <= 100,
                 f"{self.mode.value}: volatility_ceiling must be in (0, 100]")
        _require(self.required_confirmations >= 1,
                 f"{self.mode.value}: required_confirmations must be >= 1")
        _require(0 <= self.min_confidence <= 100,
                 f"{self.mode.value}: min_confidence must be in [0, 100]")
        _require(self.reward_risk_ratio > 0,
                 f"{self.mode.value}: reward_risk_ratio must be positive")


@dataclass(frozen=True)
class ClassifierSettings:
    component_weights: Dict[str, float] = field(
        default_factory=lambda: {"trend": 0.60, "sentiment": 0.25, "seasonal": 0.15}
    )
    tie_epsilon: float = 0.05
    missing_component_penalty: float = 0.80
    max_missing_components: int = 2
    uncertain_baseline: float = 0.15
    session_transition_score: float = 0.60
    high_impact_news_threshold: float = 80.0

    def __post_init__(self):
        _require(set(self.component_weights) == {"trend", "sentiment", "seasonal"},
                 "classifier component_weights needs trend, sentiment and seasonal")
        _require(abs(sum(self.component_weights.values()) - 1.0) < 1e-6,
                 "classifier component_weights must sum to 1.0")
        _require(0 <= self.tie_epsilon < 1, "tie_epsilon must be in [0, 1)")
        _require(0 < self.missing_component_penalty <= 1,
                 "missing_component_penalty must be in (0, 1]")
        _require(0 <= self.max_missing_components <= 5,
                 "max_missing_components must be in [0, 5]")
        _require(0 <= self.uncertain_baseline < 1, "uncertain_baseline must be in [0, 1)")


@dataclass(frozen=True)
class ModeSelectionSettings:
    min_samples: int = 10
    switch_margin: float = 0.25
    confirm_cycles: int = 2
    drawdown_penalty: float = 0.5
    confidence_per_point: float = 25.0
    history_limit: int = 1000

    def __post_init__(self):
        _require(self.min_samples >= 1, "min_samples must be >= 1")
        _require(self.history_limit >= 1, "history_limit must be >= 1")
        _require(self.switch_margin >= 0, "switch_margin must be non-negative")
        _require(self.confirm_cycles >= 1, "confirm_cycles must be >= 1")
        _require(self.confidence_per_point > 0, "confidence_per_point must be positive")


@dataclass(frozen=True)
class FilterSettings:
    marginal_band: float = 10.0
    marginal_penalty: float = 10.0
    min_liquidity: float = 25.0
    max_correlation: float = 70.0
    sentiment_contradiction: float = 25.0
    aligned_sentiment_confirmation: float = 55.0
    ml_confirmation_confidence: float = 50.0

    def __post_init__(self):
        _require(self.marginal_band > 0, "marginal_band must be positive")
        _require(self.marginal_penalty >= 0, "marginal_penalty must be non-negative")
        _require(0 <= self.sentiment_contradiction <= 50,
                 "sentiment_contradiction must be in [0, 50]")


@dataclass(frozen=True)
class LearningSettings:
    buffer_capacity: int = 1000
    weight_learning_rate: float = 0.02
    weight_bounds: Tuple[float, float] = (0.05, 0.80)
    threshold_step: float = 1.0
    threshold_bounds: Tuple[float, float] = (45.0, 80.0)
    decay_factor: float = 0.99
    reward_drawdown_penalty: float = 2.0
    pending_capacity: int = 10000
    min_replay_samples: int = 5

    def __post_init__(self):
        _require(self.buffer_capacity >= 1, "buffer_capacity must be >= 1")
        _require(self.pending_capacity >= 1, "pending_capacity must be >= 1")
        _require(self.min_replay_samples >= 1, "min_replay_samples must be >= 1")
        _require(self.weight_learning_rate >= 0, "weight_learning_rate must be non-negative")
        low, high = self.weight_bounds
        _require(0 <= low < high <= 1, "weight_bounds must satisfy 0 <= low < high <= 1")
        _require(low * len(FUSION_COMPONENTS) <= 1 <= high * len(FUSION_COMPONENTS),
                 "weight_bounds cannot hold weights summing to 1.0")
        t_low, t_high = self.threshold_bounds
        _require(0 <= t_low < t_high <= 100, "threshold_bounds must lie within [0, 100]")
        _require(0 < self.decay_factor <= 1, "decay_factor must be in (0, 1]")


@dataclass(frozen=True)
class SchedulerSettings:
    learning_period: timedelta = timedelta(hours=1)

    def __post_init__(self):
        _require(self.learning_period > timedelta(0), "learning_period must be positive")


@dataclass(frozen=True)
class AdaptiveConfig:
    """
    Per-symbol adaptive state.

    Immutable: every change goes through evolve(), which re-validates.
    adaptation_speed is the EWMA alpha used by Layer 5; it is bounded
    to (0, 1] so a single outcome can never fully overwrite history.
    """
    primary_mode: DecisionMode = DecisionMode.MODERATE
    fallback_mode: DecisionMode = DecisionMode.CONSERVATIVE
    mode_confidence: float = 0.0
    adaptation_speed: float = 0.10
    use_ml: bool = True
    use_sentiment: bool = True
    use_dynamic_filters: bool = True
    use_adaptive_learning: bool = True
    last_adaptation: Optional[datetime] = None
    adaptation_period: timedelta = timedelta(minutes=15)

    def __post_init__(self):
        _require(isinstance(self.primary_mode, DecisionMode), "primary_mode must be a DecisionMode")
        _require(isinstance(self.fallback_mode, DecisionMode), "fallback_mode must be a DecisionMode")
        _require(0 <= self.mode_confidence <= 100, "mode_confidence must be in [0, 100]")
        _require(0 < self.adaptation_speed <= 1,
                 f"adaptation_speed must be in (0, 1], got {self.adaptation_speed}")
        _require(self.adaptation_period > timedelta(0), "adaptation_period must be positive")

    def evolve(self, **changes) -> "AdaptiveConfig":
        """Return a validated copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "primary_mode": self.primary_mode.value,
            "fallback_mode": self.fallback_mode.value,
            "mode_confidence": self.mode_confidence,
            "adaptation_speed": self.adaptation_speed,
            "use_ml": self.use_ml,
            "use_sentiment": self.use_sentiment,
            "use_dynamic_filters": self.use_dynamic_filters,
            "use_adaptive_learning": self.use_adaptive_learning,
            "last_adaptation": self.last_adaptation.isoformat() if self.last_adaptation else None,
            "adaptation_period_seconds": self.adaptation_period.total_seconds(),
        }


@dataclass(frozen=True)
class EngineSettings:
    """All static tuning for the engine, usually loaded from YAML."""
    classifier: ClassifierSettings
    modes: Dict[DecisionMode, ModeProfile]
    state_preferences: Dict[MarketState, List[DecisionMode]]
    mode_selection: ModeSelectionSettings
    filters: FilterSettings
    learning: LearningSettings
    scheduler: SchedulerSettings
    adaptive_defaults: AdaptiveConfig
    risk_limits: RiskLimits
    ml_horizon: int = 1

    def __post_init__(self):
        missing_modes = [m.value for m in DecisionMode if m not in self.modes]
        _require(not missing_modes, f"No profile for modes: {missing_modes}")
        missing_states = [s.value for s in MarketState if s not in self.state_preferences]
        _require(not missing_states, f"No mode preferences for states: {missing_states}")
        for state, prefs in self.state_preferences.items():
            _require(len(prefs) >= 1, f"{state.value}: preference list is empty")
            _require(len(set(prefs)) == len(prefs), f"{state.value}: duplicate modes in preferences")
        _require(self.ml_horizon >= 1, "ml_horizon must be >= 1")

    def profile(self, mode: DecisionMode) -> ModeProfile:
        return self.modes[mode]

    def preferences(self, state: MarketState) -> List[DecisionMode]:
        return self.state_preferences[state]

    @classmethod
    def from_dict(cls, raw: dict) -> "EngineSettings":
        """Build settings from a parsed YAML mapping."""
        try:
            return cls._from_dict(raw)
        except (KeyError, TypeError) as e:
            raise InvalidConfiguration(f"Malformed engine configuration: {e!r}") from e
        except ValueError as e:
            if isinstance(e, InvalidConfiguration):
                raise
            raise InvalidConfiguration(str(e)) from e

    @classmethod
    def _from_dict(cls, raw: dict) -> "EngineSettings":
        classifier = ClassifierSettings(**raw.get("classifier", {}))

        modes = {}
        for name, mode_raw in raw["modes"].items():
            mode = DecisionMode(name)
            modes[mode] = ModeProfile(
                mode=mode,
                weights={k: float(v) for k, v in mode_raw["weights"].items()},
                volatility_ceiling=float(mode_raw["volatility_ceiling"]),
                required_confirmations=int(mode_raw["required_confirmations"]),
                min_confidence=float(mode_raw["min_confidence"]),
                reward_risk_ratio=float(mode_raw["reward_risk_ratio"]),
                use_ml=bool(mode_raw.get("use_ml", True)),
            )

        state_preferences = {
            MarketState(state): [DecisionMode(m) for m in prefs]
            for state, prefs in raw["state_preferences"].items()
        }

        learning_raw = dict(raw.get("learning", {}))
        if "weight_bounds" in learning_raw:
            learning_raw["weight_bounds"] = _bounds(learning_raw["weight_bounds"], "weight_bounds")
        if "threshold_bounds" in learning_raw:
            learning_raw["threshold_bounds"] = _bounds(learning_raw["threshold_bounds"], "threshold_bounds")

        scheduler_raw = raw.get("scheduler", {})
        scheduler = SchedulerSettings(
            learning_period=timedelta(seconds=float(scheduler_raw.get("learning_period_seconds", 3600)))
        )

        adaptive_raw = raw.get("adaptive", {})
        adaptive_defaults = AdaptiveConfig(
            primary_mode=DecisionMode(adaptive_raw.get("primary_mode", "Moderate")),
            fallback_mode=DecisionMode(adaptive_raw.get("fallback_mode", "Conservative")),
            adaptation_speed=float(adaptive_raw.get("adaptation_speed", 0.10)),
            adaptation_period=timedelta(seconds=float(adaptive_raw.get("adaptation_period_seconds", 900))),
        )

        return cls(
            classifier=classifier,
            modes=modes,
            state_preferences=state_preferences,
            mode_selection=ModeSelectionSettings(**raw.get("mode_selection", {})),
            filters=FilterSettings(**raw.get("filters", {})),
            learning=LearningSettings(**learning_raw),
            scheduler=scheduler,
            adaptive_defaults=adaptive_defaults,
            risk_limits=RiskLimits(**raw.get("risk_limits", {})),
            ml_horizon=int(adaptive_raw.get("ml_horizon", 1)),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "EngineSettings":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Engine config not found: {path}")
        with open(path, "r") as f:
            raw = yaml.safe_load(f)
        if not isinstance(raw, dict):
            raise InvalidConfiguration(f"Engine config {path} is not a mapping")
        return cls.from_dict(raw)


def load_engine_settings(path: str | Path | None = None) -> EngineSettings:
    """
    Load engine settings.

    The packaged defaults are parsed once and cached; an explicit path
    is always read fresh.
    """
    global _settings_cache

    if path is not None:
        return EngineSettings.from_yaml(path)

    if _settings_cache is None:
        _settings_cache = EngineSettings.from_yaml(CONFIG_PATH)
    return _settings_cache
