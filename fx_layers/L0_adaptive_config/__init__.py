# fx_layers/L0_adaptive_config/__init__.py
"""Layer 0: Adaptive Configuration (Authority Layer)"""
from fx_layers.L0_adaptive_config.enums import (
    DecisionMode,
    MarketState,
    STABLE_STATES,
    REGIME_BREAK_STATES,
    is_regime_break,
)
from fx_layers.L0_adaptive_config.settings import (
    AdaptiveConfig,
    ClassifierSettings,
    EngineSettings,
    FilterSettings,
    InvalidConfiguration,
    LearningSettings,
    ModeProfile,
    ModeSelectionSettings,
    RiskLimits,
    SchedulerSettings,
    FUSION_COMPONENTS,
    load_engine_settings,
)

__all__ = [
    "DecisionMode",
    "MarketState",
    "STABLE_STATES",
    "REGIME_BREAK_STATES",
    "is_regime_break",
    "AdaptiveConfig",
    "ClassifierSettings",
    "EngineSettings",
    "FilterSettings",
    "InvalidConfiguration",
    "LearningSettings",
    "ModeProfile",
    "ModeSelectionSettings",
    "RiskLimits",
    "SchedulerSettings",
    "FUSION_COMPONENTS",
    "load_engine_settings",
]
