# fx_layers/L1_data_features/__init__.py
"""Layer 1: Collaborator Interfaces & Feature Adapters"""
from fx_layers.L1_data_features.collaborators import (
    AnalyzerReading,
    BaseSignal,
    Direction,
    MarketAnalyzer,
    MLOutput,
    MLPredictor,
    PortfolioCollaborator,
    PositionValidation,
    SentimentAnalyzer,
    SignalSource,
)
from fx_layers.L1_data_features.features import (
    compute_all_features,
    compute_component_scores,
    compute_realized_volatility,
    compute_adx,
    compute_ma_slope,
    compute_rsi,
)
from fx_layers.L1_data_features.replay import (
    ReplayAnalyzer,
    ReplayMarket,
    ReplayPortfolio,
)

__all__ = [
    "AnalyzerReading",
    "BaseSignal",
    "Direction",
    "MarketAnalyzer",
    "MLOutput",
    "MLPredictor",
    "PortfolioCollaborator",
    "PositionValidation",
    "SentimentAnalyzer",
    "SignalSource",
    "compute_all_features",
    "compute_component_scores",
    "compute_realized_volatility",
    "compute_adx",
    "compute_ma_slope",
    "compute_rsi",
    "ReplayAnalyzer",
    "ReplayMarket",
    "ReplayPortfolio",
]
