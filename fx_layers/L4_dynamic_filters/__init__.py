# fx_layers/L4_dynamic_filters/__init__.py
"""Layer 4: Dynamic Trade Filters (Safety Gate)"""
from fx_layers.L4_dynamic_filters.dynamic_filters import (
    ConfirmationFilter,
    CorrelationFilter,
    DynamicFilter,
    FilterRequest,
    FilterResult,
    LiquidityFilter,
    SentimentAlignmentFilter,
    VolatilityFilter,
    apply_filters,
    build_default_filters,
)

__all__ = [
    "ConfirmationFilter",
    "CorrelationFilter",
    "DynamicFilter",
    "FilterRequest",
    "FilterResult",
    "LiquidityFilter",
    "SentimentAlignmentFilter",
    "VolatilityFilter",
    "apply_filters",
    "build_default_filters",
]
