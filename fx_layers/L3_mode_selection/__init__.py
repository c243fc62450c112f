# fx_layers/L3_mode_selection/__init__.py
"""Layer 3: Decision Mode Selection"""
from fx_layers.L3_mode_selection.mode_selector import (
    ModeSelection,
    ModeSelector,
    SwitchRecord,
)

__all__ = ["ModeSelection", "ModeSelector", "SwitchRecord"]
