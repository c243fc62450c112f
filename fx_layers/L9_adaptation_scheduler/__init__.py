# fx_layers/L9_adaptation_scheduler/__init__.py
"""Layer 9: Adaptation Scheduler"""
from fx_layers.L9_adaptation_scheduler.scheduler import (
    AdaptationScheduler,
    CycleStage,
)

__all__ = ["AdaptationScheduler", "CycleStage"]
