# fx_layers/__init__.py
"""
Adaptive FX Decision Engine — Layered Architecture

Layer 0: Adaptive Configuration (YAML defaults, AdaptiveConfig, risk limits)
Layer 1: Collaborator Interfaces & Feature Adapters
Layer 2: Market State Classification
Layer 3: Decision Mode Selection (static preferences + hysteresis)
Layer 4: Dynamic Filters (volatility, liquidity, correlation, sentiment, confirmations)
Layer 5: Learning Feedback Loop (EWMA performance, experience buffer, weight adaptation)
Layer 6: Signal Fusion & Confidence Scoring
Layer 7: Risk-Adjusted Position Sizing
Layer 9: Adaptation Scheduler (cadence, regime-break override, cycle stages)
Layer 12: Performance Summary
"""
