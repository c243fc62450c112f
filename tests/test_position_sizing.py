"""
Risk-adjusted sizing tests.

Run with: pytest tests/test_position_sizing.py -v
"""

from dataclasses import replace

import pytest

from fx_layers.L0_adaptive_config import RiskLimits
from fx_layers.L7_position_sizing import DrawdownContext, RiskAdjustedSizer, drawdown_penalty


@pytest.fixture
def limits():
    return RiskLimits()


@pytest.fixture
def sizer(limits):
    return RiskAdjustedSizer(limits)


class TestRiskAdjustedSizer:

    def test_never_exceeds_max_risk_per_trade(self, sizer, limits, make_metrics):
        certain = replace(make_metrics(), confidence_level=100.0, win_probability=1.0)
        size = sizer.size(certain, DrawdownContext(current_drawdown=0.0))
        assert size == pytest.approx(limits.max_risk_per_trade)
        assert size <= limits.max_risk_per_trade

    def test_caller_limits_override_configured(self, sizer, make_metrics):
        certain = replace(make_metrics(), confidence_level=100.0, win_probability=1.0)
        tight = RiskLimits(max_risk_per_trade=0.005, max_portfolio_risk=0.01)
        assert sizer.size(certain, limits=tight) == pytest.approx(0.005)

    def test_failed_filters_mean_no_trade(self, sizer, make_metrics):
        assert sizer.size(make_metrics(passes=False)) is None

    def test_proportional_to_confidence_and_win_probability(self, sizer, make_metrics):
        metrics = replace(make_metrics(), confidence_level=60.0, win_probability=0.5)
        assert sizer.size(metrics) == pytest.approx(0.02 * 0.6 * 0.5)

    def test_drawdown_shrinks_size_monotonically(self, sizer, make_metrics):
        metrics = make_metrics()
        sizes = [
            sizer.size(metrics, DrawdownContext(current_drawdown=dd))
            for dd in (0.0, 0.02, 0.05, 0.10, 0.15, 0.20, 0.30)
        ]
        assert sizes == sorted(sizes, reverse=True)
        assert sizes[-1] == 0.0

    def test_remaining_portfolio_budget_caps_size(self, sizer, make_metrics):
        certain = replace(make_metrics(), confidence_level=100.0, win_probability=1.0)
        assert sizer.size(certain, DrawdownContext(open_risk=0.055)) == pytest.approx(0.005)
        assert sizer.size(certain, DrawdownContext(open_risk=0.06)) == 0.0

    def test_below_minimum_rounds_to_zero(self, sizer, make_metrics):
        tiny = replace(make_metrics(), confidence_level=5.0, win_probability=0.05)
        assert sizer.size(tiny) == 0.0


class TestDrawdownPenalty:

    def test_endpoints(self, limits):
        assert drawdown_penalty(0.0, limits) == 1.0
        assert drawdown_penalty(limits.max_drawdown, limits) == 0.0
        assert drawdown_penalty(1.0, limits) == 0.0

    def test_negative_drawdown_treated_as_none(self, limits):
        assert drawdown_penalty(-0.05, limits) == 1.0
