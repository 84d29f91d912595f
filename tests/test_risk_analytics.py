from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from quant_engine.config import RiskLevel, RiskParameters
from quant_engine.risk_analytics import ZERO_RISK, RiskAnalyticsEngine, compute_risk_metrics


class TestRiskMetrics:

    def test_constant_price_is_all_zero(self):
        """Flat bars produce zero returns, which carry no risk information."""
        metrics = compute_risk_metrics(pd.Series([np.nan] + [0.0] * 99))
        assert metrics == ZERO_RISK
        assert metrics.sharpe == 0.0
        assert metrics.sortino == 0.0
        assert metrics.risk_level == RiskLevel.LOW

    def test_too_few_observations(self):
        assert compute_risk_metrics(pd.Series([0.01, -0.02, 0.03, 0.01])) == ZERO_RISK

    def test_known_drawdown_and_tail(self):
        returns = pd.Series([0.1, -0.5, 0.2, 0.1, 0.05])
        metrics = compute_risk_metrics(returns)
        assert metrics.max_drawdown == pytest.approx(-50.0)
        # floor(0.05 * 5) = 0: VaR is the worst return
        assert metrics.var95 == pytest.approx(-50.0)
        assert metrics.cvar95 == pytest.approx(-50.0)
        assert metrics.risk_level == RiskLevel.HIGH

    def test_volatility_and_sharpe(self):
        returns = pd.Series([0.01, -0.005] * 50)
        metrics = compute_risk_metrics(returns)
        std = np.std(returns.to_numpy())
        assert metrics.volatility == pytest.approx(std * np.sqrt(252) * 100)
        expected = (returns.mean() * 252 - 0.02) / (std * np.sqrt(252))
        assert metrics.sharpe == pytest.approx(expected)
        assert metrics.sortino > metrics.sharpe

    def test_no_losses_means_zero_sortino(self):
        metrics = compute_risk_metrics(pd.Series([0.01, 0.02, 0.015, 0.01, 0.02]))
        assert metrics.sortino == 0.0
        assert metrics.max_drawdown == 0.0

    def test_risk_free_rate_from_params(self):
        returns = pd.Series([0.01, -0.005] * 50)
        base = compute_risk_metrics(returns)
        higher = compute_risk_metrics(returns, replace(RiskParameters(), risk_free_rate=0.10))
        assert higher.sharpe < base.sharpe

    def test_cvar_not_above_var(self, random_walk_bars):
        returns = random_walk_bars["Close"].pct_change()
        metrics = compute_risk_metrics(returns)
        assert metrics.cvar95 <= metrics.var95 < 0


class TestRiskLevel:

    @pytest.mark.parametrize("volatility, drawdown, expected", [
        (45.0, 0.0, RiskLevel.HIGH),
        (10.0, -0.35, RiskLevel.HIGH),
        (30.0, -0.05, RiskLevel.MEDIUM),
        (10.0, -0.25, RiskLevel.MEDIUM),
        (10.0, -0.05, RiskLevel.LOW),
    ])
    def test_thresholds(self, volatility, drawdown, expected):
        engine = RiskAnalyticsEngine()
        assert engine._assess_risk_level(volatility, drawdown) == expected
