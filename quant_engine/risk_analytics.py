"""
================================================================================
RISK ANALYTICS
================================================================================

Historical risk statistics for a single return series.

Components:
-----------
1. DISPERSION
   - Annualized volatility (population stdev x sqrt(252))
   - Sharpe ratio against the configured risk-free rate
   - Sortino ratio (root-mean-square of negative returns)

2. DRAWDOWN
   - Maximum peak-to-trough decline of the compounded return path

3. TAIL RISK
   - Historical VaR at the 5% quantile
   - CVaR: mean of the returns at or below VaR

4. RISK LEVEL
   - HIGH:   volatility > 40% or drawdown worse than -30%
   - MEDIUM: volatility > 25% or drawdown worse than -20%
   - LOW:    otherwise

Only available, non-zero simple returns are used. With fewer than five of
them every statistic is zero and the level is LOW.

Version: 1.0.0
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
import pandas as pd

from quant_engine.config import DEFAULT_CONFIG, TRADING_DAYS_YEAR, RiskLevel, RiskParameters
from quant_engine.regime_detector import nonzero_returns
from quant_engine.utils import to_jsonable

logger = logging.getLogger(__name__)

SQRT_252: float = float(np.sqrt(TRADING_DAYS_YEAR))


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class RiskMetrics:
    """Risk statistics; volatility, drawdown, VaR and CVaR in percent."""
    volatility: float
    sharpe: float
    sortino: float
    max_drawdown: float
    var95: float
    cvar95: float
    risk_level: RiskLevel

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


ZERO_RISK = RiskMetrics(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, RiskLevel.LOW)


# =============================================================================
# RISK ANALYTICS ENGINE
# =============================================================================

class RiskAnalyticsEngine:
    """
    Computes RiskMetrics from a simple-return series.

    Usage:
        engine = RiskAnalyticsEngine(params)
        metrics = engine.analyze(df["returns"])
    """

    def __init__(self, params: RiskParameters = DEFAULT_CONFIG.risk):
        self.params = params

    def analyze(self, returns: pd.Series) -> RiskMetrics:
        values = nonzero_returns(returns)
        if len(values) < self.params.min_observations:
            logger.debug(f"Only {len(values)} usable returns; risk metrics zeroed")
            return ZERO_RISK

        rf = self.params.risk_free_rate
        mean = float(np.mean(values))
        std = float(np.std(values))
        annual_return = mean * TRADING_DAYS_YEAR

        volatility = std * SQRT_252 * 100
        sharpe = (annual_return - rf) / (std * SQRT_252) if std > 0 else 0.0

        downside = values[values < 0]
        downside_dev = (
            float(np.sqrt(np.mean(downside ** 2))) * SQRT_252 if len(downside) else 0.0
        )
        sortino = (annual_return - rf) / downside_dev if downside_dev > 0 else 0.0

        max_drawdown = self._max_drawdown(values)
        var95, cvar95 = self._tail_risk(values)

        return RiskMetrics(
            volatility=volatility,
            sharpe=sharpe,
            sortino=sortino,
            max_drawdown=max_drawdown * 100,
            var95=var95 * 100,
            cvar95=cvar95 * 100,
            risk_level=self._assess_risk_level(volatility, max_drawdown),
        )

    @staticmethod
    def _max_drawdown(values: np.ndarray) -> float:
        """Most negative (equity / running peak - 1), starting from a peak of 1."""
        equity = np.cumprod(1.0 + values)
        running_max = np.maximum.accumulate(np.maximum(equity, 1.0))
        drawdown = equity / running_max - 1.0
        return min(0.0, float(drawdown.min()))

    def _tail_risk(self, values: np.ndarray) -> tuple:
        ordered = np.sort(values)
        index = int(np.floor(len(ordered) * self.params.var_quantile))
        var = float(ordered[index])
        cvar = float(np.mean(ordered[ordered <= var]))
        return var, cvar

    def _assess_risk_level(self, volatility: float, max_drawdown: float) -> RiskLevel:
        p = self.params
        if volatility > p.high_volatility or max_drawdown < p.high_drawdown:
            return RiskLevel.HIGH
        if volatility > p.medium_volatility or max_drawdown < p.medium_drawdown:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW


def compute_risk_metrics(
    returns: pd.Series,
    params: RiskParameters = DEFAULT_CONFIG.risk
) -> RiskMetrics:
    """Convenience wrapper around RiskAnalyticsEngine."""
    return RiskAnalyticsEngine(params).analyze(returns)
