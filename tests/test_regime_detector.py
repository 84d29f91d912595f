import numpy as np
import pandas as pd
import pytest

from quant_engine.config import TrendDirection, VolatilityClass
from quant_engine.regime_detector import (
    REGIME_RULES,
    STRATEGY_PLAYBOOK,
    MarketRegime,
    RegimeInputs,
    TrendAnalysis,
    VolatilityAnalysis,
    classify_regime,
    classify_volatility,
    detect_trend,
    neutral_regime,
    strategy_for,
)


def make_inputs(direction=TrendDirection.SIDEWAYS, strength=0.0, vol=VolatilityClass.NORMAL, hurst=0.5):
    trend = TrendAnalysis(direction, strength, 0.0, 0.0, TrendDirection.UPTREND, 0.0)
    volatility = VolatilityAnalysis(20.0, 20.0, 1.0, vol)
    return RegimeInputs(trend=trend, volatility=volatility, hurst=hurst)


class TestRegimeRules:

    def test_strong_trend_wins_first(self):
        inputs = make_inputs(TrendDirection.UPTREND, strength=70, vol=VolatilityClass.HIGH, hurst=0.6)
        assert classify_regime(inputs) == MarketRegime.STRONG_UPTREND

    def test_strong_sideways_reachable(self):
        """A strong, persistent fit without MA confirmation is STRONG_SIDEWAYS."""
        inputs = make_inputs(TrendDirection.SIDEWAYS, strength=70, hurst=0.6)
        regime = classify_regime(inputs)
        assert regime == MarketRegime.STRONG_SIDEWAYS
        assert strategy_for(regime) == STRATEGY_PLAYBOOK[MarketRegime.TRANSITIONING]

    def test_trending_without_persistence(self):
        inputs = make_inputs(TrendDirection.DOWNTREND, strength=50, hurst=0.5)
        assert classify_regime(inputs) == MarketRegime.TRENDING_DOWNTREND

    def test_mean_reverting(self):
        inputs = make_inputs(TrendDirection.SIDEWAYS, strength=50, vol=VolatilityClass.LOW, hurst=0.4)
        assert classify_regime(inputs) == MarketRegime.MEAN_REVERTING

    def test_high_volatility(self):
        inputs = make_inputs(TrendDirection.SIDEWAYS, vol=VolatilityClass.HIGH, hurst=0.4)
        assert classify_regime(inputs) == MarketRegime.HIGH_VOLATILITY

    def test_ranging(self):
        assert classify_regime(make_inputs(vol=VolatilityClass.LOW)) == MarketRegime.RANGING

    def test_transitioning_fallback(self):
        inputs = make_inputs(TrendDirection.UPTREND, strength=10, vol=VolatilityClass.ELEVATED)
        assert classify_regime(inputs) == MarketRegime.TRANSITIONING

    def test_rule_order(self):
        assert [rule.name for rule in REGIME_RULES] == [
            "strong_trend", "trending", "mean_reverting",
            "high_volatility", "ranging", "transitioning",
        ]

    def test_every_regime_has_a_strategy(self):
        for regime in MarketRegime:
            entry = strategy_for(regime)
            assert entry.strategy
            assert entry.tactics


class TestTrend:

    def test_linear_rise(self):
        closes = pd.Series(100 + 0.5 * np.arange(100, dtype=float))
        trend = detect_trend(closes)
        assert trend.direction == TrendDirection.UPTREND
        assert trend.ma_alignment == TrendDirection.UPTREND
        assert trend.r_squared == pytest.approx(1.0)
        # 0.5 / mean(last 50) * 100
        assert trend.slope == pytest.approx(0.5 / 137.25 * 100)
        assert trend.strength == pytest.approx(trend.slope * 10)

    def test_linear_fall(self):
        closes = pd.Series(200 - 0.5 * np.arange(100, dtype=float))
        trend = detect_trend(closes)
        assert trend.direction == TrendDirection.DOWNTREND
        assert trend.ma_alignment == TrendDirection.DOWNTREND

    def test_flat_is_sideways(self):
        trend = detect_trend(pd.Series(np.full(60, 50.0)))
        assert trend.direction == TrendDirection.SIDEWAYS
        assert trend.strength == 0.0

    def test_single_close(self):
        trend = detect_trend(pd.Series([42.0]))
        assert trend.direction == TrendDirection.SIDEWAYS
        assert trend.slope == 0.0


class TestVolatility:

    def test_short_history_defaults(self):
        vol = classify_volatility(pd.Series([0.01, -0.01, 0.02]))
        assert vol == VolatilityAnalysis(0.0, 0.0, 1.0, VolatilityClass.NORMAL)

    def test_zero_returns_are_ignored(self):
        returns = pd.Series([0.0] * 100 + [0.01, -0.01])
        assert classify_volatility(returns).classification == VolatilityClass.NORMAL
        assert classify_volatility(returns).current == 0.0

    def test_volatility_burst_is_high(self):
        calm = [0.01, -0.01] * 50
        burst = [0.03, -0.03] * 10
        vol = classify_volatility(pd.Series(calm + burst))
        assert vol.current == pytest.approx(0.03 * np.sqrt(252) * 100)
        assert vol.ratio > 1.5
        assert vol.classification == VolatilityClass.HIGH

    def test_volatility_lull_is_low(self):
        wild = [0.03, -0.03] * 50
        calm = [0.01, -0.01] * 10
        assert classify_volatility(pd.Series(wild + calm)).classification == VolatilityClass.LOW


def test_neutral_regime():
    regime = neutral_regime()
    assert regime.overall == MarketRegime.TRANSITIONING
    assert regime.hurst == 0.5
    assert regime.to_dict()["overall"] == "TRANSITIONING"
