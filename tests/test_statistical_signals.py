from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from quant_engine.config import SignalDirection, SignalParameters
from quant_engine.statistical_signals import (
    SignalResult,
    aggregate_signals,
    generate_statistical_signals,
    momentum_signal,
    neutral_signals,
    volume_signal,
    zscore_signal,
)


def signals_of(direction):
    result = SignalResult(direction)
    return {"zscore": result, "momentum": result, "volume": result}


class TestAggregator:

    def test_all_neutral(self):
        agg = aggregate_signals(signals_of(SignalDirection.NEUTRAL))
        assert agg.signal == SignalDirection.NEUTRAL
        assert agg.score == 0.0
        assert agg.confidence == 0.5

    def test_default_weights_sum_to_point_eight(self):
        agg = aggregate_signals(signals_of(SignalDirection.BUY))
        assert agg.score == pytest.approx(0.8)
        assert agg.signal == SignalDirection.BUY
        assert agg.confidence == pytest.approx(0.5 + 0.8 * 0.3)

    def test_strong_tier_confidence_capped(self):
        agg = aggregate_signals(signals_of(SignalDirection.STRONG_SELL))
        assert agg.score == pytest.approx(-1.6)
        assert agg.signal == SignalDirection.STRONG_SELL
        assert agg.confidence == pytest.approx(0.95)

    def test_normalized_weights(self):
        params = replace(SignalParameters(), normalize_weights=True)
        agg = aggregate_signals(signals_of(SignalDirection.BUY), params)
        assert agg.score == pytest.approx(1.0)
        assert agg.confidence == pytest.approx(0.8)

    def test_missing_detectors_contribute_nothing(self):
        agg = aggregate_signals({"momentum": SignalResult(SignalDirection.STRONG_BUY)})
        assert agg.score == pytest.approx(0.6)
        assert agg.signal == SignalDirection.BUY


class TestDetectors:

    def test_zscore_spike_is_strong_sell(self):
        closes = pd.Series([100.0] * 19 + [120.0])
        result = zscore_signal(closes)
        assert result.signal == SignalDirection.STRONG_SELL
        assert result.diagnostics["probability"] == 0.95
        assert result.diagnostics["zscore"] == pytest.approx(19 / np.sqrt(19))

    def test_zscore_flat_is_neutral(self):
        result = zscore_signal(pd.Series([50.0] * 30))
        assert result.signal == SignalDirection.NEUTRAL
        assert result.diagnostics["zscore"] == 0.0

    def test_momentum_consistent_rise(self):
        closes = pd.Series(100 * 1.01 ** np.arange(60))
        result = momentum_signal(closes)
        assert result.signal == SignalDirection.STRONG_BUY
        assert result.diagnostics["consistency"] == "HIGH"
        assert set(result.diagnostics["by_period"]) == {"5d", "10d", "20d", "50d"}
        assert result.diagnostics["by_period"]["5d"] == pytest.approx((1.01 ** 5 - 1) * 100)

    def test_momentum_skips_long_horizons_on_short_history(self):
        closes = pd.Series(100 * 0.99 ** np.arange(12))
        result = momentum_signal(closes)
        assert set(result.diagnostics["by_period"]) == {"5d", "10d"}
        assert result.signal == SignalDirection.STRONG_SELL

    def test_momentum_without_history(self):
        result = momentum_signal(pd.Series([100.0, 101.0]))
        assert result.signal == SignalDirection.NEUTRAL
        assert result.diagnostics["by_period"] == {}

    def test_volume_surprise_follows_return_sign(self):
        volumes = pd.Series([1e6] * 19 + [3e6])
        assert volume_signal(volumes, 0.02).signal == SignalDirection.STRONG_BUY
        assert volume_signal(volumes, -0.02).signal == SignalDirection.STRONG_SELL
        assert volume_signal(volumes, None).signal == SignalDirection.NEUTRAL
        assert volume_signal(volumes, float("nan")).signal == SignalDirection.NEUTRAL


class TestGenerate:

    def test_flat_series_is_neutral(self, flat_bars):
        df = flat_bars.assign(returns=0.0)
        signals = generate_statistical_signals(df)
        assert signals.zscore.signal == SignalDirection.NEUTRAL
        assert signals.momentum.signal == SignalDirection.NEUTRAL
        assert signals.volume.signal == SignalDirection.NEUTRAL
        assert signals.aggregate.score == 0.0

    def test_to_dict_uses_wire_values(self, flat_bars):
        payload = generate_statistical_signals(flat_bars.assign(returns=0.0)).to_dict()
        assert payload["aggregate"]["signal"] == "NEUTRAL"
        assert payload["momentum"]["diagnostics"]["consistency"] == "LOW"

    def test_neutral_fallback(self):
        signals = neutral_signals()
        assert signals.zscore.signal == SignalDirection.NEUTRAL
        assert signals.aggregate.confidence == 0.5

    def test_neutral_fallback_shares_nothing(self):
        """Fallback fields are distinct objects, and so are repeated fallbacks."""
        first = neutral_signals()
        first.zscore.diagnostics["note"] = "edited"
        assert first.momentum.diagnostics == {}
        assert first.volume.diagnostics == {}
        assert neutral_signals().zscore.diagnostics == {}
        assert first.zscore is not first.momentum
