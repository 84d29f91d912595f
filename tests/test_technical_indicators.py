import numpy as np
import pandas as pd
import pytest

from quant_engine.config import IndicatorParameters
from quant_engine.technical_indicators import (
    MomentumIndicators,
    TechnicalIndicatorEngine,
    TechnicalSignal,
    TrendIndicators,
    VolatilityIndicators,
    adx,
    atr,
    bollinger_bands,
    compute_indicator_frame,
    ema,
    generate_technical_signals,
    hurst_exponent,
    macd,
    rsi,
    sma,
    stochastic,
    true_range,
)


class TestMovingAverages:

    def test_sma_warmup_and_trailing_mean(self):
        """SMA is NaN before the window fills, then the trailing mean."""
        out = sma(np.arange(1, 11, dtype=float), 3)
        assert out.iloc[:2].isna().all()
        assert out.iloc[2] == pytest.approx(2.0)
        assert out.iloc[9] == pytest.approx(9.0)

    def test_sma_matches_rolling_mean(self, random_walk_bars):
        closes = random_walk_bars["Close"]
        expected = closes.rolling(20).mean()
        pd.testing.assert_series_equal(sma(closes, 20), expected, check_names=False)

    def test_sma_window_longer_than_series(self):
        assert sma([1.0, 2.0], 5).isna().all()

    def test_ema_seeded_at_first_close(self):
        """k = 2 / (span + 1) with e[0] = c[0]."""
        out = ema([1.0, 2.0, 4.0], 3)
        assert out.iloc[0] == pytest.approx(1.0)
        assert out.iloc[1] == pytest.approx(1.5)
        assert out.iloc[2] == pytest.approx(2.75)


class TestOscillators:

    def test_rsi_bounded(self, random_walk_bars):
        values = rsi(random_walk_bars["Close"]).dropna()
        assert len(values) == len(random_walk_bars) - 14
        assert ((values >= 0) & (values <= 100)).all()

    def test_rsi_is_100_without_losses(self):
        out = rsi(np.arange(1, 31, dtype=float))
        assert out.iloc[:14].isna().all()
        assert (out.iloc[14:] == 100.0).all()

    def test_rsi_is_0_without_gains(self):
        out = rsi(np.arange(30, 0, -1, dtype=float))
        assert (out.iloc[14:] == 0.0).all()

    def test_stochastic_flat_range_reads_50(self, flat_bars):
        k, d = stochastic(flat_bars)
        assert k.iloc[:13].isna().all()
        assert k.iloc[13:].to_numpy() == pytest.approx(50.0)
        # %D treats unavailable %K as 50
        assert d.iloc[2:].to_numpy() == pytest.approx(50.0)

    def test_stochastic_zero_range_reads_50(self):
        bars = pd.DataFrame({"High": [5.0] * 20, "Low": [5.0] * 20, "Close": [5.0] * 20})
        k, _ = stochastic(bars)
        assert (k.iloc[13:] == 50.0).all()


class TestTrendAndVolatility:

    def test_macd_masked_during_warmup(self, random_walk_bars):
        line, signal_line, hist = macd(random_walk_bars["Close"])
        assert line.iloc[:25].isna().all()
        assert line.iloc[25:].notna().all()
        assert signal_line.iloc[:33].isna().all()
        assert signal_line.iloc[33:].notna().all()
        assert hist.iloc[33:].to_numpy() == pytest.approx(
            (line - signal_line).iloc[33:].to_numpy()
        )

    def test_bollinger_ordering(self, random_walk_bars):
        upper, middle, lower = bollinger_bands(random_walk_bars["Close"])
        mask = middle.notna()
        assert mask.sum() == len(random_walk_bars) - 19
        assert (lower[mask] <= middle[mask]).all()
        assert (middle[mask] <= upper[mask]).all()

    def test_true_range_first_bar_is_high_minus_low(self, short_bars):
        tr = true_range(short_bars)
        assert tr.iloc[0] == pytest.approx(short_bars["High"].iloc[0] - short_bars["Low"].iloc[0])

    def test_atr_and_adx_warmup(self, random_walk_bars):
        assert atr(random_walk_bars).iloc[:13].isna().all()
        assert atr(random_walk_bars).iloc[13:].notna().all()
        adx_line, plus_di, minus_di = adx(random_walk_bars)
        assert adx_line.iloc[:14].isna().all()
        assert adx_line.iloc[14:].between(0, 100).all()
        assert plus_di.iloc[14:].notna().all()
        assert minus_di.iloc[14:].notna().all()

    def test_adx_flat_series_is_zero(self, flat_bars):
        adx_line, plus_di, minus_di = adx(flat_bars)
        assert (plus_di.iloc[14:] == 0.0).all()
        assert (minus_di.iloc[14:] == 0.0).all()
        assert (adx_line.iloc[14:] == 0.0).all()


class TestHurst:

    def test_linear_displacement_gives_one(self):
        """Displacement equal to lag is perfectly persistent."""
        assert hurst_exponent(np.arange(1, 101, dtype=float)) == pytest.approx(1.0)

    def test_flat_series_defaults_to_half(self):
        assert hurst_exponent(np.full(50, 10.0)) == 0.5

    def test_too_short_defaults_to_half(self):
        assert hurst_exponent([1.0, 2.0, 3.0]) == 0.5


class TestIndicatorFrame:

    def test_short_history_is_unavailable(self, short_bars):
        frame = compute_indicator_frame(short_bars)
        for column in ("rsi", "macd", "macd_signal", "adx", "atr", "sma_20", "sma_200"):
            assert frame[column].isna().all(), column
        assert frame["stoch_k"].isna().all()
        assert list(frame.index) == list(short_bars.index)

    def test_full_column_set(self, random_walk_bars):
        frame = compute_indicator_frame(random_walk_bars)
        assert set(frame.columns) == {
            "sma_20", "sma_50", "sma_200", "rsi", "macd", "macd_signal",
            "macd_histogram", "bb_upper", "bb_middle", "bb_lower", "atr",
            "stoch_k", "stoch_d", "adx", "plus_di", "minus_di",
        }


class TestTechnicalSignals:

    def test_readings(self):
        bar = pd.Series({
            "Close": 105.0, "rsi": 25.0, "macd": 1.0, "macd_signal": 0.5,
            "bb_upper": 104.0, "bb_lower": 96.0, "adx": 30.0,
        })
        signals = generate_technical_signals(bar)
        assert signals == {
            "RSI": TechnicalSignal.OVERSOLD,
            "MACD": TechnicalSignal.BULLISH,
            "Bollinger": TechnicalSignal.OVERBOUGHT,
            "ADX": TechnicalSignal.STRONG,
        }

    def test_unavailable_inputs_are_skipped(self):
        bar = pd.Series({"Close": 100.0, "rsi": np.nan, "macd": 0.2, "macd_signal": np.nan, "adx": 22.0})
        assert generate_technical_signals(bar) == {"ADX": TechnicalSignal.MODERATE}

    def test_scores(self):
        assert TechnicalSignal.OVERSOLD.score == 1
        assert TechnicalSignal.BEARISH.score == -1
        assert TechnicalSignal.STRONG.score == 0


class TestIndicatorEngine:

    def test_functions_are_family_calculations(self):
        assert sma is TrendIndicators.calculate_sma
        assert rsi is MomentumIndicators.calculate_rsi
        assert bollinger_bands is VolatilityIndicators.calculate_bollinger_bands

    def test_bollinger_uses_population_deviation(self, random_walk_bars):
        closes = random_walk_bars["Close"]
        upper, middle, _ = VolatilityIndicators.calculate_bollinger_bands(closes, 20, 2.0)
        window = closes.iloc[-20:].to_numpy()
        assert middle.iloc[-1] == pytest.approx(window.mean())
        assert upper.iloc[-1] == pytest.approx(window.mean() + 2.0 * window.std())

    def test_process_matches_frame(self, random_walk_bars):
        params = IndicatorParameters(rsi_period=7, sma_windows=(10,))
        frame = TechnicalIndicatorEngine(params).process(random_walk_bars)
        pd.testing.assert_frame_equal(frame, compute_indicator_frame(random_walk_bars, params))
        assert "sma_10" in frame.columns
        assert frame["rsi"].iloc[:7].isna().all()
        assert frame["rsi"].iloc[7:].notna().all()

    def test_thresholds_follow_parameters(self):
        engine = TechnicalIndicatorEngine(IndicatorParameters(rsi_overbought=80.0, adx_strong=40.0))
        bar = pd.Series({"rsi": 75.0, "adx": 30.0})
        assert engine.generate_signals(bar) == {
            "RSI": TechnicalSignal.NEUTRAL,
            "ADX": TechnicalSignal.MODERATE,
        }

    def test_family_readings_skip_missing_inputs(self):
        engine = TechnicalIndicatorEngine()
        assert engine.momentum.generate_rsi_signal(np.nan) is None
        assert engine.trend.generate_macd_signal(0.3, np.nan) is None
        assert engine.volatility.generate_bollinger_signal(100.0, np.nan, 95.0) is None
        assert engine.trend.generate_adx_signal(15.0) == TechnicalSignal.WEAK
