"""
Technical Indicator Library for Quantitative Analysis

INDICATOR ARCHITECTURE
    Indicators are grouped into family classes. Each family exposes its
    calculations as static methods over a close series or an OHLCV DataFrame
    and reads its latest-bar signals through instance methods configured by
    IndicatorParameters. TechnicalIndicatorEngine coordinates the families.

    Every calculation returns values aligned to the input index; a value that
    falls inside its warm-up window is NaN, never a fabricated number.

    Family 1 - TREND (TrendIndicators)
        - SMA: Simple moving average over a trailing window
        - EMA: Exponential moving average seeded at the first close
        - MACD: EMA(12) - EMA(26) with EMA(9) signal line and histogram
        - ADX/DMI: Trailing-window directional movement system

    Family 2 - MOMENTUM OSCILLATORS (MomentumIndicators)
        - RSI: Simple-average gains/losses over the trailing period
        - Stochastic Oscillator: Lane's %K/%D

    Family 3 - VOLATILITY (VolatilityIndicators)
        - Bollinger Bands: SMA(20) +/- 2 population standard deviations
        - ATR: Simple average of the true range

    Family 4 - PERSISTENCE (PersistenceIndicators)
        - Hurst exponent: Log-log slope of displacement vs lag

TRAILING-WINDOW FORMULAS
    RSI and ADX recompute their sums over the trailing window at every bar
    rather than applying Wilder's incremental smoothing. The outputs are
    therefore not interchangeable with Wilder-smoothed values from other
    libraries. The sums are taken over explicit windows so that a window with
    no losses (or no range) sums to exactly zero.

Version: 1.1.0
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

from quant_engine.config import IndicatorParameters

logger = logging.getLogger(__name__)

SeriesLike = Union[pd.Series, Sequence[float], np.ndarray]


# =============================================================================
# ENUMERATIONS
# =============================================================================

class TechnicalSignal(Enum):
    """Reading of a single indicator on the latest bar."""
    OVERSOLD = "OVERSOLD"
    OVERBOUGHT = "OVERBOUGHT"
    NEUTRAL = "NEUTRAL"
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    STRONG = "STRONG"
    MODERATE = "MODERATE"
    WEAK = "WEAK"

    @property
    def score(self) -> int:
        """Directional score; trend-strength readings carry no direction."""
        return {
            TechnicalSignal.OVERSOLD: 1,
            TechnicalSignal.BULLISH: 1,
            TechnicalSignal.OVERBOUGHT: -1,
            TechnicalSignal.BEARISH: -1,
        }.get(self, 0)


# =============================================================================
# HELPERS
# =============================================================================

def _as_series(values: SeriesLike) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(np.asarray(values, dtype=float))


def _trailing_sums(values: np.ndarray, window: int) -> np.ndarray:
    """Sum of values[j : j + window] for every complete window."""
    return np.lib.stride_tricks.sliding_window_view(values, window).sum(axis=1)


# =============================================================================
# FAMILY 1: TREND
# =============================================================================

class TrendIndicators:
    """
    Trend-following calculations and signal generation.

    Indicators implemented:
    - SMA / EMA
    - MACD: Appel, 1979
    - ADX/DMI: Wilder, 1978 (trailing-window sums)
    """

    def __init__(self, params: IndicatorParameters = IndicatorParameters()):
        self.params = params

    @staticmethod
    def calculate_sma(closes: SeriesLike, window: int) -> pd.Series:
        """
        Simple moving average of the trailing ``window`` values.

        NaN for i < window - 1.
        """
        series = _as_series(closes)
        if window < 1:
            return pd.Series(np.nan, index=series.index, name=f"sma_{window}")
        return series.rolling(window=window).mean().rename(f"sma_{window}")

    @staticmethod
    def calculate_ema(closes: SeriesLike, span: int) -> pd.Series:
        """
        Exponential moving average.

        k = 2 / (span + 1); e[0] = c[0]; e[i] = c[i] * k + e[i-1] * (1 - k).
        Defined from the first bar.
        """
        series = _as_series(closes)
        return series.ewm(span=span, adjust=False).mean().rename(f"ema_{span}")

    @staticmethod
    def calculate_macd(
        closes: SeriesLike,
        fast: int = 12,
        slow: int = 26,
        signal: int = 9
    ) -> Tuple[pd.Series, pd.Series, pd.Series]:
        """
        Calculate MACD, Signal line, and Histogram.

        MACD = EMA(fast) - EMA(slow)
        Signal = EMA(MACD, signal)
        Histogram = MACD - Signal

        The EMAs run from the first bar; MACD is reported from index slow - 1
        and the signal line and histogram from index slow + signal - 2.

        Returns
        -------
        Tuple[pd.Series, pd.Series, pd.Series]
            (MACD line, Signal line, Histogram)
        """
        series = _as_series(closes)
        macd_line = TrendIndicators.calculate_ema(series, fast) - TrendIndicators.calculate_ema(series, slow)
        signal_line = TrendIndicators.calculate_ema(macd_line, signal)
        histogram = macd_line - signal_line

        position = np.arange(len(series))
        macd_ready = position >= slow - 1
        signal_ready = position >= slow + signal - 2

        return (
            macd_line.where(macd_ready).rename("macd"),
            signal_line.where(signal_ready).rename("macd_signal"),
            histogram.where(signal_ready).rename("macd_histogram"),
        )

    @staticmethod
    def calculate_adx_dmi(
        df: pd.DataFrame,
        period: int = 14
    ) -> Tuple[pd.Series, pd.Series, pd.Series]:
        """
        Calculate ADX and Directional Movement indicators over a trailing window.

        For each bar i >= period, sums of true range, +DM and -DM over bars
        i - period + 1 .. i (each measured against its previous bar):
            +DI = 100 * sum(+DM) / sum(TR)
            -DI = 100 * sum(-DM) / sum(TR)
            ADX = 100 * |+DI - -DI| / (+DI + -DI)
        Zero denominators yield 0.

        Returns
        -------
        Tuple[pd.Series, pd.Series, pd.Series]
            (ADX, +DI, -DI)
        """
        high = df["High"].to_numpy(dtype=float)
        low = df["Low"].to_numpy(dtype=float)
        n = len(high)
        adx_out = np.full(n, np.nan)
        plus_out = np.full(n, np.nan)
        minus_out = np.full(n, np.nan)

        if 0 < period < n:
            # first bar has no previous close and is not part of any window
            tr = VolatilityIndicators.calculate_true_range(df).to_numpy()[1:]
            up_move = high[1:] - high[:-1]
            down_move = low[:-1] - low[1:]
            plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
            minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

            sum_tr = _trailing_sums(tr, period)
            sum_plus = _trailing_sums(plus_dm, period)
            sum_minus = _trailing_sums(minus_dm, period)

            with np.errstate(divide="ignore", invalid="ignore"):
                plus_di = np.where(sum_tr > 0, 100.0 * sum_plus / sum_tr, 0.0)
                minus_di = np.where(sum_tr > 0, 100.0 * sum_minus / sum_tr, 0.0)
                di_total = plus_di + minus_di
                dx = np.where(di_total > 0, 100.0 * np.abs(plus_di - minus_di) / di_total, 0.0)

            adx_out[period:] = dx
            plus_out[period:] = plus_di
            minus_out[period:] = minus_di

        return (
            pd.Series(adx_out, index=df.index, name="adx"),
            pd.Series(plus_out, index=df.index, name="plus_di"),
            pd.Series(minus_out, index=df.index, name="minus_di"),
        )

    def generate_macd_signal(self, line: float, signal_line: float) -> Optional[TechnicalSignal]:
        if pd.isna(line) or pd.isna(signal_line):
            return None
        return TechnicalSignal.BULLISH if line > signal_line else TechnicalSignal.BEARISH

    def generate_adx_signal(self, value: float) -> Optional[TechnicalSignal]:
        if pd.isna(value):
            return None
        if value > self.params.adx_strong:
            return TechnicalSignal.STRONG
        if value > self.params.adx_moderate:
            return TechnicalSignal.MODERATE
        return TechnicalSignal.WEAK


# =============================================================================
# FAMILY 2: MOMENTUM OSCILLATORS
# =============================================================================

class MomentumIndicators:
    """
    Momentum oscillator calculations and signal generation.

    Momentum indicators measure the rate of price change to identify
    overbought/oversold conditions and potential reversals.

    Indicators implemented:
    - RSI (Relative Strength Index): Wilder, 1978
    - Stochastic Oscillator: Lane, 1950s
    """

    def __init__(self, params: IndicatorParameters = IndicatorParameters()):
        self.params = params

    @staticmethod
    def calculate_rsi(closes: SeriesLike, period: int = 14) -> pd.Series:
        """
        Relative Strength Index from simple averages of the trailing diffs.

        RSI = 100 - (100 / (1 + RS)), RS = avg gain / avg loss over the last
        ``period`` price changes; 100 when avg loss is zero. NaN for i < period.
        """
        series = _as_series(closes)
        values = series.to_numpy()
        out = np.full(len(values), np.nan)

        if 0 < period < len(values):
            diffs = np.diff(values)
            avg_gain = _trailing_sums(np.where(diffs > 0, diffs, 0.0), period) / period
            avg_loss = _trailing_sums(np.where(diffs < 0, -diffs, 0.0), period) / period

            with np.errstate(divide="ignore", invalid="ignore"):
                raw = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)
            out[period:] = np.where(avg_loss == 0, 100.0, raw)

        return pd.Series(out, index=series.index, name="rsi")

    @staticmethod
    def calculate_stochastic(
        df: pd.DataFrame,
        k_period: int = 14,
        d_period: int = 3
    ) -> Tuple[pd.Series, pd.Series]:
        """
        Calculate Stochastic Oscillator (%K and %D).

        %K = 100 * (Close - Lowest Low) / (Highest High - Lowest Low) over the
        trailing ``k_period`` bars, 50 on a zero range, NaN for i < k_period - 1.
        %D = SMA(%K, d_period) with unavailable %K read as 50.
        """
        close = df["Close"].astype(float)
        highest = df["High"].astype(float).rolling(window=k_period).max()
        lowest = df["Low"].astype(float).rolling(window=k_period).min()
        price_range = highest - lowest

        k = 100.0 * (close - lowest) / price_range.replace(0, np.nan)
        k = k.mask(price_range == 0, 50.0).rename("stoch_k")
        d = TrendIndicators.calculate_sma(k.fillna(50.0), d_period).rename("stoch_d")
        return k, d

    def generate_rsi_signal(self, value: float) -> Optional[TechnicalSignal]:
        if pd.isna(value):
            return None
        if value < self.params.rsi_oversold:
            return TechnicalSignal.OVERSOLD
        if value > self.params.rsi_overbought:
            return TechnicalSignal.OVERBOUGHT
        return TechnicalSignal.NEUTRAL


# =============================================================================
# FAMILY 3: VOLATILITY
# =============================================================================

class VolatilityIndicators:
    """
    Volatility band and range calculations.

    Indicators implemented:
    - Bollinger Bands: Bollinger, 1980s
    - ATR (Average True Range): Wilder, 1978 (simple average)
    """

    def __init__(self, params: IndicatorParameters = IndicatorParameters()):
        self.params = params

    @staticmethod
    def calculate_true_range(df: pd.DataFrame) -> pd.Series:
        """max(H - L, |H - prevC|, |L - prevC|); H - L on the first bar."""
        high = df["High"].astype(float)
        low = df["Low"].astype(float)
        prev_close = df["Close"].astype(float).shift(1)

        tr1 = high - low
        tr2 = (high - prev_close).abs()
        tr3 = (low - prev_close).abs()
        return pd.concat([tr1, tr2, tr3], axis=1).max(axis=1).rename("true_range")

    @staticmethod
    def calculate_atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
        """Average True Range: SMA of the true range. NaN for i < period - 1."""
        tr = VolatilityIndicators.calculate_true_range(df)
        return TrendIndicators.calculate_sma(tr, period).rename("atr")

    @staticmethod
    def calculate_bollinger_bands(
        closes: SeriesLike,
        period: int = 20,
        num_std: float = 2.0
    ) -> Tuple[pd.Series, pd.Series, pd.Series]:
        """
        Calculate Bollinger Bands.

        Middle = SMA(period)
        Upper = Middle + num_std * StdDev(period)
        Lower = Middle - num_std * StdDev(period)

        StdDev is the population standard deviation of the same window.

        Returns
        -------
        Tuple[pd.Series, pd.Series, pd.Series]
            (Upper, Middle, Lower)
        """
        series = _as_series(closes)
        middle = TrendIndicators.calculate_sma(series, period)
        if period < 1:
            deviation = middle
        else:
            deviation = series.rolling(window=period).std(ddof=0)

        return (
            (middle + num_std * deviation).rename("bb_upper"),
            middle.rename("bb_middle"),
            (middle - num_std * deviation).rename("bb_lower"),
        )

    def generate_bollinger_signal(self, close: float, upper: float, lower: float) -> Optional[TechnicalSignal]:
        if pd.isna(upper) or pd.isna(lower):
            return None
        if close > upper:
            return TechnicalSignal.OVERBOUGHT
        if close < lower:
            return TechnicalSignal.OVERSOLD
        return TechnicalSignal.NEUTRAL


# =============================================================================
# FAMILY 4: PERSISTENCE
# =============================================================================

class PersistenceIndicators:
    """Long-memory statistics of the price path."""

    @staticmethod
    def calculate_hurst(closes: SeriesLike, max_lag: int = 20) -> float:
        """
        Hurst exponent from the scaling of price displacement with lag.

        For lag in [2, min(max_lag, n)), tau(lag) = sqrt(mean((p[i] - p[i-lag])^2)).
        H is the OLS slope of log(tau) on log(lag).

            H > 0.5: Persistent (trending)
            H = 0.5: Random walk
            H < 0.5: Mean-reverting

        Returns 0.5 when fewer than two lags have a non-zero displacement.
        """
        values = _as_series(closes).dropna().to_numpy()

        log_lags = []
        log_tau = []
        for lag in range(2, min(max_lag, len(values))):
            displacement = values[lag:] - values[:-lag]
            msd = float(np.mean(displacement ** 2))
            if msd > 0:
                log_lags.append(np.log(lag))
                log_tau.append(np.log(np.sqrt(msd)))

        if len(log_lags) < 2:
            return 0.5

        slope = stats.linregress(log_lags, log_tau).slope
        return float(slope) if np.isfinite(slope) else 0.5


# =============================================================================
# MAIN ENGINE
# =============================================================================

class TechnicalIndicatorEngine:
    """
    Coordinates the indicator families.

    Usage
    -----
    >>> engine = TechnicalIndicatorEngine(DEFAULT_CONFIG.indicators)
    >>> frame = engine.process(df)
    >>> readings = engine.generate_signals(df.join(frame).iloc[-1])
    """

    def __init__(self, params: IndicatorParameters = IndicatorParameters()):
        self.params = params
        self.trend = TrendIndicators(params)
        self.momentum = MomentumIndicators(params)
        self.volatility = VolatilityIndicators(params)

    def process(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Compute every indicator column for an OHLCV DataFrame.

        Parameters
        ----------
        df : pd.DataFrame
            OHLCV data with columns: Open, High, Low, Close, Volume

        Returns
        -------
        pd.DataFrame
            Indicator columns aligned to ``df.index``
        """
        logger.debug(f"Computing indicators over {len(df)} bars")
        p = self.params
        close = df["Close"]
        out = pd.DataFrame(index=df.index)

        for window in p.sma_windows:
            out[f"sma_{window}"] = TrendIndicators.calculate_sma(close, window).to_numpy()

        out["rsi"] = MomentumIndicators.calculate_rsi(close, p.rsi_period).to_numpy()

        macd_line, signal_line, histogram = TrendIndicators.calculate_macd(
            close, p.macd_fast, p.macd_slow, p.macd_signal
        )
        out["macd"] = macd_line.to_numpy()
        out["macd_signal"] = signal_line.to_numpy()
        out["macd_histogram"] = histogram.to_numpy()

        upper, middle, lower = VolatilityIndicators.calculate_bollinger_bands(
            close, p.bb_period, p.bb_std_dev
        )
        out["bb_upper"] = upper.to_numpy()
        out["bb_middle"] = middle.to_numpy()
        out["bb_lower"] = lower.to_numpy()

        out["atr"] = VolatilityIndicators.calculate_atr(df, p.atr_period).to_numpy()

        stoch_k, stoch_d = MomentumIndicators.calculate_stochastic(
            df, p.stoch_k_period, p.stoch_d_period
        )
        out["stoch_k"] = stoch_k.to_numpy()
        out["stoch_d"] = stoch_d.to_numpy()

        adx_line, plus_di, minus_di = TrendIndicators.calculate_adx_dmi(df, p.adx_period)
        out["adx"] = adx_line.to_numpy()
        out["plus_di"] = plus_di.to_numpy()
        out["minus_di"] = minus_di.to_numpy()

        return out

    def generate_signals(self, bar: pd.Series) -> Dict[str, TechnicalSignal]:
        """
        Read RSI, MACD, Bollinger and ADX on one enriched bar.

        An indicator is skipped when any of its inputs is unavailable.
        """
        readings = (
            ("RSI", self.momentum.generate_rsi_signal(bar.get("rsi"))),
            ("MACD", self.trend.generate_macd_signal(bar.get("macd"), bar.get("macd_signal"))),
            ("Bollinger", self.volatility.generate_bollinger_signal(
                bar.get("Close"), bar.get("bb_upper"), bar.get("bb_lower")
            )),
            ("ADX", self.trend.generate_adx_signal(bar.get("adx"))),
        )
        return {name: signal for name, signal in readings if signal is not None}


# =============================================================================
# FUNCTIONAL INTERFACE
# =============================================================================

sma = TrendIndicators.calculate_sma
ema = TrendIndicators.calculate_ema
macd = TrendIndicators.calculate_macd
adx = TrendIndicators.calculate_adx_dmi
rsi = MomentumIndicators.calculate_rsi
stochastic = MomentumIndicators.calculate_stochastic
true_range = VolatilityIndicators.calculate_true_range
atr = VolatilityIndicators.calculate_atr
bollinger_bands = VolatilityIndicators.calculate_bollinger_bands
hurst_exponent = PersistenceIndicators.calculate_hurst


def compute_indicator_frame(
    df: pd.DataFrame,
    params: IndicatorParameters = IndicatorParameters()
) -> pd.DataFrame:
    """Indicator columns for ``df`` (see TechnicalIndicatorEngine.process)."""
    return TechnicalIndicatorEngine(params).process(df)


def generate_technical_signals(
    bar: pd.Series,
    params: IndicatorParameters = IndicatorParameters()
) -> Dict[str, TechnicalSignal]:
    """Latest-bar readings (see TechnicalIndicatorEngine.generate_signals)."""
    return TechnicalIndicatorEngine(params).generate_signals(bar)
