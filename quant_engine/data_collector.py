"""
Market Data Ingestion and Return Series Construction

PIPELINE ARCHITECTURE
    Stage 1 - ACQUIRE
        Yahoo Finance download keyed by (symbol, period, interval) with
        retry and exponential backoff, or an OHLCV CSV for offline runs.

    Stage 2 - NORMALIZE
        Any supported bar representation becomes one DataFrame:
        - Columns Open, High, Low, Close, Volume (float)
        - Index of timestamps
        - Negative volume and missing columns are rejected

    Stage 3 - RETURNS
        Simple and log returns measured between consecutive valid closes.
        A bar with a missing Close never contributes a zero return.

Version: 1.0.0
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


REQUIRED_COLUMNS = ("Open", "High", "Low", "Close", "Volume")
_TIMESTAMP_COLUMNS = ("Date", "Datetime", "timestamp", "date", "time")


# =============================================================================
# EXCEPTIONS
# =============================================================================

class InsufficientDataError(ValueError):
    """Raised when no usable bars are supplied."""


class DataValidationError(ValueError):
    """Raised when bars are structurally invalid."""


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class PriceBar:
    """One OHLCV observation."""
    timestamp: Any
    Open: float
    High: float
    Low: float
    Close: float
    Volume: float = 0.0


BarsLike = Union[pd.DataFrame, Iterable[Union[PriceBar, Mapping[str, Any]]]]


# =============================================================================
# NORMALIZATION
# =============================================================================

def _records_to_frame(bars: Iterable[Union[PriceBar, Mapping[str, Any]]]) -> pd.DataFrame:
    records = []
    for bar in bars:
        if isinstance(bar, PriceBar):
            records.append(asdict(bar))
        elif isinstance(bar, Mapping):
            # Accept lower-case keys ("close") as well as "Close"
            record = {}
            for key, value in bar.items():
                name = str(key)
                canonical = name.capitalize() if name.capitalize() in REQUIRED_COLUMNS else name
                record[canonical] = value
            records.append(record)
        else:
            raise DataValidationError(f"Unsupported bar type: {type(bar).__name__}")
    return pd.DataFrame.from_records(records)


def normalize_bars(bars: BarsLike) -> pd.DataFrame:
    """
    Convert bars to a validated OHLCV DataFrame.

    Args:
        bars: DataFrame with Open/High/Low/Close/Volume columns, or an
            iterable of PriceBar instances / mappings

    Returns:
        New DataFrame with float OHLCV columns indexed by timestamp

    Raises:
        InsufficientDataError: No bars supplied
        DataValidationError: Missing columns or negative volume
    """
    if bars is None:
        raise InsufficientDataError("No bars supplied")

    if isinstance(bars, pd.DataFrame):
        df = bars.copy()
    else:
        df = _records_to_frame(bars)

    if len(df) == 0:
        raise InsufficientDataError("No bars supplied")

    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if "Volume" in missing and "Close" not in missing:
        df["Volume"] = 0.0
        missing.remove("Volume")
    if missing:
        raise DataValidationError(f"Missing required columns: {missing}")

    for column in _TIMESTAMP_COLUMNS:
        if column in df.columns:
            df = df.set_index(column)
            break

    if not isinstance(df.index, pd.RangeIndex):
        index = pd.to_datetime(df.index, errors="coerce")
        if not index.isna().any():
            if index.tz is not None:
                index = index.tz_localize(None)
            df.index = index

    df = df[list(REQUIRED_COLUMNS)].apply(pd.to_numeric, errors="coerce").astype(float)
    df["Volume"] = df["Volume"].fillna(0.0)

    if (df["Volume"] < 0).any():
        raise DataValidationError("Volume must be non-negative")

    if not df.index.is_monotonic_increasing:
        logger.warning("Bars are not in ascending chronological order")

    return df


def build_return_series(df: pd.DataFrame) -> pd.DataFrame:
    """
    Simple and log returns between consecutive valid closes.

    A bar whose Close is missing gets NaN, and the next valid bar is measured
    from the last valid close. The first valid bar has no return.

    Returns:
        DataFrame with ``returns`` and ``log_returns`` aligned to ``df.index``
    """
    close = df["Close"].to_numpy(dtype=float)
    simple = np.full(len(close), np.nan)
    log_ret = np.full(len(close), np.nan)

    positions = np.flatnonzero(np.isfinite(close))
    if len(positions) > 1:
        ratio = close[positions[1:]] / close[positions[:-1]]
        simple[positions[1:]] = ratio - 1.0
        with np.errstate(divide="ignore", invalid="ignore"):
            log_ret[positions[1:]] = np.log(ratio)

    return pd.DataFrame({"returns": simple, "log_returns": log_ret}, index=df.index)


def load_csv(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read an OHLCV CSV file (e.g. one exported from Yahoo Finance).

    The first recognised date column becomes the index.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"CSV not found: {path}")

    df = pd.read_csv(path)
    logger.info(f"Loaded {len(df):,} rows from {path}")
    return normalize_bars(df)


# =============================================================================
# DATA ACQUISITION
# =============================================================================

class DataAcquisition:
    """
    Yahoo Finance OHLCV acquisition with retry logic.

    Fetches are keyed by (symbol, period, interval). Caching, proxying and
    provider failover live outside this engine.
    """

    def __init__(self, max_retries: int = 3, timeout: int = 30):
        """
        Initialize data acquisition.

        Args:
            max_retries: Maximum retry attempts for failed fetches
            timeout: Request timeout in seconds
        """
        self._yf = None
        self.max_retries = max_retries
        self.timeout = timeout

    def _get_yf(self):
        """Lazy load yfinance to avoid import overhead."""
        if self._yf is None:
            import yfinance as yf
            self._yf = yf
        return self._yf

    def fetch_ohlcv(
        self,
        symbol: str,
        period: str = "1y",
        interval: str = "1d"
    ) -> pd.DataFrame:
        """
        Fetch OHLCV bars for one symbol.

        Args:
            symbol: Ticker symbol
            period: Lookback period understood by Yahoo ("6mo", "1y", "5y")
            interval: Bar interval ("1d", "1wk", "1h")

        Returns:
            Normalized OHLCV DataFrame

        Raises:
            InsufficientDataError: No data after all retries
        """
        yf = self._get_yf()
        logger.info(f"Fetching OHLCV: {symbol} (period={period}, interval={interval})")

        data = None
        for attempt in range(self.max_retries):
            try:
                data = yf.download(
                    symbol,
                    period=period,
                    interval=interval,
                    auto_adjust=False,
                    progress=False,
                    timeout=self.timeout,
                )

                if data is None or len(data) == 0:
                    if attempt < self.max_retries - 1:
                        wait_time = 2 ** attempt
                        logger.warning(f"Empty data, retrying in {wait_time}s...")
                        time.sleep(wait_time)
                        continue
                    raise InsufficientDataError(f"No data returned for {symbol}")
                break

            except InsufficientDataError:
                raise
            except Exception as e:
                if attempt < self.max_retries - 1:
                    wait_time = 2 ** attempt
                    logger.warning(f"Fetch failed: {e}, retrying in {wait_time}s...")
                    time.sleep(wait_time)
                else:
                    raise

        df = self._normalize_dataframe(data)
        if df is None:
            raise InsufficientDataError(f"No usable bars for {symbol}")

        logger.info(f"Fetched {len(df):,} bars for {symbol}")
        return df

    def _normalize_dataframe(self, df: Optional[pd.DataFrame]) -> Optional[pd.DataFrame]:
        """Flatten Yahoo's column layout and drop empty rows."""
        if df is None or len(df) == 0:
            return None

        if isinstance(df.columns, pd.MultiIndex):
            df = df.copy()
            df.columns = df.columns.get_level_values(0)

        df = df.dropna(how="all")
        if len(df) == 0:
            return None

        return normalize_bars(df)
