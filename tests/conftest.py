import numpy as np
import pandas as pd
import pytest


def make_bars(closes, volumes=None, start="2023-01-02"):
    """OHLCV frame on business days: Open = previous close, High/Low = Close +/- 0.5%."""
    closes = np.asarray(closes, dtype=float)
    if volumes is None:
        volumes = np.full(len(closes), 1_000_000.0)
    opens = np.concatenate([[closes[0]], closes[:-1]]) if len(closes) else closes
    index = pd.bdate_range(start, periods=len(closes))
    return pd.DataFrame(
        {
            "Open": opens,
            "High": closes * 1.005,
            "Low": closes * 0.995,
            "Close": closes,
            "Volume": np.asarray(volumes, dtype=float),
        },
        index=index,
    )


def zigzag_closes(n=252, drift=0.0012, swing=0.01):
    """
    Steady exponential trend with an alternating +/- swing.

    The final bar sits on the swing in the direction of the drift.
    """
    direction = 1.0 if drift >= 0 else -1.0
    i = np.arange(n)
    phase = np.where(i % 2 == (n - 1) % 2, swing * direction, -swing * direction)
    return 100.0 * np.exp(drift * i + phase)


def trend_bars(drift):
    closes = zigzag_closes(drift=drift)
    volumes = np.full(len(closes), 1_000_000.0)
    volumes[-1] = 3_000_000.0
    return make_bars(closes, volumes)


@pytest.fixture
def uptrend_bars():
    return trend_bars(0.0012)


@pytest.fixture
def downtrend_bars():
    return trend_bars(-0.0012)


@pytest.fixture
def flat_bars():
    return make_bars(np.full(300, 100.0))


@pytest.fixture
def short_bars():
    return make_bars([100, 101, 99, 102, 103, 101, 104, 105, 103, 106])


@pytest.fixture
def random_walk_bars():
    rng = np.random.default_rng(7)
    closes = 100.0 * np.exp(np.cumsum(rng.normal(0.0003, 0.015, 300)))
    volumes = rng.uniform(5e5, 2e6, 300)
    return make_bars(closes, volumes)
