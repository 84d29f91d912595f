"""Shared numeric helpers and JSON conversion."""

from __future__ import annotations

import math
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

import numpy as np
import pandas as pd


def safe_divide(a: float, b: float, default: float = 0.0) -> float:
    """Safe division handling zero and invalid values."""
    try:
        if b == 0 or not np.isfinite(b):
            return default
        result = a / b
        return default if not np.isfinite(result) else result
    except (ZeroDivisionError, TypeError, ValueError):
        return default


def clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


def is_available(value: Any) -> bool:
    """True when value is a finite number (not None / NaN / inf)."""
    if value is None:
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def optional_float(value: Any) -> Optional[float]:
    """Finite float or None."""
    return float(value) if is_available(value) else None


def to_jsonable(obj: Any) -> Any:
    """
    Convert engine output to plain JSON-compatible structures.

    NaN / inf become None, enums their value, timestamps ISO strings,
    dataclasses dicts and DataFrames lists of records.
    """
    if obj is None or obj is pd.NaT:
        return None
    if isinstance(obj, (str, bool)):
        return obj
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (int, np.integer)):
        return int(obj)
    if isinstance(obj, (float, np.floating)):
        return float(obj) if math.isfinite(obj) else None
    if isinstance(obj, (pd.Timestamp, datetime, date)):
        return obj.isoformat()
    if isinstance(obj, pd.DataFrame):
        frame = obj.reset_index()
        return [
            {str(k): to_jsonable(v) for k, v in row.items()}
            for row in frame.to_dict(orient="records")
        ]
    if isinstance(obj, pd.Series):
        return [to_jsonable(v) for v in obj.tolist()]
    if isinstance(obj, np.ndarray):
        return [to_jsonable(v) for v in obj.tolist()]
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj
