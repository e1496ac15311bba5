"""
Shared utilities for record ingestion: value coercion, timestamp
normalisation, date-range bounds.
"""

import logging
from datetime import date
from typing import Any

import pandas as pd

from ..config import END_OF_DAY_SUFFIX

logger = logging.getLogger(__name__)


def normalise_timestamp(val: Any) -> pd.Timestamp | None:
    """Convert an ISO 8601 string or datetime to a UTC pd.Timestamp.

    Naive values are taken to be UTC already. Returns None for
    unparseable values.
    """
    if val is None or (isinstance(val, float) and pd.isna(val)):
        return None
    try:
        ts = pd.Timestamp(val)
    except (ValueError, TypeError):
        logger.warning("Could not parse timestamp value: %s", val)
        return None
    if ts is pd.NaT:
        return None
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def safe_float(val: Any) -> float | None:
    """Coerce a value to float, returning None for missing or non-numeric values."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, str):
        val = val.strip()
        if not val:
            return None
    try:
        result = float(val)
    except (ValueError, TypeError):
        logger.warning("Could not convert %r to a number", val)
        return None
    if pd.isna(result):
        return None
    return result


def safe_text(val: Any) -> str | None:
    """Coerce an identifier or label to str, keeping None for missing values."""
    if val is None:
        return None
    if isinstance(val, float) and pd.isna(val):
        return None
    return str(val)


def to_date_string(val: date | str | None) -> str | None:
    """Render a date bound as YYYY-MM-DD, passing strings through unchanged."""
    if val is None or val == "":
        return None
    if isinstance(val, date):
        return val.strftime("%Y-%m-%d")
    return str(val)


def end_of_day_bound(end_date: date | str) -> str:
    """Inclusive upper bound for created_at covering the whole end day."""
    return f"{to_date_string(end_date)}{END_OF_DAY_SUFFIX}"
