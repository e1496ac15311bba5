"""
Data transforms: normalise raw transcription rows into the call table
consumed by the aggregation and table-view functions.
"""

import logging
from typing import Any, Iterable

import pandas as pd

from .config import CALL_COLUMNS, NUMERIC_COLUMNS, TEXT_COLUMNS
from .loaders.utils import normalise_timestamp, safe_float, safe_text

logger = logging.getLogger(__name__)


def empty_calls_frame() -> pd.DataFrame:
    """Call table with the schema columns and no rows."""
    return pd.DataFrame({
        "call_id": pd.Series(dtype="object"),
        "duration": pd.Series(dtype="float64"),
        "cost": pd.Series(dtype="float64"),
        "assistant_name": pd.Series(dtype="object"),
        "script_id": pd.Series(dtype="object"),
        "result": pd.Series(dtype="object"),
        "created_at": pd.Series(dtype="datetime64[ns, UTC]"),
    })


def build_fact_calls(rows: Iterable[dict[str, Any]]) -> pd.DataFrame:
    """Normalise backend rows into the call table.

    Parameters
    ----------
    rows : Row dicts as returned by a select-all on the transcriptions table.

    Returns
    -------
    DataFrame with columns:
        call_id, duration, cost, assistant_name, script_id, result,
        created_at, followed by any extra columns the backend returned.
    duration and cost are float64 (NaN when absent), the text columns are
    object dtype (None when absent), created_at is UTC.
    Rows without a parseable created_at are dropped.
    """
    records = []
    dropped = 0

    for row in rows:
        created_at = normalise_timestamp(row.get("created_at"))
        if created_at is None:
            dropped += 1
            continue

        record = dict(row)
        record["created_at"] = created_at
        for col in NUMERIC_COLUMNS:
            record[col] = safe_float(row.get(col))
        for col in TEXT_COLUMNS:
            record[col] = safe_text(row.get(col))
        records.append(record)

    if dropped:
        logger.warning("Dropped %d rows without a valid created_at", dropped)

    if not records:
        return empty_calls_frame()

    df = pd.DataFrame(records)
    extras = [c for c in df.columns if c not in CALL_COLUMNS]
    df = df[CALL_COLUMNS + extras]

    for col in NUMERIC_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce").astype("float64")
    # object dtype with None for absent text, whatever the inferred string dtype
    for col in TEXT_COLUMNS:
        df[col] = pd.Series(
            [None if pd.isna(value) else value for value in df[col]],
            index=df.index,
            dtype="object",
        )
    df["created_at"] = pd.to_datetime(df["created_at"], utc=True)

    duplicated = df["call_id"].dropna().duplicated()
    if duplicated.any():
        logger.warning("Found %d duplicated call_id values", int(duplicated.sum()))

    logger.info("Built call table with %d rows", len(df))
    return df.reset_index(drop=True)
