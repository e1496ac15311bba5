"""
KPI computation for the call table: pure functions with no side effects.

Provides date-range filtering, the scalar call summary, and the grouped
cost and success-rate series behind the dashboard charts. Every ratio
falls back to 0 when its denominator is 0.
"""

import logging
from datetime import date

import pandas as pd

from .config import (
    MISSING_SCRIPT,
    RESULT_APPOINTMENT,
    RESULT_SUCCESS,
    SUCCESS_RESULTS,
)
from .loaders.utils import end_of_day_bound, to_date_string

logger = logging.getLogger(__name__)


def safe_ratio(numerator: float, denominator: float) -> float:
    """Return numerator / denominator, or 0.0 if the denominator is 0 or missing."""
    if denominator == 0 or pd.isna(denominator):
        return 0.0
    return numerator / denominator


def filter_date_range(
    df_calls: pd.DataFrame,
    start_date: date | str | None = None,
    end_date: date | str | None = None,
) -> pd.DataFrame:
    """Keep calls with start_date <= created_at <= end_date 23:59:59 (UTC).

    Either bound may be None to leave that side open.
    """
    mask = pd.Series(True, index=df_calls.index)

    start = to_date_string(start_date)
    if start:
        mask &= df_calls["created_at"] >= pd.Timestamp(start, tz="UTC")

    end = to_date_string(end_date)
    if end:
        mask &= df_calls["created_at"] <= pd.Timestamp(end_of_day_bound(end), tz="UTC")

    return df_calls[mask]


def compute_summary(df_calls: pd.DataFrame) -> dict:
    """Return the scalar metrics for the dashboard cards.

    Returns
    -------
    Dict with keys:
        total_calls, total_duration, total_cost, successful_calls,
        appointments_taken, average_cost_per_call, average_cost_per_minute,
        average_duration_per_call, cost_per_appointment, success_rate

    Only result == "success" counts towards successful_calls here;
    appointments are counted separately.
    """
    total_calls = int(len(df_calls))
    total_duration = float(df_calls["duration"].fillna(0).sum())
    total_cost = float(df_calls["cost"].fillna(0).sum())
    successful_calls = int((df_calls["result"] == RESULT_SUCCESS).sum())
    appointments_taken = int((df_calls["result"] == RESULT_APPOINTMENT).sum())

    return {
        "total_calls": total_calls,
        "total_duration": total_duration,
        "total_cost": total_cost,
        "successful_calls": successful_calls,
        "appointments_taken": appointments_taken,
        "average_cost_per_call": safe_ratio(total_cost, total_calls),
        "average_cost_per_minute": safe_ratio(total_cost, total_duration),
        "average_duration_per_call": safe_ratio(total_duration, total_calls),
        "cost_per_appointment": safe_ratio(total_cost, appointments_taken),
        "success_rate": safe_ratio(successful_calls, total_calls) * 100,
    }


def _call_dates(df_calls: pd.DataFrame) -> pd.Series:
    return df_calls["created_at"].dt.strftime("%Y-%m-%d")


def cost_by_date(df_calls: pd.DataFrame) -> pd.DataFrame:
    """Daily cost totals, ascending by date.

    Returns
    -------
    DataFrame with columns: date (YYYY-MM-DD), cost
    """
    if df_calls.empty:
        return pd.DataFrame({"date": pd.Series(dtype="object"), "cost": pd.Series(dtype="float64")})

    frame = pd.DataFrame({
        "date": _call_dates(df_calls),
        "cost": df_calls["cost"].fillna(0),
    })
    return frame.groupby("date", sort=True)["cost"].sum().reset_index()


def _success_rate_by(buckets: pd.Series, results: pd.Series, sort: bool) -> pd.DataFrame:
    frame = pd.DataFrame({
        "bucket": buckets,
        "success": results.isin(SUCCESS_RESULTS),
    })
    grouped = (
        frame.groupby("bucket", sort=sort)
        .agg(total=("success", "size"), successful=("success", "sum"))
        .reset_index()
    )
    grouped["successful"] = grouped["successful"].astype(int)
    grouped["success_rate"] = [
        safe_ratio(successful, total) * 100
        for successful, total in zip(grouped["successful"], grouped["total"])
    ]
    return grouped


def success_rate_by_date(df_calls: pd.DataFrame) -> pd.DataFrame:
    """Daily success rate (success or appointment_booked), ascending by date.

    Returns
    -------
    DataFrame with columns: date, total, successful, success_rate
    """
    if df_calls.empty:
        return pd.DataFrame(columns=["date", "total", "successful", "success_rate"])

    grouped = _success_rate_by(_call_dates(df_calls), df_calls["result"], sort=True)
    return grouped.rename(columns={"bucket": "date"})


def success_rate_by_script(df_calls: pd.DataFrame) -> pd.DataFrame:
    """Success rate per script_id, buckets in order of first appearance.

    Calls without a script_id fall into the "N/A" bucket.

    Returns
    -------
    DataFrame with columns: script, total, successful, success_rate
    """
    if df_calls.empty:
        return pd.DataFrame(columns=["script", "total", "successful", "success_rate"])

    scripts = df_calls["script_id"]
    has_script = scripts.notna() & (scripts.astype(str) != "")
    buckets = scripts.where(has_script, MISSING_SCRIPT).astype(str)

    grouped = _success_rate_by(buckets, df_calls["result"], sort=False)
    return grouped.rename(columns={"bucket": "script"})
