"""
Dashboard-ready output functions.

These are the primary entry points for the Streamlit front end and the
command-line pipeline. Each function returns plain dicts, lists or
DataFrames suitable for rendering cards, charts, and tables.
"""

import io
import logging
from datetime import date

import pandas as pd

from .config import (
    CALL_COLUMN_LABELS,
    CALL_COLUMNS,
    CALL_LINK_TEMPLATE,
    CURRENCY_SYMBOL,
    DISPLAY_DATETIME_FORMAT,
    DURATION_UNIT,
    MISSING_DISPLAY,
)
from .kpis import (
    compute_summary,
    cost_by_date,
    filter_date_range,
    success_rate_by_date,
    success_rate_by_script,
)

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "xlsx")


def format_money(value: float) -> str:
    return f"{value:.2f} {CURRENCY_SYMBOL}"


def format_minutes(value: float) -> str:
    return f"{value:.2f} {DURATION_UNIT}"


def format_percent(value: float) -> str:
    return f"{value:.2f}%"


def format_count(value: int) -> str:
    return str(value)


# (label, summary key, formatter); a None key is the live-calls placeholder
METRIC_CARDS = [
    ("Live calls", None, format_count),
    ("Total cost", "total_cost", format_money),
    ("Average cost per call", "average_cost_per_call", format_money),
    ("Average cost per minute", "average_cost_per_minute", format_money),
    ("Average duration per call", "average_duration_per_call", format_minutes),
    ("Total call duration", "total_duration", format_minutes),
    ("Number of calls", "total_calls", format_count),
    ("Appointments booked", "appointments_taken", format_count),
    ("Cost per appointment", "cost_per_appointment", format_money),
    ("Overall success rate", "success_rate", format_percent),
]


def get_dashboard_overview(
    df_calls: pd.DataFrame,
    start_date: date | str | None = None,
    end_date: date | str | None = None,
) -> dict:
    """Single entry point for the dashboard page.

    Parameters
    ----------
    df_calls : Call table from build_fact_calls().
    start_date, end_date : Optional inclusive date range; end_date covers
        the whole day.

    Returns
    -------
    Dict with keys:
        summary           -> compute_summary() dict
        cost_by_date      -> DataFrame(date, cost)
        success_by_date   -> DataFrame(date, total, successful, success_rate)
        success_by_script -> DataFrame(script, total, successful, success_rate)
    """
    calls = filter_date_range(df_calls, start_date, end_date)
    if calls.empty:
        logger.warning("No calls between %s and %s", start_date, end_date)

    return {
        "summary": compute_summary(calls),
        "cost_by_date": cost_by_date(calls),
        "success_by_date": success_rate_by_date(calls),
        "success_by_script": success_rate_by_script(calls),
    }


def get_metric_cards(summary: dict) -> list[dict[str, str]]:
    """Label/value pairs for the metric cards, values already formatted."""
    cards = []
    for label, key, formatter in METRIC_CARDS:
        value = summary[key] if key is not None else 0
        cards.append({"label": label, "value": formatter(value)})
    return cards


def call_link(call_id: str | None) -> str | None:
    if not call_id:
        return None
    return CALL_LINK_TEMPLATE.format(call_id=call_id)


def _format_number(value: float) -> str:
    if pd.isna(value):
        return MISSING_DISPLAY
    return f"{value:.2f}"


def _format_text(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)) or value == "":
        return MISSING_DISPLAY
    return str(value)


def format_calls_for_display(view: pd.DataFrame, timezone: str = "UTC") -> pd.DataFrame:
    """Render a calls view for the table.

    Returns
    -------
    DataFrame with the labelled schema columns (see CALL_COLUMN_LABELS)
    plus a "Link" column, in the row order of `view`.
    """
    display = pd.DataFrame(index=view.index)
    display["call_id"] = view["call_id"].map(_format_text)
    display["duration"] = view["duration"].map(_format_number)
    display["cost"] = view["cost"].map(_format_number)
    for col in ("assistant_name", "script_id", "result"):
        display[col] = view[col].map(_format_text)
    display["created_at"] = (
        view["created_at"].dt.tz_convert(timezone).dt.strftime(DISPLAY_DATETIME_FORMAT)
    )

    display = display.rename(columns=CALL_COLUMN_LABELS)
    display["Link"] = view["call_id"].map(call_link)
    return display.reset_index(drop=True)


def export_calls(view: pd.DataFrame, fmt: str = "csv", timezone: str = "UTC") -> bytes:
    """Serialise a calls view for download as CSV or XLSX.

    created_at is written as a naive timestamp in `timezone`; Excel has no
    timezone-aware datetimes.
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt!r}")

    extras = [c for c in view.columns if c not in CALL_COLUMNS]
    export = view[CALL_COLUMNS + extras].copy()
    export["created_at"] = export["created_at"].dt.tz_convert(timezone).dt.tz_localize(None)
    export["link"] = export["call_id"].map(call_link)
    # JSON columns (transcript segments, metadata) are written as text
    for col in extras:
        export[col] = export[col].map(lambda v: str(v) if isinstance(v, (dict, list)) else v)

    if fmt == "csv":
        return export.to_csv(index=False).encode("utf-8")

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        export.to_excel(writer, sheet_name="calls", index=False)
    logger.info("Exported %d calls to xlsx", len(export))
    return buffer.getvalue()
