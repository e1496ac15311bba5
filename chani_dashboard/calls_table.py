"""
Calls table view model: sort state, sorting, and free-text filtering.

Sorting only accepts the columns listed in SortField, each mapped to an
accessor that gives the column its natural ordering. Sorting is stable
and runs before filtering, so filtering never reorders surviving rows.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

import pandas as pd

from .config import SORT_ASCENDING_INDICATOR, SORT_DESCENDING_INDICATOR

logger = logging.getLogger(__name__)


class SortField(str, Enum):
    CALL_ID = "call_id"
    DURATION = "duration"
    COST = "cost"
    ASSISTANT_NAME = "assistant_name"
    SCRIPT_ID = "script_id"
    RESULT = "result"
    CREATED_AT = "created_at"


class SortDirection(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


@dataclass(frozen=True)
class SortConfig:
    key: SortField = SortField.CREATED_AT
    direction: SortDirection = SortDirection.DESCENDING


DEFAULT_SORT = SortConfig()


def _as_text(values: pd.Series) -> pd.Series:
    return values.map(str, na_action="ignore")


def _as_number(values: pd.Series) -> pd.Series:
    return pd.to_numeric(values, errors="coerce")


def _as_timestamp(values: pd.Series) -> pd.Series:
    return pd.to_datetime(values, utc=True, errors="coerce")


SORT_ACCESSORS: dict[SortField, Callable[[pd.Series], pd.Series]] = {
    SortField.CALL_ID: _as_text,
    SortField.DURATION: _as_number,
    SortField.COST: _as_number,
    SortField.ASSISTANT_NAME: _as_text,
    SortField.SCRIPT_ID: _as_text,
    SortField.RESULT: _as_text,
    SortField.CREATED_AT: _as_timestamp,
}


def request_sort(current: SortConfig, key: SortField) -> SortConfig:
    """Next sort state after a click on the header of `key`.

    Clicking the active ascending column flips it to descending; any other
    click sorts `key` ascending.
    """
    if current.key == key and current.direction == SortDirection.ASCENDING:
        return SortConfig(key, SortDirection.DESCENDING)
    return SortConfig(key, SortDirection.ASCENDING)


def sort_indicator(current: SortConfig, key: SortField) -> str:
    """Header suffix showing the active sort column and its direction."""
    if current.key != key:
        return ""
    if current.direction == SortDirection.ASCENDING:
        return SORT_ASCENDING_INDICATOR
    return SORT_DESCENDING_INDICATOR


def sort_calls(df_calls: pd.DataFrame, sort: SortConfig) -> pd.DataFrame:
    """Stable sort on one column; missing values go last in both directions."""
    return df_calls.sort_values(
        by=sort.key.value,
        ascending=sort.direction == SortDirection.ASCENDING,
        kind="stable",
        na_position="last",
        key=SORT_ACCESSORS[sort.key],
    )


def search_text(value: Any) -> str | None:
    """String form of a cell for searching; None for missing values.

    Whole floats print without a trailing ".0" and timestamps as ISO 8601,
    matching how the backend serialises them.
    """
    if value is None:
        return None
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def filter_calls(df_calls: pd.DataFrame, search: str) -> pd.DataFrame:
    """Keep rows where any non-missing cell contains `search`, ignoring case."""
    if not search:
        return df_calls

    needle = search.lower()

    def matches(value: Any) -> bool:
        text = search_text(value)
        return text is not None and needle in text.lower()

    mask = pd.Series(False, index=df_calls.index)
    for col in df_calls.columns:
        mask |= df_calls[col].map(matches).astype(bool)

    return df_calls[mask]


def get_calls_view(
    df_calls: pd.DataFrame,
    sort: SortConfig = DEFAULT_SORT,
    search: str = "",
) -> pd.DataFrame:
    """Sorted, then filtered, projection of the call table for display."""
    view = filter_calls(sort_calls(df_calls, sort), search)
    logger.debug(
        "Calls view: %d of %d rows (sort=%s %s, search=%r)",
        len(view), len(df_calls), sort.key.value, sort.direction.value, search,
    )
    return view


@dataclass(frozen=True)
class CallsViewState:
    """Sort and search state owned by the calls page."""

    sort: SortConfig = DEFAULT_SORT
    search: str = ""

    def with_sort_requested(self, key: SortField) -> "CallsViewState":
        return replace(self, sort=request_sort(self.sort, key))

    def with_search(self, search: str) -> "CallsViewState":
        return replace(self, search=search)

    def apply(self, df_calls: pd.DataFrame) -> pd.DataFrame:
        return get_calls_view(df_calls, self.sort, self.search)
