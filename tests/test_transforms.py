import pandas as pd

from chani_dashboard.config import CALL_COLUMNS
from chani_dashboard.loaders.utils import (
    end_of_day_bound,
    normalise_timestamp,
    safe_float,
    safe_text,
    to_date_string,
)
from chani_dashboard.transforms import build_fact_calls, empty_calls_frame


def test_build_fact_calls_schema_and_types(calls):
    assert list(calls.columns) == CALL_COLUMNS
    assert calls["duration"].dtype == "float64"
    assert calls["cost"].dtype == "float64"
    assert str(calls["created_at"].dt.tz) == "UTC"
    assert pd.isna(calls.loc[2, "duration"])
    assert pd.isna(calls.loc[3, "cost"])
    assert calls.loc[3, "assistant_name"] is None


def test_text_columns_are_object_with_none(calls):
    for col in ("call_id", "assistant_name", "script_id", "result"):
        assert calls[col].dtype == object
        assert calls[col].dtype == empty_calls_frame()[col].dtype
    assert calls.loc[3, "script_id"] is None
    assert calls.loc[3, "result"] is None
    assert calls["result"].tolist() == ["success", "appointment_booked", "no_answer", None]


def test_build_fact_calls_keeps_extra_columns_after_schema():
    calls = build_fact_calls([
        {"transcript": "hello", "call_id": "x", "created_at": "2026-09-01T08:00:00Z"},
    ])
    assert list(calls.columns) == CALL_COLUMNS + ["transcript"]
    assert calls.loc[0, "transcript"] == "hello"


def test_build_fact_calls_drops_rows_without_valid_created_at():
    calls = build_fact_calls([
        {"call_id": "ok", "created_at": "2026-09-01T08:00:00Z"},
        {"call_id": "missing"},
        {"call_id": "garbage", "created_at": "not a date"},
    ])
    assert calls["call_id"].tolist() == ["ok"]


def test_build_fact_calls_normalises_values():
    calls = build_fact_calls([
        {"call_id": 42, "duration": "3.5", "cost": "", "script_id": 7,
         "created_at": "2026-09-01T10:00:00+02:00"},
    ])
    assert calls.loc[0, "call_id"] == "42"
    assert calls.loc[0, "duration"] == 3.5
    assert pd.isna(calls.loc[0, "cost"])
    assert calls.loc[0, "script_id"] == "7"
    assert calls.loc[0, "created_at"] == pd.Timestamp("2026-09-01T08:00:00Z")


def test_build_fact_calls_empty_input():
    calls = build_fact_calls([])
    assert calls.empty
    assert list(calls.columns) == CALL_COLUMNS
    pd.testing.assert_frame_equal(calls, empty_calls_frame())


def test_normalise_timestamp():
    assert normalise_timestamp("2026-09-01T08:00:00Z") == pd.Timestamp("2026-09-01T08:00:00", tz="UTC")
    assert normalise_timestamp("2026-09-01T08:00:00") == pd.Timestamp("2026-09-01T08:00:00", tz="UTC")
    assert normalise_timestamp(None) is None
    assert normalise_timestamp("nope") is None


def test_safe_float_and_text():
    assert safe_float("1.25") == 1.25
    assert safe_float(3) == 3.0
    assert safe_float(None) is None
    assert safe_float("  ") is None
    assert safe_float("abc") is None
    assert safe_float(True) is None
    assert safe_text(None) is None
    assert safe_text(float("nan")) is None
    assert safe_text(12) == "12"


def test_date_bounds():
    from datetime import date

    assert to_date_string(date(2026, 9, 30)) == "2026-09-30"
    assert to_date_string("2026-09-30") == "2026-09-30"
    assert to_date_string("") is None
    assert end_of_day_bound("2026-09-30") == "2026-09-30T23:59:59"
