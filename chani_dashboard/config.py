"""
Configuration: backend settings, call-table schema, display constants.

Deployment values (Supabase credentials, display timezone) come from the
environment through Settings. Everything else is fixed vocabulary of the
transcriptions table and the dashboard.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
APP_NAME = "Chani"

# ---------------------------------------------------------------------------
# Backend table and change feed
# ---------------------------------------------------------------------------
TRANSCRIPTIONS_TABLE = "transcriptions"
REALTIME_SCHEMA = "public"
REALTIME_EVENT = "*"

# PostgREST compares created_at against this suffix to include the whole end day
END_OF_DAY_SUFFIX = "T23:59:59"

# ---------------------------------------------------------------------------
# Call table schema
# ---------------------------------------------------------------------------
CALL_COLUMNS = [
    "call_id",
    "duration",
    "cost",
    "assistant_name",
    "script_id",
    "result",
    "created_at",
]
NUMERIC_COLUMNS = ["duration", "cost"]
TEXT_COLUMNS = ["call_id", "assistant_name", "script_id", "result"]

# ---------------------------------------------------------------------------
# Call outcomes
# ---------------------------------------------------------------------------
RESULT_SUCCESS = "success"
RESULT_APPOINTMENT = "appointment_booked"

# Outcomes counted as a success in the per-date and per-script series
SUCCESS_RESULTS = frozenset({RESULT_SUCCESS, RESULT_APPOINTMENT})

MISSING_SCRIPT = "N/A"

# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------
MISSING_DISPLAY = "N/A"
CURRENCY_SYMBOL = "€"
DURATION_UNIT = "min"
DISPLAY_DATETIME_FORMAT = "%d/%m/%Y %H:%M:%S"
CALL_LINK_TEMPLATE = "https://dashboard.vapi.ai/calls/{call_id}"

SORT_ASCENDING_INDICATOR = " ▲"
SORT_DESCENDING_INDICATOR = " ▼"

# Column header labels for the calls table, in display order
CALL_COLUMN_LABELS: dict[str, str] = {
    "call_id": "Call ID",
    "duration": "Duration (min)",
    "cost": "Cost (€)",
    "assistant_name": "Assistant",
    "script_id": "Script ID",
    "result": "Result",
    "created_at": "Date",
}

CHART_COLORS = {
    "cost": "#8884d8",
    "success_by_date": "#82ca9d",
    "success_by_script": "#ffc658",
}


# ---------------------------------------------------------------------------
# Deployment settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Environment-driven settings, also read from a local .env file."""

    supabase_url: str | None = None
    supabase_key: str | None = None
    transcriptions_table: str = TRANSCRIPTIONS_TABLE
    display_timezone: str = "UTC"
    ui_refresh_seconds: float = 2.0
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def has_backend(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
