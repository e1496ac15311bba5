"""
Shared fixtures for the Chani dashboard tests.

Provides a small hand-checked set of transcription rows, the call table
built from them, and a fake async Supabase client that records the
PostgREST calls and Realtime channels it is asked for.
"""

from types import SimpleNamespace
from typing import Any

import pytest

from chani_dashboard.transforms import build_fact_calls

# Hand-checked totals for SAMPLE_ROWS:
#   total_calls 4, total_duration 7.0, total_cost 9.0
#   success 1 (c1), appointment_booked 1 (c2)
#   2026-09-01 -> cost 1, 1/1 success; 2026-09-02 -> cost 8, 1/2; 2026-09-03 -> cost 0, 0/1
#   script s1 -> 2/3 success; no script -> 0/1
SAMPLE_ROWS: list[dict[str, Any]] = [
    {
        "call_id": "c1",
        "duration": 2.0,
        "cost": 5,
        "assistant_name": "Alice",
        "script_id": "s1",
        "result": "success",
        "created_at": "2026-09-02T10:00:00+00:00",
    },
    {
        "call_id": "c2",
        "duration": 1.0,
        "cost": 1,
        "assistant_name": "Bob",
        "script_id": "s1",
        "result": "appointment_booked",
        "created_at": "2026-09-01T09:00:00+00:00",
    },
    {
        "call_id": "c3",
        "duration": None,
        "cost": 3,
        "assistant_name": "Alice",
        "script_id": "s1",
        "result": "no_answer",
        "created_at": "2026-09-02T23:59:59+00:00",
    },
    {
        "call_id": "c4",
        "duration": 4.0,
        "cost": None,
        "assistant_name": None,
        "script_id": None,
        "result": None,
        "created_at": "2026-09-03T00:00:00+00:00",
    },
]


@pytest.fixture
def sample_rows() -> list[dict[str, Any]]:
    return [dict(row) for row in SAMPLE_ROWS]


@pytest.fixture
def calls(sample_rows):
    return build_fact_calls(sample_rows)


# ============================================================
# FAKE SUPABASE CLIENT
# ============================================================

class FakeQuery:
    """Chainable stand-in for a PostgREST request builder."""

    def __init__(self, client: "FakeSupabaseClient", table: str) -> None:
        self.client = client
        self.table = table
        self.calls: list[tuple] = []

    def select(self, columns: str) -> "FakeQuery":
        self.calls.append(("select", columns))
        return self

    def gte(self, column: str, value: str) -> "FakeQuery":
        self.calls.append(("gte", column, value))
        return self

    def lte(self, column: str, value: str) -> "FakeQuery":
        self.calls.append(("lte", column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.calls.append(("order", column, desc))
        return self

    async def execute(self) -> SimpleNamespace:
        if self.client.error is not None:
            raise self.client.error
        return SimpleNamespace(data=[dict(row) for row in self.client.rows])


class FakeChannel:
    def __init__(self, topic: str) -> None:
        self.topic = topic
        self.subscribed = False
        self.callback = None
        self.options: dict[str, Any] = {}

    def on_postgres_changes(self, event, callback, table="*", schema="public", filter=None):
        self.callback = callback
        self.options = {"event": event, "table": table, "schema": schema}
        return self

    async def subscribe(self, callback=None):
        self.subscribed = True
        return self


class FakeSupabaseClient:
    def __init__(self, rows=None, error: Exception | None = None) -> None:
        self.rows = list(rows or [])
        self.error = error
        self.queries: list[FakeQuery] = []
        self.channels: list[FakeChannel] = []
        self.removed: list[FakeChannel] = []

    def table(self, name: str) -> FakeQuery:
        query = FakeQuery(self, name)
        self.queries.append(query)
        return query

    def channel(self, topic: str) -> FakeChannel:
        channel = FakeChannel(topic)
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel: FakeChannel) -> None:
        self.removed.append(channel)

    async def remove_all_channels(self) -> None:
        self.removed.extend(c for c in self.channels if c not in self.removed)


@pytest.fixture
def fake_client(sample_rows) -> FakeSupabaseClient:
    return FakeSupabaseClient(rows=sample_rows)
