"""
Simulated data source for the Chani dashboard.

Generates realistic transcription rows shaped like the Supabase table and
serves them through InMemoryTranscriptionStore, which implements the same
fetch/changes interface as the real store. All values are synthetic.
"""

import asyncio
import logging
import uuid
from datetime import date
from typing import Any

import numpy as np
import pandas as pd

from .config import TRANSCRIPTIONS_TABLE
from .loaders.transcriptions import ChangeEvent, ChangeFeed
from .loaders.utils import end_of_day_bound, normalise_timestamp, to_date_string

logger = logging.getLogger(__name__)

# Billing rate used to derive synthetic costs (EUR per minute)
_COST_PER_MINUTE = 0.16

_ASSISTANTS = ["Chani Accueil", "Chani Relance", "Chani Prise de RDV"]

# script_id -> relative weight; None models calls placed outside any script
_SCRIPTS = {
    "script-rdv-v1": 0.35,
    "script-rdv-v2": 0.30,
    "script-relance": 0.25,
    None: 0.10,
}

_RESULTS = {
    "success": 0.25,
    "appointment_booked": 0.20,
    "no_answer": 0.20,
    "voicemail": 0.15,
    "not_interested": 0.15,
    None: 0.05,
}

_EPOCH = pd.Timestamp("1970-01-01", tz="UTC")


def _weighted_choice(rng: np.random.Generator, weights: dict) -> Any:
    options = list(weights)
    probs = np.array(list(weights.values()), dtype=float)
    return options[int(rng.choice(len(options), p=probs / probs.sum()))]


def generate_transcriptions(
    n_calls: int = 150,
    start_date: str = "2026-09-01",
    n_days: int = 30,
    seed: int = 42,
) -> list[dict[str, Any]]:
    """Generate simulated transcription rows.

    Calls are spread over n_days from start_date between 08:00 and 19:00
    UTC. About 5% of calls have no duration and cost, mimicking calls the
    telephony provider never billed.
    """
    rng = np.random.default_rng(seed)
    start = pd.Timestamp(start_date, tz="UTC")
    rows = []

    for _ in range(n_calls):
        created_at = start + pd.Timedelta(
            days=int(rng.integers(0, n_days)),
            hours=int(rng.integers(8, 19)),
            minutes=int(rng.integers(0, 60)),
            seconds=int(rng.integers(0, 60)),
        )

        duration = None
        cost = None
        if rng.random() >= 0.05:
            duration = round(float(rng.gamma(shape=2.0, scale=1.6)), 2)
            cost = round(duration * _COST_PER_MINUTE + float(rng.normal(0, 0.02)), 4)
            cost = max(cost, 0.0)

        rows.append({
            "call_id": str(uuid.UUID(bytes=rng.bytes(16), version=4)),
            "duration": duration,
            "cost": cost,
            "assistant_name": _ASSISTANTS[int(rng.integers(0, len(_ASSISTANTS)))],
            "script_id": _weighted_choice(rng, _SCRIPTS),
            "result": _weighted_choice(rng, _RESULTS),
            "created_at": created_at.isoformat(),
        })

    rows.sort(key=lambda row: row["created_at"])
    return rows


def _created_at(row: dict[str, Any]) -> pd.Timestamp:
    return normalise_timestamp(row.get("created_at")) or _EPOCH


class InMemoryTranscriptionStore:
    """List-backed stand-in for TranscriptionStore.

    `latency` delays every fetch, which lets callers observe the loading
    state and overlapping refetches.
    """

    def __init__(
        self,
        rows: list[dict[str, Any]] | None = None,
        table: str = TRANSCRIPTIONS_TABLE,
        latency: float = 0.0,
    ) -> None:
        self.rows = [dict(row) for row in rows] if rows is not None else generate_transcriptions()
        self.table = table
        self.latency = latency
        self.fetch_count = 0
        self._listeners: list[ChangeFeed] = []

    async def fetch(
        self,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        ascending: bool = True,
    ) -> list[dict[str, Any]]:
        """Select rows like the real store.

        The rows are read before the latency delay, so changes pushed while
        a fetch is pending are not in its response.
        """
        self.fetch_count += 1
        selected = [dict(row) for row in self.rows]

        start = to_date_string(start_date)
        if start:
            lower = pd.Timestamp(start, tz="UTC")
            selected = [row for row in selected if _created_at(row) >= lower]
        end = to_date_string(end_date)
        if end:
            upper = pd.Timestamp(end_of_day_bound(end), tz="UTC")
            selected = [row for row in selected if _created_at(row) <= upper]
        selected.sort(key=_created_at, reverse=not ascending)

        if self.latency:
            await asyncio.sleep(self.latency)
        return selected

    async def changes(self) -> ChangeFeed:
        async def unsubscribe() -> None:
            if feed in self._listeners:
                self._listeners.remove(feed)

        feed = ChangeFeed(on_close=unsubscribe)
        self._listeners.append(feed)
        return feed

    def _publish(self, event_type: str, record: dict[str, Any]) -> None:
        event = ChangeEvent(event_type=event_type, table=self.table, payload={"record": record})
        logger.info("Change received: %s on %s", event.event_type, event.table)
        for feed in self._listeners:
            feed.put(event)

    async def push(self, row: dict[str, Any]) -> None:
        """Insert a row and notify subscribers."""
        self.rows.append(dict(row))
        self._publish("INSERT", row)

    async def delete(self, call_id: str) -> None:
        """Remove the rows with call_id and notify subscribers."""
        removed = [row for row in self.rows if row.get("call_id") == call_id]
        self.rows = [row for row in self.rows if row.get("call_id") != call_id]
        for row in removed:
            self._publish("DELETE", row)

    async def close(self) -> None:
        for feed in list(self._listeners):
            await feed.aclose()
