"""
Record store client for the Supabase transcriptions table.

Reads go through PostgREST: select-all, optionally bounded by created_at,
ordered by created_at. Change notifications come from a Realtime
postgres_changes channel named "public:<table>" and are exposed as an
ChangeFeed of ChangeEvent. Event payloads are only logged; receiving
one is the signal to refetch.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from ..config import (
    REALTIME_EVENT,
    REALTIME_SCHEMA,
    TRANSCRIPTIONS_TABLE,
    Settings,
)
from .utils import end_of_day_bound, to_date_string

logger = logging.getLogger(__name__)


class FetchFailure(Exception):
    """A read against the transcriptions table failed (network or query error)."""


@dataclass(frozen=True)
class ChangeEvent:
    """One notification from the change feed."""

    event_type: str
    table: str
    payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: Any, table: str) -> "ChangeEvent":
        """Build an event from a Realtime callback payload.

        Realtime client versions nest the change under "data" or deliver it
        flat, and name the kind "type" or "eventType".
        """
        if not isinstance(payload, dict):
            return cls(event_type="UNKNOWN", table=table)
        body = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        event_type = body.get("type") or body.get("eventType") or "UNKNOWN"
        return cls(
            event_type=str(event_type).upper(),
            table=str(body.get("table") or table),
            payload=payload,
        )


_FEED_CLOSED = object()


class ChangeFeed:
    """Async iterator over change events from an already-open subscription.

    Events put before the first read are buffered, so a caller can
    subscribe, fetch, and then start reading without missing changes.
    aclose() unsubscribes and ends any pending read.
    """

    def __init__(self, on_close: Callable[[], Awaitable[None]] | None = None) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._on_close = on_close
        self.closed = False

    def put(self, event: ChangeEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    def __aiter__(self) -> "ChangeFeed":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is _FEED_CLOSED:
            raise StopAsyncIteration
        return event

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_FEED_CLOSED)
        if self._on_close is not None:
            await self._on_close()


class TranscriptionSource(Protocol):
    """What the synchroniser needs from a record store."""

    async def fetch(
        self,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        ascending: bool = True,
    ) -> list[dict[str, Any]]: ...

    async def changes(self) -> ChangeFeed: ...

    async def close(self) -> None: ...


class TranscriptionStore:
    """Supabase-backed reader for the transcriptions table."""

    def __init__(self, client: AsyncClient, table: str = TRANSCRIPTIONS_TABLE) -> None:
        self.client = client
        self.table = table

    @property
    def channel_name(self) -> str:
        return f"{REALTIME_SCHEMA}:{self.table}"

    def build_query(
        self,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        ascending: bool = True,
    ):
        """Select-all query with the optional inclusive created_at range."""
        query = self.client.table(self.table).select("*")

        start = to_date_string(start_date)
        if start:
            query = query.gte("created_at", start)

        end = to_date_string(end_date)
        if end:
            query = query.lte("created_at", end_of_day_bound(end))

        return query.order("created_at", desc=not ascending)

    async def fetch(
        self,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        ascending: bool = True,
    ) -> list[dict[str, Any]]:
        """Fetch all rows in the range.

        Raises FetchFailure on any backend or transport error.
        """
        query = self.build_query(start_date, end_date, ascending)
        try:
            response = await query.execute()
        except (APIError, httpx.HTTPError) as exc:
            raise FetchFailure(f"Error fetching {self.table}: {exc}") from exc

        rows = list(response.data or [])
        logger.info(
            "Fetched %d rows from %s (start=%s, end=%s)",
            len(rows), self.table, start_date, end_date,
        )
        return rows

    async def changes(self) -> ChangeFeed:
        """Subscribe to insert/update/delete events on the table.

        The channel is subscribed before this returns; closing the feed
        removes it.
        """
        channel = self.client.channel(self.channel_name)

        async def remove_channel() -> None:
            await self.client.remove_channel(channel)
            logger.info("Removed channel %s", self.channel_name)

        feed = ChangeFeed(on_close=remove_channel)

        def on_change(payload: Any) -> None:
            event = ChangeEvent.from_payload(payload, self.table)
            logger.info("Change received: %s on %s", event.event_type, event.table)
            feed.put(event)

        channel.on_postgres_changes(
            event=REALTIME_EVENT,
            schema=REALTIME_SCHEMA,
            table=self.table,
            callback=on_change,
        )
        await channel.subscribe()
        logger.info("Subscribed to %s", self.channel_name)
        return feed

    async def close(self) -> None:
        await self.client.remove_all_channels()


async def connect_store(settings: Settings) -> TranscriptionStore:
    """Create an async Supabase client and wrap it in a TranscriptionStore."""
    if not settings.has_backend:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must both be set")
    client = await acreate_client(settings.supabase_url, settings.supabase_key)
    logger.info("Connected to Supabase at %s", settings.supabase_url)
    return TranscriptionStore(client, settings.transcriptions_table)
