"""
Record synchronisation: the call table held by a view, refreshed wholesale
from a TranscriptionSource on demand and on every change event.

RecordState is immutable; TranscriptionSync swaps in a new state after each
fetch. Refetches triggered by overlapping events run concurrently and are
never cancelled, so whichever response resolves last wins. A failed fetch
is logged and leaves the previous records in place.
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Awaitable, Callable
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from datetime import date

import pandas as pd

from .loaders.transcriptions import ChangeEvent, FetchFailure, TranscriptionSource
from .loaders.utils import to_date_string
from .transforms import build_fact_calls, empty_calls_frame

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class RecordState:
    """Snapshot of what a view knows about the transcriptions table."""

    records: pd.DataFrame = field(default_factory=empty_calls_frame)
    start_date: str | None = None
    end_date: str | None = None
    in_flight: int = 0
    revision: int = 0
    last_error: str | None = None

    @property
    def loading(self) -> bool:
        return self.in_flight > 0

    @property
    def awaiting_first_fetch(self) -> bool:
        return self.revision == 0 and self.last_error is None

    @property
    def settled(self) -> bool:
        """No fetch pending and at least one has ended; derived data may be shown."""
        return not self.loading and not self.awaiting_first_fetch


def begin_fetch(state: RecordState) -> RecordState:
    return replace(state, in_flight=state.in_flight + 1)


def complete_fetch(state: RecordState, records: pd.DataFrame) -> RecordState:
    return replace(
        state,
        records=records,
        in_flight=max(state.in_flight - 1, 0),
        revision=state.revision + 1,
        last_error=None,
    )


def fail_fetch(state: RecordState, error: Exception) -> RecordState:
    return replace(
        state,
        in_flight=max(state.in_flight - 1, 0),
        last_error=str(error) or type(error).__name__,
    )


def with_date_range(
    state: RecordState,
    start_date: date | str | None,
    end_date: date | str | None,
) -> RecordState:
    return replace(
        state,
        start_date=to_date_string(start_date),
        end_date=to_date_string(end_date),
    )


class TranscriptionSync:
    """Keeps a RecordState in step with a TranscriptionSource."""

    def __init__(
        self,
        source: TranscriptionSource,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        ascending: bool = True,
    ) -> None:
        self.source = source
        self.ascending = ascending
        self.state = with_date_range(RecordState(), start_date, end_date)
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Callable[[RecordState], None]] = []

    def add_listener(self, listener: Callable[[RecordState], None]) -> None:
        """Call `listener` with the new state after every completed fetch."""
        self._listeners.append(listener)

    async def refresh(self) -> RecordState:
        """Refetch the whole table for the current date range.

        A FetchFailure is logged and recorded on the state. Any other error
        is recorded and re-raised. Either way the fetch stops counting as
        in flight.
        """
        start_date, end_date = self.state.start_date, self.state.end_date
        self.state = begin_fetch(self.state)
        try:
            rows = await self.source.fetch(start_date, end_date, ascending=self.ascending)
            records = build_fact_calls(rows)
        except FetchFailure as exc:
            logger.exception("Error fetching transcriptions")
            self.state = fail_fetch(self.state, exc)
        except BaseException as exc:
            self.state = fail_fetch(self.state, exc)
            raise
        else:
            self.state = complete_fetch(self.state, records)

        for listener in self._listeners:
            listener(self.state)
        return self.state

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Refetch failed", exc_info=task.exception())

    async def watch(self, events: AsyncIterator[ChangeEvent]) -> None:
        """Start one refetch per change event until the feed ends."""
        async for event in events:
            logger.info("Refetching after %s on %s", event.event_type, event.table)
            task = asyncio.create_task(self.refresh())
            self._tasks.add(task)
            task.add_done_callback(self._forget)

    async def drain(self) -> None:
        """Wait for refetches that are still in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self) -> None:
        """Subscribe, make the initial fetch, then follow the change feed.

        The subscription is opened first so that changes made while the
        initial fetch is pending still trigger a refetch.
        """
        events = await self.source.changes()
        try:
            await self.refresh()
            await self.watch(events)
        finally:
            await events.aclose()


class LiveTranscriptions:
    """Runs a TranscriptionSync on a private event loop in a daemon thread.

    For hosts that cannot keep an event loop alive themselves, such as a
    Streamlit script that is re-executed on every interaction. The host
    reads immutable snapshots and schedules refreshes.
    """

    def __init__(
        self,
        source_factory: Callable[[], Awaitable[TranscriptionSource]],
        ascending: bool = True,
    ) -> None:
        self._source_factory = source_factory
        self._ascending = ascending
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name="live-transcriptions",
            daemon=True,
        )
        self._run_task: asyncio.Task | None = None
        self.source: TranscriptionSource | None = None
        self.sync: TranscriptionSync | None = None

    def start(self, timeout: float = 30.0) -> None:
        self._thread.start()
        self._submit(self._start()).result(timeout)

    async def _start(self) -> None:
        self.source = await self._source_factory()
        self.sync = TranscriptionSync(self.source, ascending=self._ascending)
        self._run_task = asyncio.create_task(self.sync.run())

    def _submit(self, coro: Awaitable) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def snapshot(self) -> RecordState:
        if self.sync is None:
            return RecordState()
        return self.sync.state

    def refresh(self) -> Future:
        """Schedule a refetch; the Future resolves to the new state."""
        return self._submit(self.sync.refresh())

    def stop(self, timeout: float = 10.0) -> None:
        async def _shutdown() -> None:
            if self._run_task is not None:
                self._run_task.cancel()
                try:
                    await self._run_task
                except asyncio.CancelledError:
                    pass
            if self.source is not None:
                await self.source.close()

        self._submit(_shutdown()).result(timeout)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        logger.info("Live transcriptions stopped")
