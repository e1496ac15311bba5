import asyncio
import logging
import time

import pytest

from chani_dashboard.loaders import ChangeEvent, ChangeFeed, FetchFailure
from chani_dashboard.simulator import InMemoryTranscriptionStore
from chani_dashboard.sync import (
    LiveTranscriptions,
    RecordState,
    TranscriptionSync,
    begin_fetch,
    complete_fetch,
    fail_fetch,
)

class ScriptedSource:
    """Source whose fetches return (delay, rows or exception) steps in order."""

    def __init__(self, steps):
        self.steps = list(steps)
        self.fetches = []

    async def fetch(self, start_date=None, end_date=None, ascending=True):
        self.fetches.append((start_date, end_date, ascending))
        delay, outcome = self.steps.pop(0)
        await asyncio.sleep(delay)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def changes(self):
        return ChangeFeed()

    async def close(self):
        pass

async def _events(*types):
    for event_type in types:
        yield ChangeEvent(event_type, "transcriptions")

async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)

def test_state_update_functions(calls):
    state = begin_fetch(RecordState())
    assert state.loading

    done = complete_fetch(state, calls)
    assert not done.loading
    assert done.revision == 1
    assert len(done.records) == 4

    failed = fail_fetch(begin_fetch(done), FetchFailure("boom"))
    assert not failed.loading
    assert failed.records is done.records
    assert failed.last_error == "boom"

@pytest.mark.asyncio
async def test_refresh_replaces_records(sample_rows):
    sync = TranscriptionSync(InMemoryTranscriptionStore(sample_rows))
    assert sync.state.awaiting_first_fetch

    state = await sync.refresh()

    assert state.revision == 1
    assert not state.loading
    assert not state.awaiting_first_fetch
    assert state.records["call_id"].tolist() == ["c2", "c1", "c3", "c4"]

@pytest.mark.asyncio
async def test_refresh_passes_date_range_and_order(sample_rows):
    source = ScriptedSource([(0, sample_rows)])
    sync = TranscriptionSync(source, "2026-09-01", "2026-09-02", ascending=False)

    await sync.refresh()
    assert source.fetches == [("2026-09-01", "2026-09-02", False)]

@pytest.mark.asyncio
async def test_failed_fetch_keeps_previous_records(sample_rows):
    source = ScriptedSource([(0, sample_rows), (0, FetchFailure("network down"))])
    sync = TranscriptionSync(source)

    first = await sync.refresh()
    second = await sync.refresh()

    assert second.records is first.records
    assert second.revision == 1
    assert second.last_error == "network down"
    assert not second.loading

@pytest.mark.asyncio
async def test_failed_first_fetch_leaves_empty_table():
    sync = TranscriptionSync(ScriptedSource([(0, FetchFailure("down"))]))
    state = await sync.refresh()

    assert state.records.empty
    assert not state.awaiting_first_fetch

@pytest.mark.asyncio
async def test_unexpected_fetch_error_clears_loading(sample_rows):
    source = ScriptedSource([(0, sample_rows), (0, RuntimeError("socket closed"))])
    sync = TranscriptionSync(source)

    first = await sync.refresh()
    with pytest.raises(RuntimeError):
        await sync.refresh()

    assert not sync.state.loading
    assert sync.state.records is first.records
    assert sync.state.last_error == "socket closed"

@pytest.mark.asyncio
async def test_failed_refetch_after_change_event_is_logged(caplog):
    sync = TranscriptionSync(ScriptedSource([(0, RuntimeError("socket closed"))]))

    with caplog.at_level(logging.ERROR, logger="chani_dashboard.sync"):
        await sync.watch(_events("INSERT"))
        await sync.drain()

    assert not sync.state.loading
    assert sync.state.revision == 0
    assert "Refetch failed" in caplog.text

@pytest.mark.asyncio
async def test_loading_while_fetch_is_suspended(sample_rows):
    sync = TranscriptionSync(InMemoryTranscriptionStore(sample_rows, latency=0.05))
    task = asyncio.create_task(sync.refresh())
    await asyncio.sleep(0)

    assert sync.state.loading
    await task
    assert not sync.state.loading


@pytest.mark.asyncio
async def test_not_settled_during_change_triggered_refetch(sample_rows):
    sync = TranscriptionSync(InMemoryTranscriptionStore(sample_rows, latency=0.05))
    assert not sync.state.settled

    await sync.refresh()
    assert sync.state.settled

    await sync.watch(_events("UPDATE"))
    await asyncio.sleep(0)
    assert sync.state.loading
    assert not sync.state.settled

    await sync.drain()
    assert sync.state.settled
    assert sync.state.revision == 2

@pytest.mark.asyncio
async def test_each_change_event_triggers_one_refetch(sample_rows):
    store = InMemoryTranscriptionStore(sample_rows)
    sync = TranscriptionSync(store)

    await sync.watch(_events("INSERT", "UPDATE", "DELETE"))
    await sync.drain()

    assert store.fetch_count == 3
    assert sync.state.revision == 3

@pytest.mark.asyncio
async def test_overlapping_refetches_last_response_wins(sample_rows):
    slow_old = sample_rows[:1]
    fast_new = sample_rows
    source = ScriptedSource([(0.05, slow_old), (0, fast_new)])
    sync = TranscriptionSync(source)

    await sync.watch(_events("INSERT", "INSERT"))
    await sync.drain()

    # The slow first response resolved last and overwrote the newer one
    assert sync.state.records["call_id"].tolist() == ["c1"]
    assert sync.state.revision == 2
    assert not sync.state.loading

@pytest.mark.asyncio
async def test_run_follows_change_feed(sample_rows):
    store = InMemoryTranscriptionStore(sample_rows)
    sync = TranscriptionSync(store)
    seen = []
    sync.add_listener(seen.append)

    task = asyncio.create_task(sync.run())
    await _wait_for(lambda: sync.state.revision == 1 and store._listeners)

    await store.push({"call_id": "c5", "cost": 2.0, "created_at": "2026-09-04T12:00:00Z"})
    await _wait_for(lambda: sync.state.revision == 2)

    assert sync.state.records["call_id"].iloc[-1] == "c5"
    assert [state.revision for state in seen] == [1, 2]

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert store._listeners == []

@pytest.mark.asyncio
async def test_run_catches_changes_made_during_initial_fetch(sample_rows):
    # Rows are read before the delay, so the first response misses c5
    store = InMemoryTranscriptionStore(sample_rows, latency=0.05)
    sync = TranscriptionSync(store)

    task = asyncio.create_task(sync.run())
    await _wait_for(lambda: sync.state.loading)
    assert store._listeners

    await store.push({"call_id": "c5", "cost": 2.0, "created_at": "2026-09-04T12:00:00Z"})
    await _wait_for(lambda: "c5" in sync.state.records["call_id"].tolist())

    assert store.fetch_count == 2
    assert sync.state.revision == 2

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

@pytest.mark.asyncio
async def test_run_ends_when_source_closes(sample_rows):
    store = InMemoryTranscriptionStore(sample_rows)
    sync = TranscriptionSync(store)

    task = asyncio.create_task(sync.run())
    await _wait_for(lambda: sync.state.revision == 1)

    await store.close()
    await asyncio.wait_for(task, timeout=2)
    assert store._listeners == []

def test_live_transcriptions_runs_on_background_loop(sample_rows):
    store = InMemoryTranscriptionStore(sample_rows)

    async def factory():
        return store

    live = LiveTranscriptions(factory)
    live.start()
    try:
        deadline = time.monotonic() + 5
        while live.snapshot().revision < 1:
            assert time.monotonic() < deadline
            time.sleep(0.01)

        state = live.refresh().result(timeout=5)
        assert state.revision == 2
        assert not state.loading
        assert state.records["call_id"].tolist() == ["c2", "c1", "c3", "c4"]
        assert live.snapshot() is state
    finally:
        live.stop()
