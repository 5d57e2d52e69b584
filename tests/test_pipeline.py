from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from studytrack.days import to_epoch_ms
from studytrack.errors import NoPendingSaveError, RecordStoreError, SaveInFlightError
from studytrack.sessions import LocalHistory, SaveState, SessionSavePipeline
from studytrack.sessions.pipeline import TIMEOUT_MESSAGE
from studytrack.stats import RollupLedger, SessionAggregates, StreakEngine
from studytrack.storage import MemoryRecordStore, MemorySlotStore
from studytrack.timer import ActiveSession, ActiveSessionStore


NOW = datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)


class ScriptedStore(MemoryRecordStore):
    """Memory store whose inserts can fail, hang, or inspect the pipeline."""

    def __init__(self) -> None:
        super().__init__()
        self.failures: list[Exception] = []
        self.gate: asyncio.Event | None = None
        self.on_insert = None
        self.insert_calls: list[str] = []
        self.land_first = False

    async def insert_session(self, record):
        self.insert_calls.append(record.session_id)
        if self.on_insert is not None:
            self.on_insert(record)
        if self.land_first:
            await super().insert_session(record)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)
        return await super().insert_session(record)


class FailingStreaks:
    async def recompute(self, user_id):
        raise RecordStoreError("profiles offline")


def _session(minutes: float, *, paused_ms: int = 0) -> ActiveSession:
    start = NOW - timedelta(minutes=minutes) - timedelta(milliseconds=paused_ms)
    return ActiveSession(running=True, start_epoch_ms=to_epoch_ms(start), paused_ms=paused_ms)


def _build(store=None, *, timeout: float = 1.0, streaks=None):
    store = store or ScriptedStore()
    slots = MemorySlotStore()
    clock = lambda: NOW  # noqa: E731
    active_store = ActiveSessionStore(slots, clock=clock)
    ledger = RollupLedger(clock=clock)
    history = LocalHistory(slots, clock=clock)
    counter = iter(range(1, 100))
    pipeline = SessionSavePipeline(
        store=store,
        active_store=active_store,
        streaks=streaks or StreakEngine(store, clock=clock),
        ledger=ledger,
        history=history,
        min_session_minutes=10,
        timeout_seconds=timeout,
        id_factory=lambda: f"sess-{next(counter)}",
    )
    return pipeline, store, active_store, ledger, history


def test_no_session_is_a_no_op() -> None:
    pipeline, store, *_ = _build()

    outcome = asyncio.run(pipeline.stop_session(None, "user-a"))

    assert outcome.status == "no_session"
    assert store.insert_calls == []
    assert pipeline.state is SaveState.IDLE


def test_short_session_is_discarded_without_write(caplog) -> None:
    pipeline, store, active_store, ledger, _ = _build()
    session = _session(9.9)
    active_store.save(session)
    caplog.set_level("INFO", logger="studytrack.sessions.pipeline")

    outcome = asyncio.run(pipeline.stop_session(session, "user-a"))

    assert outcome.status == "too_short"
    assert outcome.retryable is False
    assert store.insert_calls == []
    assert pipeline.pending is None
    assert active_store.load() is None
    assert ledger.view().weekly_count == 0
    assert all(record.levelname == "INFO" for record in caplog.records)


def test_paused_time_does_not_count_towards_minimum() -> None:
    pipeline, store, *_ = _build()
    session = _session(8, paused_ms=5 * 60 * 1000)

    outcome = asyncio.run(pipeline.stop_session(session, "user-a"))

    assert outcome.status == "too_short"
    assert store.insert_calls == []


def test_minimum_length_session_is_saved_with_side_effects() -> None:
    pipeline, store, active_store, ledger, history = _build()
    session = _session(10)
    active_store.save(session)

    outcome = asyncio.run(pipeline.stop_session(session, "user-a"))

    assert outcome.status == "saved"
    assert outcome.duration_minutes == pytest.approx(10)
    assert outcome.record.session_id == "sess-1"
    assert outcome.record.end_time - outcome.record.start_time == timedelta(minutes=10)
    assert pipeline.pending is None
    assert pipeline.state is SaveState.SUCCEEDED
    assert active_store.load() is None

    view = ledger.view()
    assert view.today_minutes == pytest.approx(10)
    assert view.weekly_count == 1
    assert view.pending == 0

    assert outcome.streak.current_streak == 1
    profile = asyncio.run(store.get_profile("user-a"))
    assert profile.current_streak == 1
    assert profile.longest_streak == 1

    assert [entry["id"] for entry in history.recent()] == ["sess-1"]


def test_pending_save_exists_before_write_and_timer_is_stopped() -> None:
    pipeline, store, active_store, ledger, _ = _build()
    session = _session(25)
    active_store.save(session)
    seen: dict[str, object] = {}

    def inspect(record) -> None:
        seen["pending"] = pipeline.pending
        seen["saving"] = pipeline.saving
        seen["active"] = active_store.load()
        seen["tentative"] = ledger.view().weekly_count
        with pytest.raises(SaveInFlightError):
            pipeline.dismiss()

    store.on_insert = inspect
    asyncio.run(pipeline.stop_session(session, "user-a"))

    assert seen["pending"] is not None
    assert seen["pending"].payload.session_id == "sess-1"
    assert seen["saving"] is True
    assert seen["active"] is None
    assert seen["tentative"] == 1


def test_failed_save_keeps_payload_and_retry_reuses_it() -> None:
    pipeline, store, _, ledger, history = _build()
    store.failures.append(RecordStoreError("connection reset"))

    failed = asyncio.run(pipeline.stop_session(_session(30), "user-a"))

    assert failed.status == "failed"
    assert failed.retryable is True
    assert failed.extra["failure_kind"] == "error"
    assert "connection reset" in failed.message
    assert pipeline.state is SaveState.FAILED
    assert pipeline.pending.attempts == 1
    assert ledger.view().weekly_count == 0
    assert ledger.view().pending == 0
    assert history.entries() == []

    payload_before = pipeline.pending.payload
    saved = asyncio.run(pipeline.retry())

    assert saved.status == "saved"
    assert store.insert_calls == ["sess-1", "sess-1"]
    assert saved.record.session_id == payload_before.session_id
    assert saved.record.start_time == payload_before.start_time
    assert saved.duration_minutes == payload_before.duration_minutes
    assert pipeline.pending is None
    assert ledger.view().weekly_count == 1


def test_timeout_yields_single_failure_and_late_write_is_idempotent(caplog) -> None:
    store = ScriptedStore()
    pipeline, *_ = _build(store, timeout=0.05)
    caplog.set_level("INFO", logger="studytrack.sessions.race")

    async def scenario():
        store.gate = asyncio.Event()
        outcome = await pipeline.stop_session(_session(15), "user-a")
        assert outcome.status == "failed"
        assert outcome.message == TIMEOUT_MESSAGE
        assert outcome.extra["failure_kind"] == "timeout"
        assert pipeline.saving is False

        # The abandoned write lands after the caller gave up.
        store.gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        store.gate = None

        retried = await pipeline.retry()
        rows = await store.select_sessions(user_id="user-a")
        return retried, rows

    retried, rows = asyncio.run(scenario())

    assert retried.status == "saved"
    assert [row.session_id for row in rows] == ["sess-1"]
    assert any("completed after timeout" in record.message for record in caplog.records)


def test_dismiss_discards_pending_and_returns_to_idle(caplog) -> None:
    pipeline, store, *_ = _build()
    store.failures.append(RecordStoreError("boom"))
    asyncio.run(pipeline.stop_session(_session(12), "user-a"))
    caplog.set_level("WARNING", logger="studytrack.sessions.pipeline")

    dismissed = pipeline.dismiss()

    assert dismissed.session_id == "sess-1"
    assert pipeline.pending is None
    assert pipeline.state is SaveState.IDLE
    assert any(record.message == "Discarded unsaved session" for record in caplog.records)
    with pytest.raises(NoPendingSaveError):
        asyncio.run(pipeline.retry())
    assert pipeline.dismiss() is None


def test_new_stop_replaces_pending_save(caplog) -> None:
    pipeline, store, *_ = _build()
    store.failures.extend([RecordStoreError("one"), RecordStoreError("two")])
    caplog.set_level("WARNING", logger="studytrack.sessions.pipeline")

    asyncio.run(pipeline.stop_session(_session(12), "user-a"))
    asyncio.run(pipeline.stop_session(_session(20), "user-a"))

    assert pipeline.pending.payload.session_id == "sess-2"
    assert any(
        record.message == "Replacing unsaved session with a newer one" for record in caplog.records
    )


def test_streak_failure_does_not_fail_committed_save(caplog) -> None:
    pipeline, store, _, ledger, _ = _build(streaks=FailingStreaks())
    caplog.set_level("WARNING", logger="studytrack.sessions.pipeline")

    outcome = asyncio.run(pipeline.stop_session(_session(40), "user-a"))

    assert outcome.status == "saved"
    assert outcome.streak is None
    assert ledger.view().weekly_minutes == pytest.approx(40)
    assert any(record.message == "Streak update failed after save" for record in caplog.records)


def test_stop_while_saving_is_rejected() -> None:
    pipeline, store, *_ = _build()
    errors: list[Exception] = []

    async def scenario():
        store.gate = asyncio.Event()
        first = asyncio.ensure_future(pipeline.stop_session(_session(15), "user-a"))
        await asyncio.sleep(0)
        try:
            await pipeline.stop_session(_session(20), "user-a")
        except SaveInFlightError as exc:
            errors.append(exc)
        store.gate.set()
        return await first

    outcome = asyncio.run(scenario())

    assert outcome.status == "saved"
    assert len(errors) == 1
    assert store.insert_calls == ["sess-1"]


def test_stats_refresh_during_save_does_not_double_count() -> None:
    store = ScriptedStore()
    store.land_first = True
    pipeline, _, _, ledger, _ = _build(store)
    aggregates = SessionAggregates(store, clock=lambda: NOW)

    async def scenario():
        store.gate = asyncio.Event()
        saving = asyncio.ensure_future(pipeline.stop_session(_session(30), "user-a"))
        while not store.insert_calls:
            await asyncio.sleep(0)
        # The row is stored but the reply has not arrived yet.
        snapshot = await aggregates.snapshot("user-a")
        ledger.reconcile(snapshot)
        store.gate.set()
        outcome = await saving
        return outcome, snapshot

    outcome, snapshot = asyncio.run(scenario())

    assert outcome.status == "saved"
    assert snapshot.session_ids == {"sess-1"}
    view = ledger.view()
    assert view.weekly_count == 1
    assert view.weekly_minutes == pytest.approx(30)
    assert view.today_minutes == pytest.approx(30)
    assert view.pending == 0
