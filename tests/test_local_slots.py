from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from studytrack.errors import LocalPersistenceError
from studytrack.sessions import LocalHistory
from studytrack.storage import FileSlotStore, MemorySlotStore, SessionRecord


NOW = datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)


def _record(session_id: str, minutes: float = 30) -> SessionRecord:
    return SessionRecord(
        session_id=session_id,
        user_id="user-a",
        start_time=NOW,
        end_time=NOW + timedelta(minutes=minutes),
        duration_minutes=minutes,
    )


def test_file_slots_round_trip(tmp_path: Path) -> None:
    slots = FileSlotStore(tmp_path / "state")

    assert slots.get("activeSession") is None
    slots.set("activeSession", '{"running": true}')
    assert (tmp_path / "state" / "activeSession.json").read_text(encoding="utf-8") == '{"running": true}'
    assert slots.get("activeSession") == '{"running": true}'

    slots.remove("activeSession")
    slots.remove("activeSession")
    assert slots.get("activeSession") is None
    assert not list((tmp_path / "state").glob("*.tmp"))


def test_file_slots_reject_path_like_names(tmp_path: Path) -> None:
    slots = FileSlotStore(tmp_path)

    with pytest.raises(LocalPersistenceError):
        slots.set("../escape", "{}")


def test_file_slots_wrap_os_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    slots = FileSlotStore(blocker)

    with pytest.raises(LocalPersistenceError):
        slots.set("activeSession", "{}")


def test_history_appends_newest_first_and_dedupes() -> None:
    history = LocalHistory(MemorySlotStore(), clock=lambda: NOW)

    assert history.append(_record("s1", 10))
    assert history.append(_record("s2", 20))
    assert history.append(_record("s1", 10))

    recent = history.recent()
    assert [entry["id"] for entry in recent] == ["s1", "s2"]
    assert recent[1]["duration_minutes"] == 20
    assert recent[0]["saved_at"] == NOW.isoformat()


def test_history_is_bounded() -> None:
    history = LocalHistory(MemorySlotStore(), limit=3, clock=lambda: NOW)
    for index in range(5):
        history.append(_record(f"s{index}"))

    assert [entry["id"] for entry in history.entries()] == ["s2", "s3", "s4"]
    assert len(history.recent(2)) == 2
    assert history.recent(0) == []


def test_history_tolerates_corrupt_slot(caplog) -> None:
    slots = MemorySlotStore({"studySessions": "not json"})
    history = LocalHistory(slots, clock=lambda: NOW)
    caplog.set_level("WARNING", logger="studytrack.sessions.history")

    assert history.entries() == []
    assert history.append(_record("s1"))
    assert json.loads(slots.slots["studySessions"])[0]["id"] == "s1"
    assert any(record.message == "Ignoring corrupt session history" for record in caplog.records)

    slots.set("studySessions", json.dumps({"unexpected": "shape"}))
    assert history.entries() == []
