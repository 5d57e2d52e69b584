from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from studytrack.errors import ChromaUnavailableError, RecordStoreError
from studytrack.identity import Identity, StaticIdentityProvider
from studytrack.stats import LeaderboardBuilder
from studytrack.stats.leaderboard import UNKNOWN_EMAIL
from studytrack.storage import MemoryRecordStore, SessionRecord


NOW = datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)


class ChromaProfilesDownStore(MemoryRecordStore):
    async def select_profiles(self, user_ids):
        raise ChromaUnavailableError("chromadb package is not installed")


class ProfilesDownStore(MemoryRecordStore):
    async def select_profiles(self, user_ids):
        raise RecordStoreError("user_profiles unavailable")


def _record(session_id: str, user_id: str, minutes: float, *, days_ago: int = 0) -> SessionRecord:
    start = NOW - timedelta(days=days_ago)
    return SessionRecord(
        session_id=session_id,
        user_id=user_id,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        duration_minutes=minutes,
    )


def _seed(store: MemoryRecordStore, records, profiles=None) -> MemoryRecordStore:
    async def _insert():
        for record in records:
            await store.insert_session(record)
        for user_id, changes in (profiles or {}).items():
            await store.upsert_profile(user_id, changes)

    asyncio.run(_insert())
    return store


def test_ranks_by_weekly_minutes() -> None:
    store = _seed(
        MemoryRecordStore(),
        [
            _record("a1", "A", 60),
            _record("a2", "A", 60, days_ago=3),
            _record("b1", "B", 45),
            _record("c1", "C", 200, days_ago=6),
            _record("old", "B", 500, days_ago=8),
        ],
        {
            "A": {"email": "a@example.com", "current_streak": 2},
            "B": {"email": "b@example.com", "current_streak": 1, "display_name": "Bee"},
            "C": {"email": "c@example.com", "current_streak": 0},
        },
    )
    builder = LeaderboardBuilder(store, clock=lambda: NOW)

    entries = asyncio.run(builder.build())

    assert [entry.user_id for entry in entries] == ["C", "A", "B"]
    assert [entry.rank for entry in entries] == [1, 2, 3]
    assert [entry.weekly_minutes for entry in entries] == [200, 120, 45]
    assert entries[1].current_streak == 2
    assert entries[2].label == "Bee"
    assert entries[0].label == "c"


def test_ties_break_on_user_id_and_size_limits() -> None:
    records = [_record(f"s{index}", f"user-{index:02d}", 30) for index in range(12)]
    records.append(_record("top", "user-99", 31))
    store = _seed(MemoryRecordStore(), records)
    directory = [Identity(id=f"user-{index:02d}", email=f"u{index}@example.com") for index in range(100)]
    builder = LeaderboardBuilder(
        store,
        identity=StaticIdentityProvider(directory=directory),
        clock=lambda: NOW,
    )

    entries = asyncio.run(builder.build())

    assert len(entries) == 10
    assert entries[0].user_id == "user-99"
    assert [entry.user_id for entry in entries[1:4]] == ["user-00", "user-01", "user-02"]
    assert entries[-1].rank == 10


def test_no_sessions_gives_empty_board() -> None:
    assert asyncio.run(LeaderboardBuilder(MemoryRecordStore(), clock=lambda: NOW).build()) == []


def test_missing_profile_keeps_user_with_directory_email() -> None:
    store = _seed(
        MemoryRecordStore(),
        [_record("a", "A", 20), _record("b", "B", 30)],
        {"A": {"email": "a@example.com", "current_streak": 5}},
    )
    identity = StaticIdentityProvider(directory=[Identity(id="B", email="bee@example.com")])

    entries = asyncio.run(LeaderboardBuilder(store, identity=identity, clock=lambda: NOW).build())

    by_id = {entry.user_id: entry for entry in entries}
    assert by_id["B"].user_email == "bee@example.com"
    assert by_id["B"].current_streak == 0
    assert by_id["A"].current_streak == 5


def test_unresolvable_email_is_unknown() -> None:
    store = _seed(MemoryRecordStore(), [_record("a", "A", 20)])

    entries = asyncio.run(
        LeaderboardBuilder(store, identity=StaticIdentityProvider(), clock=lambda: NOW).build()
    )

    assert entries[0].user_email == UNKNOWN_EMAIL
    assert entries[0].as_dict()["current_streak"] == 0


def test_profile_outage_falls_back_to_directory() -> None:
    store = _seed(ProfilesDownStore(), [_record("a", "A", 20)])
    identity = StaticIdentityProvider(directory=[Identity(id="A", email="a@example.com")])

    entries = asyncio.run(LeaderboardBuilder(store, identity=identity, clock=lambda: NOW).build())

    assert entries[0].user_email == "a@example.com"
    assert entries[0].current_streak == 0


def test_profile_and_directory_outage_raises() -> None:
    store = _seed(ProfilesDownStore(), [_record("a", "A", 20)])

    with pytest.raises(RecordStoreError):
        asyncio.run(LeaderboardBuilder(store, clock=lambda: NOW).build())


def test_unavailable_profile_backend_falls_back_to_directory() -> None:
    store = _seed(ChromaProfilesDownStore(), [_record("a", "A", 20)])
    identity = StaticIdentityProvider(directory=[Identity(id="A", email="a@example.com")])

    entries = asyncio.run(LeaderboardBuilder(store, identity=identity, clock=lambda: NOW).build())

    assert entries[0].user_email == "a@example.com"
    assert entries[0].current_streak == 0
