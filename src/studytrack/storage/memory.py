"""In-process record store."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from .models import SessionRecord, UserProfile


class MemoryRecordStore:
    """Keeps sessions and profiles in dictionaries; same contract as the Chroma store."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionRecord] = {}
        self._profiles: dict[str, UserProfile] = {}

    async def insert_session(self, record: SessionRecord) -> SessionRecord:
        existing = self._sessions.get(record.session_id)
        if existing is not None:
            return existing
        self._sessions[record.session_id] = record
        return record

    async def select_sessions(
        self,
        *,
        user_id: str | None = None,
        since: datetime | None = None,
    ) -> list[SessionRecord]:
        records = [
            record
            for record in self._sessions.values()
            if (user_id is None or record.user_id == user_id)
            and (since is None or record.start_time >= since)
        ]
        records.sort(key=lambda record: record.start_time, reverse=True)
        return records

    async def get_profile(self, user_id: str) -> UserProfile | None:
        return self._profiles.get(user_id)

    async def select_profiles(self, user_ids: Iterable[str]) -> list[UserProfile]:
        return [self._profiles[user_id] for user_id in user_ids if user_id in self._profiles]

    async def upsert_profile(self, user_id: str, changes: dict[str, Any]) -> UserProfile:
        current = self._profiles.get(user_id) or UserProfile(user_id=user_id)
        profile = current.merged(changes)
        self._profiles[user_id] = profile
        return profile

    async def update_profile(self, user_id: str, changes: dict[str, Any]) -> UserProfile | None:
        if user_id not in self._profiles:
            return None
        return await self.upsert_profile(user_id, changes)


__all__ = ["MemoryRecordStore"]
