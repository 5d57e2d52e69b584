"""Capability interface the core expects from a record store."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Protocol

from .models import SessionRecord, UserProfile


class RecordStore(Protocol):
    """Async access to the ``study_sessions`` and ``user_profiles`` collections.

    Implementations raise :class:`~studytrack.errors.RecordStoreError` when the
    backend fails. ``insert_session`` is idempotent on ``session_id``: inserting
    an id that already exists returns the stored row unchanged.
    """

    async def insert_session(self, record: SessionRecord) -> SessionRecord:
        ...

    async def select_sessions(
        self,
        *,
        user_id: str | None = None,
        since: datetime | None = None,
    ) -> list[SessionRecord]:
        ...

    async def get_profile(self, user_id: str) -> UserProfile | None:
        ...

    async def select_profiles(self, user_ids: Iterable[str]) -> list[UserProfile]:
        ...

    async def upsert_profile(self, user_id: str, changes: dict[str, Any]) -> UserProfile:
        ...

    async def update_profile(self, user_id: str, changes: dict[str, Any]) -> UserProfile | None:
        ...


__all__ = ["RecordStore"]
