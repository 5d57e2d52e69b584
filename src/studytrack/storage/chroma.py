"""Chroma-based record store."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from ..errors import ChromaUnavailableError, RecordStoreError
from .models import SessionRecord, UserProfile


class CollectionProtocol(Protocol):
    """Protocol for the minimal Chroma collection API used by StudyTrack."""

    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def upsert(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        ids: Iterable[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    """Protocol for the minimal Chroma client API used by StudyTrack."""

    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


def _where(clauses: list[dict[str, Any]]) -> dict[str, Any] | None:
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _clean_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    # Chroma metadata values must be scalars.
    return {key: value for key, value in metadata.items() if value is not None}


class ChromaRecordStore:
    """Persist study sessions and user profiles in two Chroma collections.

    Chroma's client is synchronous, so every call is pushed onto a worker
    thread; the event loop stays free to run the save timeout.
    """

    def __init__(
        self,
        path: Path,
        *,
        sessions_collection: str = "study_sessions",
        profiles_collection: str = "user_profiles",
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._sessions_name = sessions_collection
        self._profiles_name = profiles_collection
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._client: ClientProtocol | None = None
        self._collections: dict[str, CollectionProtocol] = {}

    def _default_client_factory(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise ChromaUnavailableError(
                "chromadb package is not installed; install studytrack with persistence extras"
            ) from exc

        return chromadb.PersistentClient(path=str(self._path))

    def _ensure_collection(self, name: str) -> CollectionProtocol:
        if name not in self._collections:
            client = self._client or self._client_factory()
            self._client = client
            self._collections[name] = client.get_or_create_collection(name)
        return self._collections[name]

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except (ChromaUnavailableError, RecordStoreError):
            raise
        except Exception as exc:
            raise RecordStoreError(f"Chroma call {fn.__name__} failed: {exc}") from exc

    @staticmethod
    def _documents(result: dict[str, list[Any]]) -> list[dict[str, Any]]:
        return [json.loads(document) for document in result.get("documents", []) or []]

    def ping(self) -> bool:
        """Verify that both collections can be obtained."""

        self._ensure_collection(self._sessions_name)
        self._ensure_collection(self._profiles_name)
        return True

    def _insert_session(self, record: SessionRecord) -> SessionRecord:
        collection = self._ensure_collection(self._sessions_name)
        existing = self._documents(collection.get(ids=[record.session_id]))
        if existing:
            return SessionRecord.from_document(existing[0])

        document = record.to_document()
        document["created_at"] = self._clock().isoformat()
        collection.add(
            documents=[json.dumps(document)],
            metadatas=[
                {
                    "user_id": record.user_id,
                    "start_ts": record.start_time.timestamp(),
                    "duration_minutes": record.duration_minutes,
                }
            ],
            ids=[record.session_id],
        )
        return record

    def _select_sessions(self, user_id: str | None, since: datetime | None) -> list[SessionRecord]:
        collection = self._ensure_collection(self._sessions_name)
        clauses: list[dict[str, Any]] = []
        if user_id is not None:
            clauses.append({"user_id": user_id})
        if since is not None:
            clauses.append({"start_ts": {"$gte": since.timestamp()}})
        result = collection.get(where=_where(clauses))
        records = [SessionRecord.from_document(doc) for doc in self._documents(result)]
        records.sort(key=lambda record: record.start_time, reverse=True)
        return records

    def _select_profiles(self, user_ids: list[str]) -> list[UserProfile]:
        if not user_ids:
            return []
        collection = self._ensure_collection(self._profiles_name)
        result = collection.get(ids=user_ids)
        return [UserProfile.from_document(doc) for doc in self._documents(result)]

    def _write_profile(self, profile: UserProfile) -> UserProfile:
        collection = self._ensure_collection(self._profiles_name)
        collection.upsert(
            documents=[json.dumps(profile.to_document())],
            metadatas=[_clean_metadata({"user_id": profile.user_id, "email": profile.email})],
            ids=[profile.user_id],
        )
        return profile

    def _upsert_profile(self, user_id: str, changes: dict[str, Any], create: bool) -> UserProfile | None:
        found = self._select_profiles([user_id])
        if not found and not create:
            return None
        current = found[0] if found else UserProfile(user_id=user_id, created_at=self._clock())
        return self._write_profile(current.merged(changes))

    async def insert_session(self, record: SessionRecord) -> SessionRecord:
        return await self._run(self._insert_session, record)

    async def select_sessions(
        self,
        *,
        user_id: str | None = None,
        since: datetime | None = None,
    ) -> list[SessionRecord]:
        return await self._run(self._select_sessions, user_id, since)

    async def get_profile(self, user_id: str) -> UserProfile | None:
        found = await self._run(self._select_profiles, [user_id])
        return found[0] if found else None

    async def select_profiles(self, user_ids: Iterable[str]) -> list[UserProfile]:
        return await self._run(self._select_profiles, list(dict.fromkeys(user_ids)))

    async def upsert_profile(self, user_id: str, changes: dict[str, Any]) -> UserProfile:
        return await self._run(self._upsert_profile, user_id, changes, True)

    async def update_profile(self, user_id: str, changes: dict[str, Any]) -> UserProfile | None:
        return await self._run(self._upsert_profile, user_id, changes, False)


__all__ = ["ChromaRecordStore", "ChromaUnavailableError"]
