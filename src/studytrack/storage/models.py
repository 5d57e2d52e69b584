"""Data models for persisted study records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass(slots=True)
class SessionRecord:
    session_id: str
    user_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: float

    def to_document(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration_minutes": self.duration_minutes,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "SessionRecord":
        return cls(
            session_id=doc["session_id"],
            user_id=doc["user_id"],
            start_time=_parse_datetime(doc["start_time"]),
            end_time=_parse_datetime(doc["end_time"]),
            duration_minutes=float(doc["duration_minutes"]),
        )


@dataclass(slots=True)
class UserProfile:
    user_id: str
    email: str | None = None
    display_name: str | None = None
    avatar: str | None = None
    current_streak: int = 0
    longest_streak: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        doc = asdict(self)
        for key in ("created_at", "updated_at"):
            if doc[key] is not None:
                doc[key] = doc[key].isoformat()
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "UserProfile":
        known = {field.name for field in fields(cls)}
        values = {key: value for key, value in doc.items() if key in known}
        for key in ("created_at", "updated_at"):
            values[key] = _parse_datetime(values.get(key))
        return cls(**values)

    def merged(self, changes: dict[str, Any]) -> "UserProfile":
        known = {field.name for field in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")
        doc = {**{name: getattr(self, name) for name in known}, **changes}
        return UserProfile(**doc)


__all__ = ["SessionRecord", "UserProfile"]
