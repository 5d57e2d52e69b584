"""Top users by minutes studied in the trailing window."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Callable

from ..days import window_start
from ..errors import ChromaUnavailableError, IdentityError, RecordStoreError
from ..identity import IdentityProvider
from ..storage.base import RecordStore
from ..storage.models import UserProfile

logger = logging.getLogger(__name__)

UNKNOWN_EMAIL = "Unknown"


@dataclass(slots=True)
class LeaderboardEntry:
    rank: int
    user_id: str
    user_email: str
    weekly_minutes: float
    current_streak: int
    display_name: str | None = None
    avatar: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.user_email.split("@", 1)[0]

    def as_dict(self) -> dict[str, object]:
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "label": self.label,
            "weekly_minutes": self.weekly_minutes,
            "current_streak": self.current_streak,
            "display_name": self.display_name,
            "avatar": self.avatar,
        }


class LeaderboardBuilder:
    """Rank users by window minutes; ties go to the smaller user id.

    Emails come from profile rows first and from the identity directory for
    anyone the profile lookup could not answer. Both paths feed the same
    entry shape.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        identity: IdentityProvider | None = None,
        tz: tzinfo = timezone.utc,
        window_days: int = 7,
        size: int = 10,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._identity = identity
        self._tz = tz
        self._window_days = window_days
        self._size = size
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _load_profiles(self, user_ids: list[str]) -> dict[str, UserProfile] | None:
        try:
            profiles = await self._store.select_profiles(user_ids)
        except (RecordStoreError, ChromaUnavailableError) as exc:
            logger.warning("Profile lookup failed for leaderboard", extra={"error": str(exc)})
            return None
        return {profile.user_id: profile for profile in profiles}

    async def _directory_emails(self) -> dict[str, str] | None:
        if self._identity is None:
            return None
        try:
            users = await self._identity.list_users()
        except IdentityError as exc:
            logger.debug("Identity directory unavailable", extra={"error": str(exc)})
            return None
        return {user.id: user.email for user in users if user.email}

    async def build(self) -> list[LeaderboardEntry]:
        since = window_start(self._clock(), self._tz, self._window_days)
        records = await self._store.select_sessions(since=since)

        totals: dict[str, float] = {}
        for record in records:
            totals[record.user_id] = totals.get(record.user_id, 0.0) + record.duration_minutes
        if not totals:
            return []

        user_ids = list(totals)
        profiles = await self._load_profiles(user_ids)
        emails = {
            user_id: profile.email
            for user_id, profile in (profiles or {}).items()
            if profile.email
        }
        if len(emails) < len(user_ids):
            directory = await self._directory_emails()
            if directory is None and profiles is None:
                raise RecordStoreError("Cannot resolve leaderboard users: profiles and directory unavailable")
            for user_id in user_ids:
                if user_id not in emails and directory and user_id in directory:
                    emails[user_id] = directory[user_id]

        ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))[: self._size]
        entries: list[LeaderboardEntry] = []
        for position, (user_id, minutes) in enumerate(ranked):
            profile = (profiles or {}).get(user_id)
            email = emails.get(user_id, UNKNOWN_EMAIL)
            entries.append(
                LeaderboardEntry(
                    rank=position + 1,
                    user_id=user_id,
                    user_email=email,
                    weekly_minutes=minutes,
                    current_streak=profile.current_streak if profile is not None else 0,
                    display_name=profile.display_name if profile is not None else None,
                    avatar=profile.avatar if profile is not None else None,
                )
            )
        return entries


__all__ = ["LeaderboardBuilder", "LeaderboardEntry", "UNKNOWN_EMAIL"]
