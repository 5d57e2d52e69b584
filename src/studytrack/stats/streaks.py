"""Consecutive-day streaks recomputed from a user's full session history."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Iterable

from ..days import local_date
from ..storage.base import RecordStore
from ..storage.models import SessionRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StreakResult:
    user_id: str
    current_streak: int
    longest_streak: int
    previous_longest: int
    study_days: int

    def as_dict(self) -> dict[str, object]:
        return {
            "user_id": self.user_id,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "previous_longest": self.previous_longest,
            "study_days": self.study_days,
        }


def study_dates(records: Iterable[SessionRecord], tz: tzinfo) -> set[date]:
    return {local_date(record.start_time, tz) for record in records}


def current_streak(days: set[date], today: date) -> int:
    """Count consecutive days ending today; zero when today has no session."""

    streak = 0
    cursor = today
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


class StreakEngine:
    """Recompute and store ``current_streak``/``longest_streak`` for a user.

    Every date in the history is trusted to come from a qualifying session;
    the minimum length is enforced before records are written.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        tz: tzinfo = timezone.utc,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def recompute(self, user_id: str) -> StreakResult:
        records = await self._store.select_sessions(user_id=user_id)
        profile = await self._store.get_profile(user_id)
        previous_longest = profile.longest_streak if profile is not None else 0

        now = self._clock()
        days = study_dates(records, self._tz)
        streak = current_streak(days, local_date(now, self._tz))
        longest = max(streak, previous_longest)

        await self._store.upsert_profile(
            user_id,
            {"current_streak": streak, "longest_streak": longest, "updated_at": now},
        )
        logger.debug(
            "Recomputed streak",
            extra={"user_id": user_id, "current_streak": streak, "longest_streak": longest},
        )
        return StreakResult(
            user_id=user_id,
            current_streak=streak,
            longest_streak=longest,
            previous_longest=previous_longest,
            study_days=len(days),
        )


__all__ = ["StreakEngine", "StreakResult", "current_streak", "study_dates"]
