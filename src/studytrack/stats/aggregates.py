"""Read-only rollups over a user's session records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Callable

from ..days import start_of_today, window_start
from ..storage.base import RecordStore


@dataclass(slots=True)
class StatsSnapshot:
    user_id: str
    today_minutes: float
    today_sessions: int
    weekly_minutes: float
    weekly_sessions: int
    daily_goal_minutes: int
    session_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def goal_progress(self) -> float:
        if self.daily_goal_minutes <= 0:
            return 0.0
        return min(1.0, self.today_minutes / self.daily_goal_minutes)

    def as_dict(self) -> dict[str, object]:
        return {
            "user_id": self.user_id,
            "today_minutes": self.today_minutes,
            "today_sessions": self.today_sessions,
            "weekly_minutes": self.weekly_minutes,
            "weekly_sessions": self.weekly_sessions,
            "daily_goal_minutes": self.daily_goal_minutes,
            "goal_progress": round(self.goal_progress, 4),
        }


class SessionAggregates:
    """Each query hits the record store again; nothing is cached here."""

    def __init__(
        self,
        store: RecordStore,
        *,
        tz: tzinfo = timezone.utc,
        window_days: int = 7,
        daily_goal_minutes: int = 60,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._tz = tz
        self._window_days = window_days
        self._daily_goal_minutes = daily_goal_minutes
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def today_start(self) -> datetime:
        return start_of_today(self._clock(), self._tz)

    def week_start(self) -> datetime:
        return window_start(self._clock(), self._tz, self._window_days)

    async def today_total_minutes(self, user_id: str) -> float:
        records = await self._store.select_sessions(user_id=user_id, since=self.today_start())
        return sum(record.duration_minutes for record in records)

    async def today_session_count(self, user_id: str) -> int:
        records = await self._store.select_sessions(user_id=user_id, since=self.today_start())
        return len(records)

    async def weekly_session_count(self, user_id: str) -> int:
        records = await self._store.select_sessions(user_id=user_id, since=self.week_start())
        return len(records)

    async def weekly_total_minutes(self, user_id: str) -> float:
        records = await self._store.select_sessions(user_id=user_id, since=self.week_start())
        return sum(record.duration_minutes for record in records)

    async def snapshot(self, user_id: str) -> StatsSnapshot:
        week = await self._store.select_sessions(user_id=user_id, since=self.week_start())
        today_start = self.today_start()
        today = [record for record in week if record.start_time >= today_start]
        return StatsSnapshot(
            user_id=user_id,
            today_minutes=sum(record.duration_minutes for record in today),
            today_sessions=len(today),
            weekly_minutes=sum(record.duration_minutes for record in week),
            weekly_sessions=len(week),
            daily_goal_minutes=self._daily_goal_minutes,
            session_ids=frozenset(record.session_id for record in week),
        )


__all__ = ["SessionAggregates", "StatsSnapshot"]
