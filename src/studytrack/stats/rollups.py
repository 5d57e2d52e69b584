"""In-memory rollups updated in two phases around each remote save."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Callable

from ..days import start_of_today
from .aggregates import StatsSnapshot


@dataclass(slots=True)
class RollupView:
    today_minutes: float
    weekly_count: int
    weekly_minutes: float
    pending: int

    def as_dict(self) -> dict[str, object]:
        return {
            "today_minutes": self.today_minutes,
            "weekly_count": self.weekly_count,
            "weekly_minutes": self.weekly_minutes,
            "pending": self.pending,
        }


@dataclass(slots=True, frozen=True)
class _Tentative:
    minutes: float
    start_time: datetime | None


class RollupLedger:
    """Confirmed totals plus tentative increments keyed by session id.

    ``begin`` applies an increment before the write, ``commit`` folds it into
    the confirmed totals, ``rollback`` drops it. ``reconcile`` replaces the
    confirmed totals with a fresh aggregate read; increments the read already
    contains are dropped so they are never counted twice.

    Only sessions that started at or after local midnight add to
    ``today_minutes``.
    """

    def __init__(
        self,
        *,
        tz: tzinfo = timezone.utc,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._today_minutes = 0.0
        self._weekly_count = 0
        self._weekly_minutes = 0.0
        self._tentative: dict[str, _Tentative] = {}

    def _counts_today(self, entry: _Tentative) -> bool:
        if entry.start_time is None:
            return True
        return entry.start_time >= start_of_today(self._clock(), self._tz)

    def begin(self, key: str, minutes: float, start_time: datetime | None = None) -> None:
        self._tentative[key] = _Tentative(minutes=minutes, start_time=start_time)

    def commit(self, key: str) -> None:
        entry = self._tentative.pop(key, None)
        if entry is None:
            return
        if self._counts_today(entry):
            self._today_minutes += entry.minutes
        self._weekly_count += 1
        self._weekly_minutes += entry.minutes

    def rollback(self, key: str) -> None:
        self._tentative.pop(key, None)

    def reconcile(self, snapshot: StatsSnapshot) -> None:
        self._today_minutes = snapshot.today_minutes
        self._weekly_count = snapshot.weekly_sessions
        self._weekly_minutes = snapshot.weekly_minutes
        for key in snapshot.session_ids & self._tentative.keys():
            del self._tentative[key]

    def confirmed(self) -> RollupView:
        return RollupView(
            today_minutes=self._today_minutes,
            weekly_count=self._weekly_count,
            weekly_minutes=self._weekly_minutes,
            pending=len(self._tentative),
        )

    def view(self) -> RollupView:
        """Confirmed totals with in-flight increments applied."""

        entries = list(self._tentative.values())
        tentative = sum(entry.minutes for entry in entries)
        today = sum(entry.minutes for entry in entries if self._counts_today(entry))
        return RollupView(
            today_minutes=self._today_minutes + today,
            weekly_count=self._weekly_count + len(entries),
            weekly_minutes=self._weekly_minutes + tentative,
            pending=len(entries),
        )


__all__ = ["RollupLedger", "RollupView"]
