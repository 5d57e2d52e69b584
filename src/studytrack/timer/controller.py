"""Start, pause, resume and restore the active study timer."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..days import format_clock, from_epoch_ms
from .active import ActiveSession, ActiveSessionStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TimerStatus:
    running: bool
    paused: bool
    elapsed_seconds: int
    display: str
    goal_minutes: int | None = None
    started_at: str | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "running": self.running,
            "paused": self.paused,
            "elapsed_seconds": self.elapsed_seconds,
            "display": self.display,
            "goal_minutes": self.goal_minutes,
            "started_at": self.started_at,
        }


class StudyTimer:
    """Thin state machine over :class:`ActiveSessionStore`.

    Every read goes back to the persisted record so another process (or a
    restart) sees the same timer.
    """

    def __init__(self, store: ActiveSessionStore) -> None:
        self._store = store

    def current(self) -> ActiveSession | None:
        return self._store.load()

    def start(self, goal_minutes: int | None = None) -> ActiveSession:
        existing = self._store.load()
        if existing is not None:
            logger.info(
                "Session already running",
                extra={"start_epoch_ms": existing.start_epoch_ms},
            )
            return existing
        session = self._store.create(goal_minutes)
        if not self._store.save(session):
            logger.warning("Active session kept in memory only; it will not survive a restart")
        logger.info("Started study session", extra={"goal_minutes": goal_minutes})
        return session

    def pause(self) -> ActiveSession | None:
        session = self._store.load()
        if session is None or session.paused:
            return session
        paused = session.model_copy(update={"paused_at_ms": self._store.now_ms()})
        self._store.save(paused)
        return paused

    def resume(self) -> ActiveSession | None:
        session = self._store.load()
        if session is None or not session.paused:
            return session
        pause_length = max(0, self._store.now_ms() - session.paused_at_ms)
        resumed = session.model_copy(
            update={"paused_ms": session.paused_ms + pause_length, "paused_at_ms": None}
        )
        self._store.save(resumed)
        return resumed

    def restore(self) -> ActiveSession | None:
        """Reload a session persisted before a restart, logging the recovered time."""

        session = self._store.load()
        if session is not None:
            logger.info(
                "Recovered active session",
                extra={
                    "elapsed_seconds": self._store.elapsed_seconds(session),
                    "paused": session.paused,
                },
            )
        return session

    def status(self, session: ActiveSession | None = None) -> TimerStatus:
        session = session if session is not None else self._store.load()
        if session is None:
            return TimerStatus(running=False, paused=False, elapsed_seconds=0, display=format_clock(0))
        elapsed = self._store.elapsed_seconds(session)
        return TimerStatus(
            running=True,
            paused=session.paused,
            elapsed_seconds=elapsed,
            display=format_clock(elapsed),
            goal_minutes=session.goal_minutes,
            started_at=from_epoch_ms(session.start_epoch_ms).isoformat(),
        )


__all__ = ["StudyTimer", "TimerStatus"]
