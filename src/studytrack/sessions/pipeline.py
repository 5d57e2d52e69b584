"""Stop a session and persist it with a bounded wait, keeping failed saves for retry."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Literal
from uuid import uuid4

from ..days import from_epoch_ms
from ..errors import (
    NoPendingSaveError,
    RemoteWriteError,
    SaveInFlightError,
    SaveTimeoutError,
    SessionTooShortError,
)
from ..stats.rollups import RollupLedger
from ..stats.streaks import StreakEngine, StreakResult
from ..storage.base import RecordStore
from ..storage.models import SessionRecord
from ..timer.active import ActiveSession, ActiveSessionStore
from .history import LocalHistory
from .race import race_with_timeout

logger = logging.getLogger(__name__)

FailureKind = Literal["timeout", "error"]
OutcomeStatus = Literal["no_session", "too_short", "saved", "failed"]

TIMEOUT_MESSAGE = "Saving timed out. Check your connection, then retry or dismiss."
ERROR_MESSAGE = "Could not save session ({error}). Retry or dismiss."


class SaveState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SAVING = "saving"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class SavePayload:
    """What gets written; ``session_id`` doubles as the idempotency key."""

    session_id: str
    user_id: str
    duration_minutes: float
    start_time: datetime

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    def to_record(self) -> SessionRecord:
        return SessionRecord(
            session_id=self.session_id,
            user_id=self.user_id,
            start_time=self.start_time,
            end_time=self.end_time,
            duration_minutes=self.duration_minutes,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "duration_minutes": self.duration_minutes,
            "start_time": self.start_time.isoformat(),
        }


@dataclass(slots=True)
class PendingSave:
    payload: SavePayload
    attempts: int = 0
    failure_kind: FailureKind | None = None
    last_error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "payload": self.payload.as_dict(),
            "attempts": self.attempts,
            "failure_kind": self.failure_kind,
            "last_error": self.last_error,
        }


@dataclass(slots=True)
class SaveOutcome:
    status: OutcomeStatus
    message: str
    duration_minutes: float = 0.0
    record: SessionRecord | None = None
    pending: PendingSave | None = None
    streak: StreakResult | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def retryable(self) -> bool:
        return self.status == "failed"

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "duration_minutes": self.duration_minutes,
            "retryable": self.retryable,
            "record": self.record.to_document() if self.record is not None else None,
            "pending": self.pending.as_dict() if self.pending is not None else None,
            "streak": self.streak.as_dict() if self.streak is not None else None,
            **self.extra,
        }


class SessionSavePipeline:
    """Idle -> Validating -> Saving -> Succeeded | Failed, with Retry and Dismiss.

    ``stop_session`` and ``retry`` never raise for remote failures: they return
    a :class:`SaveOutcome` and leave the timer stopped. At most one save is
    pending at a time and attempts never overlap.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        active_store: ActiveSessionStore,
        streaks: StreakEngine,
        ledger: RollupLedger,
        history: LocalHistory | None = None,
        min_session_minutes: int = 10,
        timeout_seconds: float = 10.0,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._active_store = active_store
        self._streaks = streaks
        self._ledger = ledger
        self._history = history
        self._min_minutes = min_session_minutes
        self._timeout = timeout_seconds
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._state = SaveState.IDLE
        self._pending: PendingSave | None = None
        self._in_flight = False

    @property
    def state(self) -> SaveState:
        return self._state

    @property
    def pending(self) -> PendingSave | None:
        return self._pending

    @property
    def saving(self) -> bool:
        return self._in_flight

    def _validate(self, active: ActiveSession, user_id: str) -> SavePayload:
        duration_minutes = self._active_store.elapsed_seconds(active) / 60
        if duration_minutes < self._min_minutes:
            raise SessionTooShortError(duration_minutes, self._min_minutes)
        return SavePayload(
            session_id=self._id_factory(),
            user_id=user_id,
            duration_minutes=duration_minutes,
            start_time=from_epoch_ms(active.start_epoch_ms),
        )

    async def stop_session(self, active: ActiveSession | None, user_id: str) -> SaveOutcome:
        if self._in_flight:
            raise SaveInFlightError("A session save is already in progress")

        if active is None:
            self._active_store.clear()
            self._state = SaveState.IDLE
            return SaveOutcome(status="no_session", message="No session is running.")

        self._state = SaveState.VALIDATING
        try:
            payload = self._validate(active, user_id)
        except SessionTooShortError as exc:
            self._active_store.clear()
            self._state = SaveState.IDLE
            logger.info(
                "Session too short to save",
                extra={"user_id": user_id, "duration_minutes": exc.duration_minutes},
            )
            return SaveOutcome(
                status="too_short",
                message=f"Sessions shorter than {self._min_minutes} minutes are not saved.",
                duration_minutes=exc.duration_minutes,
            )

        # Timer is stopped before the write begins.
        self._active_store.clear()
        if self._pending is not None:
            logger.warning(
                "Replacing unsaved session with a newer one",
                extra={"discarded_session_id": self._pending.payload.session_id},
            )
        self._pending = PendingSave(payload=payload)
        return await self._attempt()

    async def retry(self) -> SaveOutcome:
        if self._pending is None:
            raise NoPendingSaveError("There is no failed save to retry")
        return await self._attempt()

    def dismiss(self) -> SavePayload | None:
        """Drop the pending save for good and return to idle."""

        if self._in_flight:
            raise SaveInFlightError("Cannot dismiss while the save is in progress")
        pending, self._pending = self._pending, None
        self._state = SaveState.IDLE
        if pending is not None:
            logger.warning(
                "Discarded unsaved session",
                extra={
                    "session_id": pending.payload.session_id,
                    "duration_minutes": pending.payload.duration_minutes,
                },
            )
            return pending.payload
        return None

    async def _attempt(self) -> SaveOutcome:
        pending = self._pending
        if pending is None:
            raise NoPendingSaveError("There is no save to attempt")
        if self._in_flight:
            raise SaveInFlightError("A session save is already in progress")

        payload = pending.payload
        pending.attempts += 1
        self._in_flight = True
        self._state = SaveState.SAVING
        self._ledger.begin(payload.session_id, payload.duration_minutes, payload.start_time)
        try:
            record = await race_with_timeout(
                self._store.insert_session(payload.to_record()),
                self._timeout,
                label="session save",
            )
        except SaveTimeoutError as exc:
            return self._fail(pending, "timeout", exc)
        except asyncio.CancelledError:
            self._ledger.rollback(payload.session_id)
            self._state = SaveState.FAILED
            raise
        except Exception as exc:
            return self._fail(pending, "error", RemoteWriteError(str(exc) or type(exc).__name__))
        finally:
            self._in_flight = False

        self._pending = None
        self._state = SaveState.SUCCEEDED
        self._ledger.commit(payload.session_id)
        if self._history is not None:
            self._history.append(record)
        streak = await self._update_streak(payload.user_id)
        logger.info(
            "Session saved",
            extra={
                "session_id": payload.session_id,
                "user_id": payload.user_id,
                "duration_minutes": payload.duration_minutes,
                "attempts": pending.attempts,
            },
        )
        return SaveOutcome(
            status="saved",
            message=f"Saved {payload.duration_minutes:.0f} minute session.",
            duration_minutes=payload.duration_minutes,
            record=record,
            streak=streak,
        )

    def _fail(self, pending: PendingSave, kind: FailureKind, exc: Exception) -> SaveOutcome:
        self._ledger.rollback(pending.payload.session_id)
        self._state = SaveState.FAILED
        pending.failure_kind = kind
        pending.last_error = str(exc)
        logger.warning(
            "Session save failed",
            extra={
                "session_id": pending.payload.session_id,
                "failure_kind": kind,
                "attempts": pending.attempts,
                "error": str(exc),
            },
        )
        message = TIMEOUT_MESSAGE if kind == "timeout" else ERROR_MESSAGE.format(error=exc)
        return SaveOutcome(
            status="failed",
            message=message,
            duration_minutes=pending.payload.duration_minutes,
            pending=pending,
            extra={"failure_kind": kind},
        )

    async def _update_streak(self, user_id: str) -> StreakResult | None:
        try:
            return await self._streaks.recompute(user_id)
        except Exception as exc:
            # The session row is committed; a stale streak is fixed by the next save.
            logger.warning(
                "Streak update failed after save",
                extra={"user_id": user_id, "error": str(exc)},
            )
            return None


__all__ = [
    "PendingSave",
    "SaveOutcome",
    "SavePayload",
    "SaveState",
    "SessionSavePipeline",
]
