"""Active-session record, its local store, and the elapsed-time calculation."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt
from pydantic import ValidationError as ModelValidationError

from ..days import to_epoch_ms
from ..errors import LocalPersistenceError
from ..storage.local import SlotStore

logger = logging.getLogger(__name__)

ACTIVE_SESSION_SLOT = "activeSession"


class ActiveSession(BaseModel):
    """A timer in progress, persisted so it survives process suspension."""

    model_config = ConfigDict(extra="ignore")

    running: StrictBool = Field(..., description="Whether the timer is counting.")
    start_epoch_ms: StrictInt = Field(..., description="Wall-clock start in epoch milliseconds.")
    paused_ms: StrictInt = Field(default=0, ge=0, description="Cumulative paused milliseconds.")
    goal_minutes: StrictInt | None = Field(default=None, description="Informational target only.")
    paused_at_ms: StrictInt | None = Field(
        default=None, description="Epoch milliseconds of the current pause, if paused."
    )

    @property
    def paused(self) -> bool:
        return self.paused_at_ms is not None


def elapsed_seconds(session: ActiveSession | None, now_ms: int) -> int:
    """Whole seconds of study time in ``session`` as of ``now_ms``.

    Always derived from the stored timestamps, never from a tick counter. A
    paused session is measured up to the instant it was paused.
    """

    if session is None:
        return 0
    reference = session.paused_at_ms if session.paused_at_ms is not None else now_ms
    elapsed_ms = reference - session.start_epoch_ms - session.paused_ms
    return max(0, math.floor(elapsed_ms / 1000))


class ActiveSessionStore:
    """Persist the single active session of this device in a local slot.

    Storage failures never escape: ``save`` reports ``False``, ``load`` reports
    ``None`` and ``clear`` does nothing, with a warning logged each time.
    """

    def __init__(
        self,
        slots: SlotStore,
        *,
        clock: Callable[[], datetime] | None = None,
        slot_name: str = ACTIVE_SESSION_SLOT,
    ) -> None:
        self._slots = slots
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._slot_name = slot_name

    def now_ms(self) -> int:
        return to_epoch_ms(self._clock())

    def create(self, goal_minutes: int | None = None) -> ActiveSession:
        return ActiveSession(
            running=True,
            start_epoch_ms=self.now_ms(),
            paused_ms=0,
            goal_minutes=goal_minutes,
        )

    def save(self, session: ActiveSession) -> bool:
        try:
            self._slots.set(self._slot_name, session.model_dump_json())
        except (LocalPersistenceError, ValueError) as exc:
            logger.warning("Failed to save active session", extra={"error": str(exc)})
            return False
        return True

    def load(self) -> ActiveSession | None:
        try:
            raw = self._slots.get(self._slot_name)
        except LocalPersistenceError as exc:
            logger.warning("Failed to read active session", extra={"error": str(exc)})
            return None
        if not raw:
            return None

        try:
            session = ActiveSession.model_validate_json(raw)
        except ModelValidationError as exc:
            logger.warning(
                "Ignoring corrupt active session record",
                extra={"errors": exc.error_count()},
            )
            return None
        return session if session.running else None

    def clear(self) -> None:
        try:
            self._slots.remove(self._slot_name)
        except LocalPersistenceError as exc:
            logger.warning("Failed to clear active session", extra={"error": str(exc)})

    def elapsed_seconds(self, session: ActiveSession | None) -> int:
        return elapsed_seconds(session, self.now_ms())


__all__ = ["ACTIVE_SESSION_SLOT", "ActiveSession", "ActiveSessionStore", "elapsed_seconds"]
