"""Active-session timing."""

from .active import ACTIVE_SESSION_SLOT, ActiveSession, ActiveSessionStore, elapsed_seconds
from .controller import StudyTimer, TimerStatus

__all__ = [
    "ACTIVE_SESSION_SLOT",
    "ActiveSession",
    "ActiveSessionStore",
    "StudyTimer",
    "TimerStatus",
    "elapsed_seconds",
]
