"""Session save pipeline and local history."""

from .history import HISTORY_SLOT, LocalHistory
from .pipeline import PendingSave, SaveOutcome, SavePayload, SaveState, SessionSavePipeline
from .race import race_with_timeout

__all__ = [
    "HISTORY_SLOT",
    "LocalHistory",
    "PendingSave",
    "SaveOutcome",
    "SavePayload",
    "SaveState",
    "SessionSavePipeline",
    "race_with_timeout",
]
