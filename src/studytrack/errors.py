"""Error taxonomy for session timing, saving and stats."""

from __future__ import annotations


class StudyTrackError(RuntimeError):
    """Base class for StudyTrack errors."""


class ValidationError(StudyTrackError):
    """Raised when input is rejected before any remote call is made."""


class SessionTooShortError(ValidationError):
    """Raised when a session is below the minimum length worth persisting."""

    def __init__(self, duration_minutes: float, minimum_minutes: int) -> None:
        super().__init__(
            f"Session must be at least {minimum_minutes} minutes (got {duration_minutes:.1f})"
        )
        self.duration_minutes = duration_minutes
        self.minimum_minutes = minimum_minutes


class ProfileValidationError(ValidationError):
    """Raised when a profile edit carries invalid fields."""


class SaveTimeoutError(StudyTrackError, TimeoutError):
    """Raised when a remote operation does not settle within its bound."""

    def __init__(self, label: str, timeout: float) -> None:
        super().__init__(f"{label} timed out after {timeout:g}s")
        self.label = label
        self.timeout = timeout


class RemoteWriteError(StudyTrackError):
    """Raised when the record store rejects or fails a write."""


class RecordStoreError(StudyTrackError):
    """Raised by record stores when the backend call fails."""


class LocalPersistenceError(StudyTrackError):
    """Raised when a local slot cannot be read, serialized or written."""


class NoPendingSaveError(StudyTrackError):
    """Raised when a retry is requested but nothing is waiting to be saved."""


class SaveInFlightError(StudyTrackError):
    """Raised when a save is requested while another attempt is still running."""


class IdentityError(StudyTrackError):
    """Raised when the identity service cannot answer a request."""


class ChromaUnavailableError(StudyTrackError):
    """Raised when the Chroma client cannot be constructed."""


__all__ = [
    "ChromaUnavailableError",
    "IdentityError",
    "LocalPersistenceError",
    "NoPendingSaveError",
    "ProfileValidationError",
    "RecordStoreError",
    "RemoteWriteError",
    "SaveInFlightError",
    "SaveTimeoutError",
    "SessionTooShortError",
    "StudyTrackError",
    "ValidationError",
]
