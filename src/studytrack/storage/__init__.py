"""Storage abstractions for StudyTrack."""

from .base import RecordStore
from .chroma import ChromaRecordStore, ChromaUnavailableError
from .local import FileSlotStore, MemorySlotStore, SlotStore
from .memory import MemoryRecordStore
from .models import SessionRecord, UserProfile

__all__ = [
    "ChromaRecordStore",
    "ChromaUnavailableError",
    "FileSlotStore",
    "MemoryRecordStore",
    "MemorySlotStore",
    "RecordStore",
    "SessionRecord",
    "SlotStore",
    "UserProfile",
]
