"""Device-local list of recently saved sessions."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from ..errors import LocalPersistenceError
from ..storage.local import SlotStore
from ..storage.models import SessionRecord

logger = logging.getLogger(__name__)

HISTORY_SLOT = "studySessions"


class LocalHistory:
    """Append-only (bounded) history kept next to the active-session slot.

    It does not depend on the record store, so recent sessions can be shown
    even while remote reads lag. Failures are logged and never raised.
    """

    def __init__(
        self,
        slots: SlotStore,
        *,
        limit: int = 200,
        clock: Callable[[], datetime] | None = None,
        slot_name: str = HISTORY_SLOT,
    ) -> None:
        self._slots = slots
        self._limit = limit
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._slot_name = slot_name

    def entries(self) -> list[dict[str, Any]]:
        try:
            raw = self._slots.get(self._slot_name)
        except LocalPersistenceError as exc:
            logger.warning("Failed to read session history", extra={"error": str(exc)})
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt session history")
            return []
        if not isinstance(data, list):
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    def recent(self, limit: int = 10) -> list[dict[str, Any]]:
        entries = self.entries()
        return list(reversed(entries[-limit:])) if limit > 0 else []

    def append(self, record: SessionRecord) -> bool:
        entries = [entry for entry in self.entries() if entry.get("id") != record.session_id]
        entries.append(
            {
                "id": record.session_id,
                "start": record.start_time.isoformat(),
                "end": record.end_time.isoformat(),
                "duration_minutes": record.duration_minutes,
                "saved_at": self._clock().isoformat(),
            }
        )
        entries = entries[-self._limit :]
        try:
            self._slots.set(self._slot_name, json.dumps(entries))
        except LocalPersistenceError as exc:
            logger.warning("Failed to append session history", extra={"error": str(exc)})
            return False
        return True


__all__ = ["HISTORY_SLOT", "LocalHistory"]
