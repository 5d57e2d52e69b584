"""Device-local named slots holding small JSON documents."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Protocol

from ..errors import LocalPersistenceError

_SLOT_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


class SlotStore(Protocol):
    """get/set/remove on named text slots."""

    def get(self, name: str) -> str | None:
        ...

    def set(self, name: str, value: str) -> None:
        ...

    def remove(self, name: str) -> None:
        ...


class FileSlotStore:
    """One file per slot under ``directory``; writes go through a temp file and rename."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, name: str) -> Path:
        if not _SLOT_NAME.match(name):
            raise LocalPersistenceError(f"Invalid slot name '{name}'")
        return self._directory / f"{name}.json"

    def get(self, name: str) -> str | None:
        path = self._path(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise LocalPersistenceError(f"Cannot read slot '{name}': {exc}") from exc

    def set(self, name: str, value: str) -> None:
        path = self._path(name)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise LocalPersistenceError(f"Cannot write slot '{name}': {exc}") from exc

    def remove(self, name: str) -> None:
        try:
            self._path(name).unlink(missing_ok=True)
        except OSError as exc:
            raise LocalPersistenceError(f"Cannot remove slot '{name}': {exc}") from exc


class MemorySlotStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.slots: dict[str, str] = dict(initial or {})

    def get(self, name: str) -> str | None:
        return self.slots.get(name)

    def set(self, name: str, value: str) -> None:
        self.slots[name] = value

    def remove(self, name: str) -> None:
        self.slots.pop(name, None)


__all__ = ["FileSlotStore", "MemorySlotStore", "SlotStore"]
