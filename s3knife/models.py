from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum

from s3knife.filesystem import File


class ActionKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def code(self) -> str:
        return {"create": "A", "update": "U", "delete": "D"}[self.value]


@dataclass(slots=True)
class Action:
    kind: ActionKind
    file: File


@dataclass(slots=True)
class SyncCounts:
    added: int = 0
    deleted: int = 0
    updated: int = 0
    unchanged: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, *, added: int = 0, deleted: int = 0, updated: int = 0, unchanged: int = 0) -> None:
        with self._lock:
            self.added += added
            self.deleted += deleted
            self.updated += updated
            self.unchanged += unchanged

    def record(self, kind: ActionKind) -> None:
        if kind is ActionKind.CREATE:
            self.add(added=1)
        elif kind is ActionKind.UPDATE:
            self.add(updated=1)
        else:
            self.add(deleted=1)

    def as_tuple(self) -> tuple[int, int, int, int]:
        with self._lock:
            return (self.added, self.deleted, self.updated, self.unchanged)
