"""
Map history & progress persistence
==================================
Key-value store for saved learning maps (newest first, capped). Completion
progress lives on the history entry it belongs to, so a fresh map generated
for the same topic never inherits another map's completed ids.

Backed by a single JSON file when a path is given, plain memory otherwise.
Errors (unreadable file, full disk, corrupt JSON) propagate; callers treat
persistence as best-effort and decide whether to swallow them.
"""
from __future__ import annotations

import json
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from graph import LearningMap

log = logging.getLogger(__name__)

_HISTORY_KEY = "cerebra:mapHistory"


def _make_id() -> str:
    return f"{int(time.time() * 1000):x}-{secrets.token_hex(4)}"


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    id: str
    saved_at: str
    map: LearningMap
    completed: tuple[str, ...] = ()

    @property
    def topic(self) -> str:
        return self.map.topic

    @property
    def completion_percentage(self) -> float:
        total = self.map.num_nodes
        if total == 0:
            return 0.0
        ids = {n.id for n in self.map.nodes}
        return 100.0 * sum(1 for nid in self.completed if nid in ids) / total

    def to_dict(self) -> dict[str, Any]:
        out = {**self.map.to_dict(), "savedAt": self.saved_at, "id": self.id}
        if self.completed:
            out["progress"] = {"completedNodes": list(self.completed), "totalNodes": self.map.num_nodes}
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryEntry":
        progress = data.get("progress") or {}
        return cls(
            id=str(data["id"]),
            saved_at=str(data["savedAt"]),
            map=LearningMap.from_dict(data),
            completed=tuple(str(c) for c in progress.get("completedNodes", [])),
        )


class HistoryStore:
    """Thread-safe get/set store for map history and per-entry progress."""

    def __init__(self, path: Path | str | None = None, limit: int = 50) -> None:
        self.path = Path(path) if path is not None else None
        self.limit = limit
        self._lock = threading.Lock()
        self._memory: dict[str, Any] = {}

    # ---- raw key-value layer ----------------------------------------------
    def _read_all(self) -> dict[str, Any]:
        if self.path is None:
            return self._memory
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"history file {self.path} does not hold a JSON object")
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        if self.path is None:
            self._memory = data
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=2)
        tmp.replace(self.path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = dict(self._read_all())
            data[key] = value
            self._write_all(data)

    # ---- map history ------------------------------------------------------
    def save(self, lm: LearningMap) -> HistoryEntry:
        """Prepend *lm* to the history and return its new entry."""
        entry = HistoryEntry(
            id=_make_id(),
            saved_at=datetime.now(timezone.utc).isoformat(),
            map=lm,
            completed=tuple(n.id for n in lm.nodes if n.completed),
        )
        with self._lock:
            data = dict(self._read_all())
            items = [entry.to_dict(), *data.get(_HISTORY_KEY, [])]
            data[_HISTORY_KEY] = items[: self.limit]
            self._write_all(data)
        log.info("history  saved topic=%r  id=%s", lm.topic, entry.id)
        return entry

    def list(self) -> list[HistoryEntry]:
        raw = self.get(_HISTORY_KEY, [])
        return [HistoryEntry.from_dict(item) for item in raw]

    def find(self, entry_id: str) -> HistoryEntry | None:
        for entry in self.list():
            if entry.id == entry_id:
                return entry
        return None

    def clear(self) -> None:
        with self._lock:
            data = dict(self._read_all())
            data.pop(_HISTORY_KEY, None)
            self._write_all(data)

    # ---- progress ---------------------------------------------------------
    def save_progress(self, entry_id: str, completed: set[str]) -> bool:
        """Record *completed* on one history entry; False if the entry is gone."""
        with self._lock:
            data = dict(self._read_all())
            items = [dict(item) for item in data.get(_HISTORY_KEY, [])]
            for item in items:
                if item.get("id") != entry_id:
                    continue
                if completed:
                    item["progress"] = {
                        "completedNodes": sorted(completed),
                        "totalNodes": len(item.get("nodes") or []),
                    }
                else:
                    item.pop("progress", None)
                data[_HISTORY_KEY] = items
                self._write_all(data)
                return True
        log.debug("progress  entry %s no longer in history", entry_id)
        return False

    def load_progress(self, entry_id: str) -> set[str]:
        entry = self.find(entry_id)
        return set(entry.completed) if entry is not None else set()
