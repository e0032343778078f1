#!/usr/bin/env python3
"""
Data storage and persistence for the coding time tracker.
Handles all file I/O operations behind a small key-value interface.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class TimeEntry:
    """Aggregated minutes for one (date, project, branch) key."""

    date: str
    project: str
    branch: str
    minutes: float

    @property
    def key(self):
        return (self.date, self.project, self.branch)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "project": self.project,
            "branch": self.branch,
            "minutes": self.minutes,
        }

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "TimeEntry":
        # Older rows carry "timeSpent" and no branch
        minutes = row.get("minutes", row.get("timeSpent", 0.0))
        return cls(
            date=str(row["date"]),
            project=str(row.get("project", "")),
            branch=str(row.get("branch", "unknown")),
            minutes=float(minutes),
        )


class KeyValueStore(Protocol):
    """Persistent store used by the ledger."""

    def load(self, key: str) -> List[Dict[str, Any]]:
        ...

    def save(self, key: str, rows: List[Dict[str, Any]]) -> bool:
        ...


class JsonFileStore:
    """Stores each key as a UTF-8 JSON file inside a data directory."""

    def __init__(self, data_dir: str = "tracker_data"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def load(self, key: str) -> List[Dict[str, Any]]:
        """Load rows for key, empty if missing or unreadable."""
        filepath = self.path_for(key)
        if not filepath.exists():
            return []

        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Could not read %s: %s", filepath, e)
            return []

        if not isinstance(data, list):
            logger.warning("Ignoring %s: expected a list of entries", filepath)
            return []
        return [row for row in data if isinstance(row, dict)]

    def save(self, key: str, rows: List[Dict[str, Any]]) -> bool:
        """Write rows atomically. Returns False when the write failed."""
        filepath = self.path_for(key)
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.data_dir), prefix=f".{key}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(rows, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, filepath)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except (IOError, OSError, TypeError, ValueError) as e:
            logger.error("Could not save %s: %s", filepath, e)
            return False
        return True


class MemoryStore:
    """In-process store for dry runs."""

    def __init__(self, initial: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._data: Dict[str, List[Dict[str, Any]]] = {
            key: [dict(row) for row in rows] for key, rows in (initial or {}).items()
        }

    def load(self, key: str) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._data.get(key, [])]

    def save(self, key: str, rows: List[Dict[str, Any]]) -> bool:
        self._data[key] = [dict(row) for row in rows]
        return True
