#!/usr/bin/env python3
"""
Session ledger for the coding time tracker.
Keeps one aggregated TimeEntry per (date, project, branch) in memory and
mirrors every change to the key-value store.
"""

import logging
from datetime import date as Date
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .storage import KeyValueStore, TimeEntry

ENTRIES_KEY = "timeEntries"
MAX_ENTRY_MINUTES = 24 * 60


class SaveResult(Enum):
    """Outcome of Ledger.add_entry."""

    SAVED = "saved"
    REJECTED = "rejected"
    FAILED = "failed"


def local_date_string(value) -> str:
    """Format a date, datetime or epoch timestamp as a local YYYY-MM-DD string."""
    if isinstance(value, (int, float)):
        value = datetime.fromtimestamp(value)
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


class Ledger:
    """Persistent aggregated store of TimeEntry rows."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str = ENTRIES_KEY,
        today: Optional[Callable[[], Date]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.key = key
        self._today = today or Date.today
        self.logger = logger or logging.getLogger(__name__)
        self._entries: Optional[List[TimeEntry]] = None
        self._index: Dict[Tuple[str, str, str], TimeEntry] = {}

    def _load(self) -> List[TimeEntry]:
        rows = self.store.load(self.key)
        self._index = {}
        entries: List[TimeEntry] = []
        needs_migration = False
        for row in rows:
            try:
                entry = TimeEntry.from_dict(row)
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning("Skipping malformed entry %r: %s", row, e)
                needs_migration = True
                continue
            if "branch" not in row or "minutes" not in row:
                needs_migration = True
            existing = self._index.get(entry.key)
            if existing is not None:
                # Collapse duplicate keys left by older versions
                existing.minutes = round(existing.minutes + entry.minutes, 2)
                needs_migration = True
                continue
            self._index[entry.key] = entry
            entries.append(entry)

        self._entries = entries
        if needs_migration:
            self.logger.info("Migrating %d stored entries", len(entries))
            if not self.store.save(self.key, self._rows(entries)):
                self.logger.warning("Could not write migrated entries back")
        return entries

    @staticmethod
    def _rows(entries: List[TimeEntry]) -> List[dict]:
        return [entry.to_dict() for entry in entries]

    def get_entries(self) -> List[TimeEntry]:
        """Return the cached entries, loading them on first use."""
        if self._entries is None:
            return list(self._load())
        return list(self._entries)

    def add_entry(self, date, project: str, branch: str, minutes: float) -> SaveResult:
        """Merge minutes into the (date, project, branch) row."""
        if minutes <= 0:
            self.logger.debug("Nothing to save for %s/%s", project, branch)
            return SaveResult.REJECTED
        if minutes > MAX_ENTRY_MINUTES:
            self.logger.warning(
                "Suspicious time value detected: %s minutes for %s/%s",
                minutes,
                project,
                branch,
            )
            return SaveResult.REJECTED

        rounded = round(minutes, 2)
        if rounded <= 0:
            return SaveResult.REJECTED

        if self._entries is None:
            self._load()
        date_string = local_date_string(date)
        key = (date_string, project, branch)

        existing = self._index.get(key)
        if existing is not None:
            previous = existing.minutes
            existing.minutes = round(previous + rounded, 2)
        else:
            entry = TimeEntry(date_string, project, branch, rounded)
            self._entries.append(entry)
            self._index[key] = entry

        if not self._persist():
            # Roll back so the caller can retry with the cumulative duration
            if existing is not None:
                existing.minutes = previous
            else:
                self._entries.pop()
                del self._index[key]
            self.logger.error(
                "Error saving entry: %.2fmin for %s/%s on %s",
                rounded,
                project,
                branch,
                date_string,
            )
            return SaveResult.FAILED

        self.logger.debug(
            "Saved %.2fmin for %s/%s on %s", rounded, project, branch, date_string
        )
        return SaveResult.SAVED

    def _persist(self) -> bool:
        try:
            return bool(self.store.save(self.key, self._rows(self._entries)))
        except Exception:
            self.logger.exception("Storage write raised")
            return False

    def _replace(self, entries: List[TimeEntry]) -> bool:
        """Swap in a new entry list only if the store accepted it."""
        try:
            saved = bool(self.store.save(self.key, self._rows(entries)))
        except Exception:
            self.logger.exception("Storage write raised")
            saved = False
        if not saved:
            return False
        self._entries = entries
        self._index = {entry.key: entry for entry in entries}
        return True

    def reset_today(self, today: Optional[Date] = None) -> bool:
        """Delete every row for the current local date."""
        today_string = local_date_string(today or self._today())
        remaining = [e for e in self.get_entries() if e.date != today_string]
        if not self._replace(remaining):
            self.logger.error("Failed to reset today's entries")
            return False
        self.logger.info("Reset time entries for %s", today_string)
        return True

    def reset_all(self) -> bool:
        """Clear every row. Confirmation happens at the caller."""
        self.get_entries()
        if not self._replace([]):
            self.logger.error("Failed to clear time tracking data")
            return False
        self.logger.info("All time tracking data has been cleared")
        return True

    def search_entries(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        project: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> List[TimeEntry]:
        """Filter entries by inclusive date range and project/branch substring."""
        project_query = project.lower() if project else None
        branch_query = branch.lower() if branch else None
        results = []
        for entry in self.get_entries():
            if start_date and entry.date < start_date:
                continue
            if end_date and entry.date > end_date:
                continue
            if project_query and project_query not in entry.project.lower():
                continue
            if branch_query and branch_query not in entry.branch.lower():
                continue
            results.append(entry)
        return results

    def branches_by_project(self, project: str) -> List[str]:
        return sorted({e.branch for e in self.get_entries() if e.project == project})
