#!/usr/bin/env python3
"""
Read-side totals over the ledger snapshot plus the tracker's live session.
"""

from dataclasses import dataclass, field
from datetime import date as Date
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from .storage import TimeEntry
from .tracker import LiveSession


@dataclass
class SummaryData:
    daily_summary: Dict[str, float] = field(default_factory=dict)
    project_summary: Dict[str, float] = field(default_factory=dict)
    branch_summary: Dict[str, float] = field(default_factory=dict)
    total_time: float = 0.0


def start_of_week(today: Date) -> Date:
    """Sunday on or before today."""
    return today - timedelta(days=(today.weekday() + 1) % 7)


def start_of_month(today: Date) -> Date:
    return today.replace(day=1)


def start_of_year(today: Date) -> Date:
    return today.replace(month=1, day=1)


def total_since(
    entries: Iterable[TimeEntry],
    start: Optional[Date],
    today: Date,
    live: Optional[LiveSession] = None,
) -> float:
    """Minutes logged from start (inclusive, None for no bound) through today."""
    start_string = start.isoformat() if start else None
    today_string = today.isoformat()
    total = sum(
        entry.minutes
        for entry in entries
        if (start_string is None or entry.date >= start_string)
        and entry.date <= today_string
    )
    if live is not None:
        total += live.minutes
    return total


def summarize(entries: Iterable[TimeEntry]) -> SummaryData:
    """Single pass keyed sums by day, project and branch."""
    summary = SummaryData()
    for entry in entries:
        summary.daily_summary[entry.date] = (
            summary.daily_summary.get(entry.date, 0) + entry.minutes
        )
        summary.project_summary[entry.project] = (
            summary.project_summary.get(entry.project, 0) + entry.minutes
        )
        summary.branch_summary[entry.branch] = (
            summary.branch_summary.get(entry.branch, 0) + entry.minutes
        )
        summary.total_time += entry.minutes
    return summary


def with_live_session(
    entries: Iterable[TimeEntry], live: Optional[LiveSession], today: Date
) -> List[TimeEntry]:
    """Copy of entries with the live session merged in as today's row."""
    merged = [TimeEntry(e.date, e.project, e.branch, e.minutes) for e in entries]
    if live is None:
        return merged
    today_string = today.isoformat()
    for entry in merged:
        if entry.key == (today_string, live.project, live.branch):
            entry.minutes += live.minutes
            return merged
    merged.append(TimeEntry(today_string, live.project, live.branch, live.minutes))
    return merged


class TimeQueries:
    """Binds the aggregation functions to a ledger and a tracker."""

    def __init__(self, ledger, tracker, today: Optional[Callable[[], Date]] = None):
        self.ledger = ledger
        self.tracker = tracker
        self._today = today or self._today_from_tracker

    def _today_from_tracker(self) -> Date:
        return datetime.fromtimestamp(self.tracker.scheduler.now()).date()

    def total_since(self, start: Optional[Date]) -> float:
        return total_since(
            self.ledger.get_entries(), start, self._today(), self.tracker.live_session()
        )

    def today(self) -> float:
        return self.total_since(self._today())

    def this_week(self) -> float:
        return self.total_since(start_of_week(self._today()))

    def this_month(self) -> float:
        return self.total_since(start_of_month(self._today()))

    def this_year(self) -> float:
        return self.total_since(start_of_year(self._today()))

    def all_time(self) -> float:
        return self.total_since(None)

    def current_project_today(self) -> float:
        """Today's minutes for the project being tracked right now."""
        project = self.tracker.current_project
        if project is None:
            return 0.0
        today = self._today().isoformat()
        total = sum(
            e.minutes
            for e in self.ledger.get_entries()
            if e.date == today and e.project == project
        )
        live = self.tracker.live_session()
        if live is not None and live.project == project:
            total += live.minutes
        return total

    def entries_with_live_session(self) -> List[TimeEntry]:
        return with_live_session(
            self.ledger.get_entries(), self.tracker.live_session(), self._today()
        )

    def summary(self) -> SummaryData:
        return summarize(self.ledger.get_entries())

    def summary_by_project(self) -> Dict[str, float]:
        return self.summary().project_summary

    def summary_by_branch(self) -> Dict[str, float]:
        return self.summary().branch_summary

    def summary_by_day(self) -> Dict[str, float]:
        return self.summary().daily_summary
