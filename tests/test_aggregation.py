"""Tests for totals and summaries."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from coding_tracker.aggregation import (
    TimeQueries,
    start_of_month,
    start_of_week,
    start_of_year,
    summarize,
    total_since,
    with_live_session,
)
from coding_tracker.ledger import ENTRIES_KEY, Ledger
from coding_tracker.storage import MemoryStore, TimeEntry
from coding_tracker.tracker import LiveSession

TODAY = date(2024, 3, 13)


@pytest.fixture
def entries(sample_entries):
    return [TimeEntry.from_dict(row) for row in sample_entries]


@pytest.fixture
def queries(sample_entries):
    ledger = Ledger(MemoryStore({ENTRIES_KEY: sample_entries}))
    tracker = MagicMock()
    tracker.live_session.return_value = None
    tracker.current_project = None
    return TimeQueries(ledger, tracker, today=lambda: TODAY)


class TestPeriodStarts:
    def test_week_starts_on_sunday(self):
        assert start_of_week(TODAY) == date(2024, 3, 10)
        assert start_of_week(date(2024, 3, 10)) == date(2024, 3, 10)
        assert start_of_week(date(2024, 3, 16)) == date(2024, 3, 10)
        assert start_of_week(date(2024, 3, 17)) == date(2024, 3, 17)

    def test_month_and_year(self):
        assert start_of_month(TODAY) == date(2024, 3, 1)
        assert start_of_year(TODAY) == date(2024, 1, 1)


class TestTotals:
    def test_period_totals(self, queries):
        assert queries.today() == pytest.approx(42.25)
        assert queries.this_week() == pytest.approx(87.75)
        assert queries.this_month() == pytest.approx(87.75)
        assert queries.this_year() == pytest.approx(147.75)
        assert queries.all_time() == pytest.approx(267.75)

    def test_future_rows_excluded(self, entries):
        entries.append(TimeEntry("2024-03-14", "Alpha", "main", 10))
        assert total_since(entries, TODAY, TODAY) == pytest.approx(42.25)

    def test_live_session_added(self, queries):
        queries.tracker.live_session.return_value = LiveSession("Beta", "main", 2.0)
        assert queries.today() == pytest.approx(44.25)
        assert queries.all_time() == pytest.approx(269.75)

    def test_current_project_today(self, queries):
        queries.tracker.current_project = "Beta"
        queries.tracker.live_session.return_value = LiveSession("Beta", "main", 2.0)
        assert queries.current_project_today() == pytest.approx(44.25)

        queries.tracker.current_project = "Alpha"
        queries.tracker.live_session.return_value = LiveSession("Alpha", "main", 1.0)
        assert queries.current_project_today() == pytest.approx(1.0)

    def test_current_project_today_when_idle(self, queries):
        assert queries.current_project_today() == 0.0

    def test_empty_ledger(self):
        tracker = MagicMock()
        tracker.live_session.return_value = None
        queries = TimeQueries(Ledger(MemoryStore()), tracker, today=lambda: TODAY)
        assert queries.all_time() == 0
        assert queries.summary_by_project() == {}


class TestSummaries:
    def test_summarize(self, entries):
        summary = summarize(entries)
        assert summary.project_summary == {"Alpha": 165.5, "Beta": 102.25}
        assert summary.branch_summary == {
            "main": 192.25,
            "feature-x": 15.5,
            "develop": 60.0,
        }
        assert summary.daily_summary["2024-03-10"] == 30.0
        assert summary.total_time == pytest.approx(267.75)

    def test_summary_views(self, queries):
        assert queries.summary_by_project()["Beta"] == 102.25
        assert queries.summary_by_branch()["develop"] == 60.0
        assert len(queries.summary_by_day()) == 5

    def test_live_session_merged_into_existing_row(self, entries):
        merged = with_live_session(entries, LiveSession("Beta", "main", 1.75), TODAY)
        row = [e for e in merged if e.key == ("2024-03-13", "Beta", "main")]
        assert row[0].minutes == 44.0
        assert len(merged) == len(entries)
        # Originals are untouched
        assert entries[2].minutes == 42.25

    def test_live_session_appended_as_new_row(self, entries):
        merged = with_live_session(entries, LiveSession("Alpha", "feature-x", 0.0), TODAY)
        assert merged[-1] == TimeEntry("2024-03-13", "Alpha", "feature-x", 0.0)

    def test_no_live_session(self, entries):
        assert with_live_session(entries, None, TODAY) == entries
