"""Tests for the activity tracker state machine."""

import unittest
from datetime import datetime

from helpers import START, FakeBranchResolver, FakeWorkspace, ManualScheduler

from coding_tracker.aggregation import TimeQueries
from coding_tracker.config import TrackerSettings
from coding_tracker.events import (
    CURSOR_MOVED,
    DOCUMENT_OPENED,
    TEXT_CHANGED,
    EventQueue,
    PauseRequested,
    ResumeRequested,
)
from coding_tracker.ledger import Ledger
from coding_tracker.storage import MemoryStore
from coding_tracker.tracker import ActivityTracker, TrackerState


class FlakyStore(MemoryStore):
    """MemoryStore whose writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.failing = False

    def save(self, key, rows):
        if self.failing:
            return False
        return super().save(key, rows)


class TrackerTestCase(unittest.TestCase):
    """Builds a tracker on virtual time."""

    def make_tracker(self, **overrides):
        values = {
            "inactivity_timeout": 180,
            "focus_timeout": 60,
            "save_interval": 3600,
            "branch_poll_interval": 3600,
        }
        values.update(overrides)
        self.scheduler = ManualScheduler()
        self.store = FlakyStore()
        self.ledger = Ledger(
            self.store,
            today=lambda: datetime.fromtimestamp(self.scheduler.now()).date(),
        )
        self.queue = EventQueue()
        self.workspace = FakeWorkspace("Alpha")
        self.resolver = FakeBranchResolver("main")
        self.tracker = ActivityTracker(
            ledger=self.ledger,
            queue=self.queue,
            scheduler=self.scheduler,
            workspace=self.workspace,
            branch_resolver=self.resolver,
            settings=TrackerSettings(**values),
        )
        self.queries = TimeQueries(self.ledger, self.tracker)
        return self.tracker

    def setUp(self):
        self.make_tracker()

    def begin(self, kind=CURSOR_MOVED):
        """Send one activity signal and let the first branch lookup finish."""
        self.tracker.signal(kind)
        self.scheduler.settle()

    def rows(self):
        return {
            (e.project, e.branch): e.minutes for e in self.ledger.get_entries()
        }


class TestTrackingStart(TrackerTestCase):
    def test_initial_state_is_idle(self):
        self.assertIs(self.tracker.state, TrackerState.IDLE)
        self.assertFalse(self.tracker.is_active())
        self.assertIsNone(self.tracker.current_project)

    def test_activity_signal_starts_tracking(self):
        self.begin()

        self.assertIs(self.tracker.state, TrackerState.TRACKING)
        self.assertEqual(self.tracker.current_project, "Alpha")
        self.assertEqual(self.tracker.current_branch, "main")
        self.assertEqual(self.tracker.session.started_at, START)
        self.assertEqual(self.ledger.get_entries(), [])

    def test_document_opened_needs_window_focus(self):
        self.tracker.window_focus_changed(False)
        self.tracker.signal(DOCUMENT_OPENED)
        self.assertIs(self.tracker.state, TrackerState.IDLE)

        self.tracker.window_focus_changed(True)
        self.assertIs(self.tracker.state, TrackerState.TRACKING)

    def test_signals_push_inactivity_deadline(self):
        self.begin()
        for _ in range(5):
            self.scheduler.advance(120)
            self.tracker.signal(TEXT_CHANGED)

        self.assertIs(self.tracker.state, TrackerState.TRACKING)
        self.assertEqual(self.tracker.session.last_activity_at, START + 600)


class TestInactivity(TrackerTestCase):
    def test_basic_session_idle_window_is_not_counted(self):
        """One signal at t=300 under a 180s timeout starts a fresh session."""
        self.begin()
        self.scheduler.advance(300)

        self.assertIs(self.tracker.state, TrackerState.PAUSED_BY_INACTIVITY)
        # 180s elapsed minus the 180s grace window leaves nothing to save
        self.assertEqual(self.ledger.get_entries(), [])

        self.tracker.signal(CURSOR_MOVED)
        self.assertIs(self.tracker.state, TrackerState.TRACKING)
        self.assertEqual(self.tracker.session.started_at, START + 300)

    def test_basic_session_saved_before_next_session(self):
        self.begin()
        self.scheduler.advance(120)
        self.tracker.signal(CURSOR_MOVED)
        self.scheduler.advance(120)
        self.tracker.signal(CURSOR_MOVED)
        self.scheduler.advance(60)

        self.workspace.project = "Beta"
        self.tracker.signal(CURSOR_MOVED)

        today = datetime.fromtimestamp(START).date().isoformat()
        entries = self.ledger.get_entries()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].date, today)
        self.assertEqual(entries[0].project, "Alpha")
        self.assertEqual(entries[0].branch, "main")
        self.assertAlmostEqual(entries[0].minutes, 5.0)
        self.assertEqual(self.tracker.current_project, "Beta")
        self.assertEqual(self.tracker.session.started_at, START + 300)

    def test_grace_window_subtracted(self):
        self.begin()
        self.scheduler.advance(100)
        self.tracker.signal(CURSOR_MOVED)
        self.scheduler.advance(100)
        self.tracker.signal(CURSOR_MOVED)
        # Deadline fires at t=380: 380s raw, 200s persisted
        self.scheduler.advance(400)

        self.assertIs(self.tracker.state, TrackerState.PAUSED_BY_INACTIVITY)
        self.assertEqual(self.rows(), {("Alpha", "main"): round(200 / 60, 2)})

    def test_inactivity_cancels_timers(self):
        self.make_tracker(save_interval=30, branch_poll_interval=30)
        self.begin()
        self.scheduler.advance(200)

        self.assertIs(self.tracker.state, TrackerState.PAUSED_BY_INACTIVITY)
        self.assertEqual(self.scheduler.active_timers(), [])

    def test_stop_with_inactivity_reason_uses_grace(self):
        self.begin()
        self.scheduler.advance(170)
        self.tracker.stop_tracking("inactivity")

        self.assertIs(self.tracker.state, TrackerState.IDLE)
        self.assertEqual(self.ledger.get_entries(), [])

    def test_stop_with_other_reason_keeps_raw_time(self):
        self.begin()
        self.scheduler.advance(170)
        self.tracker.stop_tracking("user")

        self.assertEqual(self.rows(), {("Alpha", "main"): round(170 / 60, 2)})


class TestFocus(TrackerTestCase):
    def test_focus_loss_flushes_immediately(self):
        self.begin()
        self.scheduler.advance(120)
        self.tracker.window_focus_changed(False)

        self.assertEqual(self.rows(), {("Alpha", "main"): 2.0})
        self.assertIs(self.tracker.state, TrackerState.TRACKING)
        self.assertTrue(self.tracker.awaiting_focus)

    def test_focus_regained_starts_new_session(self):
        self.begin()
        self.scheduler.advance(120)
        self.tracker.window_focus_changed(False)
        self.scheduler.advance(30)
        self.tracker.window_focus_changed(True)

        self.assertIs(self.tracker.state, TrackerState.TRACKING)
        self.assertFalse(self.tracker.awaiting_focus)
        self.assertEqual(self.tracker.session.started_at, START + 150)

        self.scheduler.advance(60)
        self.tracker.stop_tracking("user")
        # Time away from the window is not counted
        self.assertEqual(self.rows(), {("Alpha", "main"): 3.0})

    def test_focus_timeout_pauses(self):
        self.begin()
        self.scheduler.advance(60)
        self.tracker.window_focus_changed(False)
        self.scheduler.advance(60)

        self.assertIs(self.tracker.state, TrackerState.PAUSED_BY_FOCUS_LOSS)
        self.assertEqual(self.rows(), {("Alpha", "main"): 1.0})

        self.tracker.window_focus_changed(True)
        self.assertIs(self.tracker.state, TrackerState.TRACKING)

    def test_periodic_saves_suspended_while_away(self):
        self.make_tracker(save_interval=10, branch_poll_interval=10)
        self.begin()
        self.scheduler.advance(30)
        self.tracker.window_focus_changed(False)
        saved = self.rows()
        calls = self.resolver.calls

        self.assertEqual(len(self.scheduler.active_timers()), 2)
        self.scheduler.advance(50)
        self.assertEqual(self.rows(), saved)
        self.assertEqual(self.resolver.calls, calls)
        self.assertAlmostEqual(self.queries.today(), saved[("Alpha", "main")])

        self.tracker.window_focus_changed(True)
        self.assertEqual(self.rows(), saved)
        self.assertEqual(len(self.scheduler.active_timers()), 3)

        self.scheduler.advance(10)
        self.assertAlmostEqual(
            self.rows()[("Alpha", "main")], saved[("Alpha", "main")] + 0.17
        )

    def test_focus_timeout_with_short_save_interval(self):
        self.make_tracker(save_interval=10)
        self.begin()
        self.scheduler.advance(30)
        self.tracker.window_focus_changed(False)
        saved = self.rows()
        self.scheduler.advance(60)

        self.assertIs(self.tracker.state, TrackerState.PAUSED_BY_FOCUS_LOSS)
        self.assertEqual(self.rows(), saved)


class TestPauses(TrackerTestCase):
    def test_health_pause_and_resume(self):
        self.begin()
        self.scheduler.advance(120)
        self.queue.post(PauseRequested("eye_rest"))

        self.assertIs(self.tracker.state, TrackerState.PAUSED_BY_HEALTH_BREAK)
        self.assertEqual(self.rows(), {("Alpha", "main"): 2.0})

        self.tracker.signal(CURSOR_MOVED)
        self.assertIs(self.tracker.state, TrackerState.PAUSED_BY_HEALTH_BREAK)

        self.queue.post(ResumeRequested("eye_rest"))
        self.assertIs(self.tracker.state, TrackerState.TRACKING)

    def test_manual_pause_dominates_health_resume(self):
        self.begin()
        self.queue.post(PauseRequested("stretch"))
        self.tracker.pause_manually()
        self.queue.post(ResumeRequested("stretch"))

        self.assertIs(self.tracker.state, TrackerState.PAUSED_MANUALLY)

    def test_manual_pause_ignores_activity(self):
        self.begin()
        self.scheduler.advance(60)
        self.tracker.pause_manually()
        self.tracker.signal(CURSOR_MOVED)

        self.assertIs(self.tracker.state, TrackerState.PAUSED_MANUALLY)
        self.assertEqual(self.rows(), {("Alpha", "main"): 1.0})

        self.tracker.resume_manually()
        self.assertIs(self.tracker.state, TrackerState.TRACKING)

    def test_health_pause_ignored_when_not_tracking(self):
        self.queue.post(PauseRequested("break"))
        self.assertIs(self.tracker.state, TrackerState.IDLE)


class TestSavesAndBranches(TrackerTestCase):
    def test_periodic_save_is_non_terminal(self):
        self.make_tracker(save_interval=60)
        self.begin()
        self.tracker.signal(CURSOR_MOVED)
        self.scheduler.advance(150)

        self.assertIs(self.tracker.state, TrackerState.TRACKING)
        self.assertEqual(self.rows(), {("Alpha", "main"): 2.0})
        self.assertEqual(self.tracker.session.started_at, START + 120)

    def test_failed_save_retries_cumulative_duration(self):
        self.make_tracker(save_interval=60)
        self.begin()
        self.store.failing = True
        self.scheduler.advance(60)

        self.assertEqual(self.ledger.get_entries(), [])
        self.assertEqual(self.tracker.session.started_at, START)

        self.store.failing = False
        self.scheduler.advance(60)
        self.assertEqual(self.rows(), {("Alpha", "main"): 2.0})
        self.assertIs(self.tracker.state, TrackerState.TRACKING)

    def test_failed_terminal_flush_is_retried(self):
        self.begin()
        self.scheduler.advance(120)
        self.store.failing = True
        self.tracker.stop_tracking("user")
        self.assertEqual(len(self.tracker.pending), 1)

        self.store.failing = False
        self.begin()
        self.scheduler.advance(60)
        self.tracker.save_current_session()

        self.assertEqual(self.rows(), {("Alpha", "main"): 3.0})
        self.assertEqual(self.tracker.pending, [])

    def test_branch_switch(self):
        self.make_tracker(inactivity_timeout=1200, branch_poll_interval=600)
        self.begin()
        self.resolver.branch = "feature-x"
        self.scheduler.advance(600)

        self.assertEqual(self.tracker.current_branch, "feature-x")
        self.assertEqual(self.rows(), {("Alpha", "main"): 10.0})

        with_live = {
            (e.project, e.branch): e.minutes
            for e in self.queries.entries_with_live_session()
        }
        self.assertEqual(
            with_live, {("Alpha", "main"): 10.0, ("Alpha", "feature-x"): 0.0}
        )

    def test_branch_poll_skipped_while_in_flight(self):
        self.make_tracker(branch_poll_interval=5)
        self.tracker.signal(CURSOR_MOVED)
        self.scheduler.advance(12, settle=False)

        self.assertEqual(len(self.scheduler.pending), 1)
        self.scheduler.settle()
        self.assertEqual(self.resolver.calls, 1)
        self.assertFalse(self.tracker.branch_poll_in_flight)

    def test_branch_lookup_error_resolves_unknown(self):
        self.resolver.error = OSError("git not found")
        self.begin()

        self.assertIs(self.tracker.state, TrackerState.TRACKING)
        self.assertEqual(self.tracker.current_branch, "unknown")

    def test_project_switch_flushes_old_project(self):
        self.begin()
        self.scheduler.advance(90)
        self.workspace.project = "Beta"
        self.tracker.signal(TEXT_CHANGED)
        self.scheduler.settle()
        self.scheduler.advance(30)
        self.tracker.stop_tracking("user")

        self.assertEqual(
            self.rows(), {("Alpha", "main"): 1.5, ("Beta", "main"): 0.5}
        )


class TestLifecycle(TrackerTestCase):
    def test_no_timer_accumulation_across_cycles(self):
        self.make_tracker(save_interval=5, branch_poll_interval=5)
        for _ in range(10):
            self.begin()
            self.tracker.pause_manually()
            self.tracker.resume_manually()
            self.scheduler.settle()

        self.assertEqual(len(self.scheduler.active_timers()), 3)
        self.tracker.stop_tracking("user")
        self.assertEqual(self.scheduler.active_timers(), [])

    def test_config_change_keeps_session(self):
        self.begin()
        self.scheduler.advance(100)
        self.tracker.update_configuration(
            TrackerSettings(
                inactivity_timeout=600,
                focus_timeout=60,
                save_interval=3600,
                branch_poll_interval=3600,
            )
        )
        self.scheduler.advance(300)

        self.assertIs(self.tracker.state, TrackerState.TRACKING)
        self.assertEqual(self.tracker.session.started_at, START)

    def test_config_change_shorter_timeout_counts_from_last_activity(self):
        self.begin()
        self.scheduler.advance(100)
        self.tracker.update_configuration(
            TrackerSettings(
                inactivity_timeout=120,
                focus_timeout=60,
                save_interval=3600,
                branch_poll_interval=3600,
            )
        )
        self.scheduler.advance(19)
        self.assertIs(self.tracker.state, TrackerState.TRACKING)
        self.scheduler.advance(1)
        self.assertIs(self.tracker.state, TrackerState.PAUSED_BY_INACTIVITY)

    def test_dispose_flushes_raw_time(self):
        self.begin()
        self.scheduler.advance(90)
        self.tracker.dispose()

        self.assertIs(self.tracker.state, TrackerState.IDLE)
        self.assertEqual(self.rows(), {("Alpha", "main"): 1.5})

    def test_discard_session_saves_nothing(self):
        self.begin()
        self.scheduler.advance(90)
        self.tracker.discard_session()

        self.assertIs(self.tracker.state, TrackerState.IDLE)
        self.assertEqual(self.ledger.get_entries(), [])
        self.assertEqual(self.scheduler.active_timers(), [])


class TestLiveTotals(TrackerTestCase):
    def test_live_session_counted_within_window(self):
        self.begin()
        self.scheduler.advance(90)
        self.assertAlmostEqual(self.queries.today(), 1.5)

    def test_no_double_counting_while_paused(self):
        self.begin()
        self.scheduler.advance(100)
        self.tracker.signal(CURSOR_MOVED)
        self.scheduler.advance(400)
        first = self.queries.today()

        self.scheduler.advance(3600)
        second = self.queries.today()

        self.assertEqual(first, second)
        self.assertIs(self.tracker.state, TrackerState.PAUSED_BY_INACTIVITY)
