#!/usr/bin/env python3
"""
Activity tracker state machine.

Consumes editor activity signals, timer fires and commands from the event
queue, decides when active coding starts and stops, and flushes session
time into the ledger under the right project and branch.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from . import diagnostics
from .branch import UNKNOWN_BRANCH
from .clock import Scheduler, TimerHandle
from .config import TrackerSettings
from .diagnostics import DiagnosticLog
from .events import (
    ActivitySignal,
    BranchPollTick,
    BranchResolved,
    ConfigChanged,
    DiscardSession,
    DOCUMENT_OPENED,
    EventQueue,
    FocusDeadline,
    InactivityDeadline,
    PauseManually,
    PauseRequested,
    ResumeManually,
    ResumeRequested,
    SaveSession,
    SaveTick,
    Shutdown,
    StartTracking,
    StopTracking,
    WindowFocusChanged,
)
from .ledger import Ledger, SaveResult
from .workspace import Workspace


class TrackerState(Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    PAUSED_BY_INACTIVITY = "paused_by_inactivity"
    PAUSED_BY_FOCUS_LOSS = "paused_by_focus_loss"
    PAUSED_BY_HEALTH_BREAK = "paused_by_health_break"
    PAUSED_MANUALLY = "paused_manually"


# States an activity signal may wake the tracker from
RESUMABLE_STATES = (
    TrackerState.IDLE,
    TrackerState.PAUSED_BY_INACTIVITY,
    TrackerState.PAUSED_BY_FOCUS_LOSS,
)

INACTIVITY = "inactivity"
FOCUS_TIMEOUT = "focus timeout"
FOCUS_LOST = "focus lost"
PERIODIC_SAVE = "periodic save"
MANUAL_SAVE = "manual save"
PROJECT_SWITCH = "project switch"
BRANCH_CHANGE = "branch change"
HEALTH_PAUSE = "health modal pause"
HEALTH_RESUME = "health modal resume"
MANUAL_PAUSE = "manual pause"
MANUAL_RESUME = "manual resume"
SHUTDOWN = "shutdown"


@dataclass
class TrackingSession:
    """The live, not yet persisted stretch of active time."""

    project: str
    branch: str
    started_at: float
    last_activity_at: float


@dataclass(frozen=True)
class LiveSession:
    project: str
    branch: str
    minutes: float


@dataclass
class PendingEntry:
    date: float
    project: str
    branch: str
    minutes: float


class ActivityTracker:
    """Single-owner state machine driven by the event queue."""

    def __init__(
        self,
        ledger: Ledger,
        queue: EventQueue,
        scheduler: Scheduler,
        workspace: Workspace,
        branch_resolver: Any,
        settings: Optional[TrackerSettings] = None,
        diagnostic_log: Optional[DiagnosticLog] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.ledger = ledger
        self.queue = queue
        self.scheduler = scheduler
        self.workspace = workspace
        self.branch_resolver = branch_resolver
        self.settings = settings or TrackerSettings()
        self.diagnostics = diagnostic_log or DiagnosticLog()
        self.logger = logger or logging.getLogger(__name__)

        self.state = TrackerState.IDLE
        self.session: Optional[TrackingSession] = None
        self.known_branch = UNKNOWN_BRANCH
        self.window_focused = True
        self.awaiting_focus = False
        self.branch_poll_in_flight = False
        self.pending: List[PendingEntry] = []
        self._timers: Dict[str, TimerHandle] = {}

        self._handlers: Dict[type, Callable[[Any], None]] = {
            ActivitySignal: self._on_activity,
            WindowFocusChanged: self._on_window_focus,
            InactivityDeadline: self._on_inactivity_deadline,
            FocusDeadline: self._on_focus_deadline,
            SaveTick: self._on_save_tick,
            BranchPollTick: self._on_branch_poll,
            BranchResolved: self._on_branch_resolved,
            PauseRequested: self._on_pause_requested,
            ResumeRequested: self._on_resume_requested,
            PauseManually: self._on_pause_manually,
            ResumeManually: self._on_resume_manually,
            StartTracking: self._on_start,
            StopTracking: self._on_stop,
            SaveSession: self._on_save,
            DiscardSession: self._on_discard,
            ConfigChanged: self._on_config_changed,
            Shutdown: self._on_shutdown,
        }
        queue.subscribe(self.handle)

    # Public API: every call becomes a queued message

    def signal(self, kind: str) -> None:
        self.queue.post(ActivitySignal(kind))

    def window_focus_changed(self, focused: bool) -> None:
        self.queue.post(WindowFocusChanged(focused))

    def start_tracking(self, reason: str = "command") -> None:
        self.queue.post(StartTracking(reason))

    def stop_tracking(self, reason: str = "command") -> None:
        self.queue.post(StopTracking(reason))

    def save_current_session(self, reason: str = MANUAL_SAVE) -> None:
        self.queue.post(SaveSession(reason))

    def pause_manually(self) -> None:
        self.queue.post(PauseManually())

    def resume_manually(self) -> None:
        self.queue.post(ResumeManually())

    def discard_session(self, reason: str = "reset") -> None:
        self.queue.post(DiscardSession(reason))

    def update_configuration(self, settings: TrackerSettings) -> None:
        self.queue.post(ConfigChanged(settings))

    def dispose(self) -> None:
        self.queue.post(Shutdown())

    # Read API

    def is_active(self) -> bool:
        return self.state is TrackerState.TRACKING

    @property
    def current_project(self) -> Optional[str]:
        return self.session.project if self.session else None

    @property
    def current_branch(self) -> str:
        return self.session.branch if self.session else self.known_branch

    def live_session(self) -> Optional[LiveSession]:
        """The unsaved session, if tracking and still inside the activity window."""
        if self.state is not TrackerState.TRACKING or self.session is None:
            return None
        if self.awaiting_focus:
            return None
        now = self.scheduler.now()
        if now - self.session.last_activity_at >= self.settings.inactivity_timeout:
            return None
        minutes = max(0.0, now - self.session.started_at) / 60
        return LiveSession(self.session.project, self.session.branch, minutes)

    # Dispatch

    def handle(self, event: Any) -> None:
        handler = self._handlers.get(type(event))
        if handler is not None:
            handler(event)

    # Timers

    def _arm(self, role: str, delay: float, event: Any) -> None:
        self._cancel(role)
        self._timers[role] = self.scheduler.call_later(
            delay, lambda: self.queue.post(event)
        )

    def _arm_periodic(self, role: str, interval: float, event: Any) -> None:
        self._cancel(role)
        self._timers[role] = self.scheduler.call_every(
            interval, lambda: self.queue.post(event)
        )

    def _cancel(self, role: str) -> None:
        handle = self._timers.pop(role, None)
        if handle is not None:
            handle.cancel()

    def _cancel_all(self) -> None:
        for role in list(self._timers):
            self._cancel(role)

    def _arm_inactivity(self, delay: Optional[float] = None) -> None:
        if delay is None:
            delay = self.settings.inactivity_timeout
        self._arm("inactivity", max(0.0, delay), InactivityDeadline())

    def _arm_session_timers(self) -> None:
        self._arm_periodic("save", self.settings.save_interval, SaveTick())
        self._arm_periodic(
            "branch_poll", self.settings.branch_poll_interval, BranchPollTick()
        )

    # Session lifecycle

    def _begin(self, reason: str) -> None:
        now = self.scheduler.now()
        project = self.workspace.current_project()
        self.session = TrackingSession(
            project=project,
            branch=self.known_branch,
            started_at=now,
            last_activity_at=now,
        )
        self.state = TrackerState.TRACKING
        self.awaiting_focus = False
        self._cancel("focus")
        self._arm_inactivity()
        self._arm_session_timers()
        self.logger.info(
            "Tracking started for %s/%s (%s)", project, self.known_branch, reason
        )
        self.diagnostics.log_event(
            diagnostics.TRACKING_STARTED,
            project=project,
            branch=self.known_branch,
            reason=reason,
        )
        self._poll_branch()

    def _end(self, next_state: TrackerState, reason: str, grace: float = 0.0) -> None:
        """Flush the session, clear it and move to next_state."""
        if self.session is not None:
            self._flush(reason, grace=grace, terminal=True)
            self.diagnostics.log_event(
                diagnostics.TRACKING_STOPPED,
                project=self.session.project,
                branch=self.session.branch,
                reason=reason,
            )
            self.logger.info(
                "Tracking stopped for %s/%s (%s)",
                self.session.project,
                self.session.branch,
                reason,
            )
        self.session = None
        self.awaiting_focus = False
        self._cancel_all()
        self.state = next_state

    def _flush(self, reason: str, grace: float = 0.0, terminal: bool = False) -> bool:
        """Persist the session's elapsed time and re-anchor it.

        Returns False when the ledger write failed; the anchor then stays put
        so the next flush carries the cumulative duration.
        """
        session = self.session
        if session is None:
            return True

        self._retry_pending()

        now = self.scheduler.now()
        seconds = max(0.0, (now - session.started_at) - grace)
        minutes = seconds / 60
        result = self.ledger.add_entry(now, session.project, session.branch, minutes)

        if result is SaveResult.FAILED:
            self.logger.warning(
                "Could not save %.2f minutes for %s/%s (%s)",
                minutes,
                session.project,
                session.branch,
                reason,
            )
            if terminal:
                self.pending.append(
                    PendingEntry(now, session.project, session.branch, minutes)
                )
            return False

        session.started_at = now
        if result is SaveResult.SAVED:
            self.diagnostics.log_event(
                diagnostics.SESSION_SAVED,
                project=session.project,
                branch=session.branch,
                duration=minutes,
                reason=reason,
            )
        return True

    def _retry_pending(self) -> None:
        still_pending = []
        for entry in self.pending:
            result = self.ledger.add_entry(
                entry.date, entry.project, entry.branch, entry.minutes
            )
            if result is SaveResult.FAILED:
                still_pending.append(entry)
        self.pending = still_pending

    # Branch polling

    def _poll_branch(self) -> None:
        if self.branch_poll_in_flight:
            self.logger.debug("Branch poll already in flight, skipping")
            return
        self.branch_poll_in_flight = True
        self.scheduler.run_async(
            self.branch_resolver.current_branch(self.workspace.current_path()),
            self._branch_poll_done,
        )

    def _branch_poll_done(self, result: Any, error: Optional[BaseException]) -> None:
        if error is not None:
            self.logger.warning("Branch lookup failed: %s", error)
            result = UNKNOWN_BRANCH
        self.queue.post(BranchResolved(result or UNKNOWN_BRANCH))

    # Event handlers

    def _on_activity(self, event: ActivitySignal) -> None:
        if event.kind == DOCUMENT_OPENED and not self.window_focused:
            return
        self._on_liveness(event.kind)

    def _on_liveness(self, reason: str) -> None:
        if self.state in RESUMABLE_STATES:
            self._begin(reason)
            return
        if self.state is not TrackerState.TRACKING:
            self.logger.debug("Ignoring %s while %s", reason, self.state.value)
            return

        project = self.workspace.current_project()
        if project != self.session.project:
            if self._flush(PROJECT_SWITCH):
                self.logger.info(
                    "Project switched from %s to %s", self.session.project, project
                )
                self.session.project = project
                self._poll_branch()
        self.session.last_activity_at = self.scheduler.now()
        self._arm_inactivity()

    def _on_window_focus(self, event: WindowFocusChanged) -> None:
        self.window_focused = event.focused
        if not event.focused:
            if self.state is TrackerState.TRACKING and not self.awaiting_focus:
                self._flush(FOCUS_LOST)
                self.awaiting_focus = True
                # Nothing is saved or polled while away from the window
                self._cancel("save")
                self._cancel("branch_poll")
                self._arm("focus", self.settings.focus_timeout, FocusDeadline())
            return

        if self.state is TrackerState.TRACKING and self.awaiting_focus:
            self._cancel("focus")
            self.awaiting_focus = False
            now = self.scheduler.now()
            # Time away from the window is not counted
            self.session.started_at = now
            self.session.last_activity_at = now
            self.session.project = self.workspace.current_project()
            self._arm_inactivity()
            self._arm_session_timers()
            self.diagnostics.log_event(
                diagnostics.TRACKING_STARTED,
                project=self.session.project,
                branch=self.session.branch,
                reason="focus regained",
            )
            return
        self._on_liveness("window focused")

    def _on_inactivity_deadline(self, event: InactivityDeadline) -> None:
        if self.state is not TrackerState.TRACKING or self.session is None:
            return
        now = self.scheduler.now()
        inactive_for = now - self.session.last_activity_at
        timeout = self.settings.inactivity_timeout
        if inactive_for < timeout:
            self._arm_inactivity(timeout - inactive_for)
            return
        self.logger.info("No activity for %.0fs, pausing tracking", inactive_for)
        self.diagnostics.log_event(
            diagnostics.INACTIVITY_DETECTED,
            project=self.session.project,
            branch=self.session.branch,
            inactive_for=inactive_for,
        )
        self._end(TrackerState.PAUSED_BY_INACTIVITY, INACTIVITY, grace=timeout)

    def _on_focus_deadline(self, event: FocusDeadline) -> None:
        if self.state is not TrackerState.TRACKING or not self.awaiting_focus:
            return
        self._end(
            TrackerState.PAUSED_BY_FOCUS_LOSS,
            FOCUS_TIMEOUT,
            grace=self.settings.focus_timeout,
        )

    def _on_save_tick(self, event: SaveTick) -> None:
        if self.state is TrackerState.TRACKING and not self.awaiting_focus:
            self._flush(PERIODIC_SAVE)

    def _on_branch_poll(self, event: BranchPollTick) -> None:
        if self.state is TrackerState.TRACKING and not self.awaiting_focus:
            self._poll_branch()

    def _on_branch_resolved(self, event: BranchResolved) -> None:
        self.branch_poll_in_flight = False
        branch = event.branch
        self.known_branch = branch
        if self.state is not TrackerState.TRACKING or self.session is None:
            return
        if branch == self.session.branch:
            return

        old_branch = self.session.branch
        if not self._flush(BRANCH_CHANGE):
            return
        self.session.branch = branch
        self.logger.info("Branch changed from %s to %s", old_branch, branch)
        self.diagnostics.log_event(
            diagnostics.BRANCH_CHANGED,
            project=self.session.project,
            branch=branch,
            old_branch=old_branch,
            new_branch=branch,
        )

    def _on_pause_requested(self, event: PauseRequested) -> None:
        if self.state is TrackerState.TRACKING:
            self.logger.info("%s reminder: pausing tracking", event.source)
            self._end(TrackerState.PAUSED_BY_HEALTH_BREAK, HEALTH_PAUSE)

    def _on_resume_requested(self, event: ResumeRequested) -> None:
        if self.state is TrackerState.PAUSED_MANUALLY:
            self.logger.info("Manual pause active, ignoring %s resume", event.source)
            return
        if self.state is TrackerState.PAUSED_BY_HEALTH_BREAK:
            self._begin(HEALTH_RESUME)

    def _on_pause_manually(self, event: PauseManually) -> None:
        self._end(TrackerState.PAUSED_MANUALLY, MANUAL_PAUSE)

    def _on_resume_manually(self, event: ResumeManually) -> None:
        if self.state is TrackerState.PAUSED_MANUALLY:
            self._begin(MANUAL_RESUME)

    def _on_start(self, event: StartTracking) -> None:
        if self.state is not TrackerState.TRACKING:
            self._begin(event.reason)

    def _on_stop(self, event: StopTracking) -> None:
        if self.state is not TrackerState.TRACKING:
            return
        self._end(TrackerState.IDLE, event.reason, grace=self._grace_for(event.reason))

    def _on_save(self, event: SaveSession) -> None:
        if self.state is TrackerState.TRACKING:
            self._flush(event.reason)

    def _on_discard(self, event: DiscardSession) -> None:
        if self.session is not None:
            self.logger.info(
                "Discarding session for %s/%s (%s)",
                self.session.project,
                self.session.branch,
                event.reason,
            )
        self.session = None
        self.pending = []
        self.awaiting_focus = False
        self._cancel_all()
        self.state = TrackerState.IDLE

    def _on_shutdown(self, event: Shutdown) -> None:
        if self.state is TrackerState.TRACKING:
            self._end(TrackerState.IDLE, SHUTDOWN)
        else:
            self._retry_pending()
            self._cancel_all()

    def _on_config_changed(self, event: ConfigChanged) -> None:
        self.settings = event.settings
        if self.state is not TrackerState.TRACKING or self.session is None:
            return
        # Re-arm from the new values; the session itself is untouched
        idle_for = self.scheduler.now() - self.session.last_activity_at
        self._arm_inactivity(self.settings.inactivity_timeout - idle_for)
        if self.awaiting_focus:
            self._arm("focus", self.settings.focus_timeout, FocusDeadline())
        else:
            self._arm_session_timers()

    def _grace_for(self, reason: str) -> float:
        if reason == INACTIVITY:
            return self.settings.inactivity_timeout
        if reason == FOCUS_TIMEOUT:
            return self.settings.focus_timeout
        return 0.0
