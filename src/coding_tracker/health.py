#!/usr/bin/env python3
"""
Health break reminders.

Eye-rest, stretch and break reminders run on their own timers. While a
modal reminder is on screen the scheduler asks the tracker to pause, and
asks it to resume once the reminder is answered. It only talks to the
tracker through the event queue.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Optional, Protocol

from .clock import Scheduler, TimerHandle
from .config import HealthSettings
from .events import EventQueue, PauseRequested, ResumeRequested

EYE_REST = "eye_rest"
STRETCH = "stretch"
BREAK = "break"


@dataclass(frozen=True)
class Reminder:
    kind: str
    message: str
    done_action: str
    snooze_action: str
    snooze_minutes: float
    severity: str = "warning"


REMINDERS = {
    EYE_REST: Reminder(
        kind=EYE_REST,
        message=(
            "EYE HEALTH REMINDER: Look at something 20 feet away "
            "for 20 seconds (20-20-20 rule)"
        ),
        done_action="I just did it!",
        snooze_action="Remind me in 5 min",
        snooze_minutes=5,
    ),
    STRETCH: Reminder(
        kind=STRETCH,
        message=(
            "STRETCH REMINDER: Stand up and stretch your back and neck - "
            "Your body needs it!"
        ),
        done_action="I just stretched!",
        snooze_action="Remind me in 10 min",
        snooze_minutes=10,
    ),
    BREAK: Reminder(
        kind=BREAK,
        message=(
            "HEALTH BREAK REQUIRED: You've been coding for a long stretch! "
            "Take a break now for your health."
        ),
        done_action="I took a break!",
        snooze_action="Remind me in 15 min",
        snooze_minutes=15,
        severity="error",
    ),
}


class Notifier(Protocol):
    """Shows a reminder and returns the chosen action, or None if dismissed."""

    def show(self, reminder: Reminder, modal: bool) -> Awaitable[Optional[str]]:
        ...


class LoggingNotifier:
    """Notifier for hosts without dialogs: logs the reminder, returns no answer."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def show(self, reminder: Reminder, modal: bool) -> Optional[str]:
        self.logger.warning("%s", reminder.message)
        return None


class HealthBreakScheduler:
    """Runs the three reminder timers and the pause/resume handshake."""

    def __init__(
        self,
        queue: EventQueue,
        scheduler: Scheduler,
        notifier: Notifier,
        settings: Optional[HealthSettings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.queue = queue
        self.scheduler = scheduler
        self.notifier = notifier
        self.settings = settings or HealthSettings()
        self.logger = logger or logging.getLogger(__name__)
        self.is_active = False
        self.showing: Dict[str, bool] = {}
        self._timers: Dict[str, TimerHandle] = {}

    def interval_minutes(self, kind: str) -> float:
        if kind == EYE_REST:
            return self.settings.eye_rest_interval
        if kind == STRETCH:
            return self.settings.stretch_interval
        return self.settings.break_threshold

    def start(self) -> None:
        if not self.settings.enable_notifications or self.is_active:
            return
        self.is_active = True
        for kind in REMINDERS:
            self._arm(kind, self.interval_minutes(kind))
        self.logger.info("Health reminders started")

    def stop(self) -> None:
        if not self.is_active:
            return
        self.is_active = False
        for kind in list(self._timers):
            self._cancel(kind)
        self.logger.info("Health reminders stopped")

    def update_settings(self, settings: HealthSettings) -> None:
        was_enabled = self.settings.enable_notifications
        self.settings = settings
        if self.is_active:
            self.stop()
            self.start()
        elif settings.enable_notifications and not was_enabled:
            self.start()

    def dispose(self) -> None:
        self.stop()

    def trigger(self, kind: str = EYE_REST) -> None:
        """Show a reminder right away."""
        self._fire(kind)

    def _arm(self, kind: str, minutes: float) -> None:
        self._cancel(kind)
        self._timers[kind] = self.scheduler.call_later(
            minutes * 60, lambda: self._fire(kind)
        )

    def _cancel(self, kind: str) -> None:
        handle = self._timers.pop(kind, None)
        if handle is not None:
            handle.cancel()

    def _fire(self, kind: str) -> None:
        self._timers.pop(kind, None)
        if self.showing.get(kind):
            return
        reminder = REMINDERS[kind]
        modal = self.settings.modal_notifications
        self.showing[kind] = True

        if modal:
            self.logger.info("%s reminder: auto-pausing timer", kind)
            self.queue.post(PauseRequested(kind))

        self.scheduler.run_async(
            self.notifier.show(reminder, modal),
            lambda result, error: self._answered(kind, modal, result, error),
        )

    def _answered(
        self, kind: str, modal: bool, result: Any, error: Optional[BaseException]
    ) -> None:
        self.showing[kind] = False
        if error is not None:
            self.logger.warning("Could not show %s reminder: %s", kind, error)
            result = None

        if modal:
            self.logger.info("%s reminder: auto-resuming timer", kind)
            self.queue.post(ResumeRequested(kind))

        if not self.is_active:
            return

        reminder = REMINDERS[kind]
        if result == reminder.snooze_action:
            self.logger.info(
                "%s reminder snoozed for %s minutes", kind, reminder.snooze_minutes
            )
            self._arm(kind, reminder.snooze_minutes)
        else:
            if result == reminder.done_action:
                self.logger.info("%s reminder completed", kind)
            self._arm(kind, self.interval_minutes(kind))
