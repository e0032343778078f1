#!/usr/bin/env python3
"""
macOS editor host for the coding time tracker.
Turns frontmost-application and HID idle polling into tracker signals and
shows health reminders as AppleScript dialogs.
"""

import asyncio
import logging
from typing import Any, Iterable, Optional

try:
    from AppKit import NSWorkspace
    from Quartz import (
        CGEventSourceSecondsSinceLastEventType,
        kCGAnyInputEventType,
        kCGEventSourceStateHIDSystemState,
    )
except ImportError as exc:  # pragma: no cover - depends on platform
    raise ImportError(
        "pyobjc-framework-Cocoa and pyobjc-framework-Quartz are required "
        "for macOS editor detection"
    ) from exc

from .clock import Scheduler, TimerHandle
from .events import CURSOR_MOVED, DOCUMENT_OPENED
from .health import Reminder
from .tracker import ActivityTracker
from .workspace import EditorWorkspace

logger = logging.getLogger(__name__)


def _applescript_string(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class ApplicationDetector:
    """Detects the currently active application on macOS."""

    def get_active_application(self) -> Optional[str]:
        """Get the currently active application name."""
        try:
            workspace = NSWorkspace.sharedWorkspace()
            active_app = workspace.activeApplication()
            if active_app:
                return active_app["NSApplicationName"]
        except Exception as e:
            logger.warning("Error getting active application: %s", e)
        return None


class IdleDetector:
    """Reads the system-wide time since the last keyboard or mouse event."""

    def get_system_idle_time(self) -> float:
        """Get system idle time in seconds."""
        try:
            return float(
                CGEventSourceSecondsSinceLastEventType(
                    kCGEventSourceStateHIDSystemState, kCGAnyInputEventType
                )
            )
        except Exception as e:
            logger.warning("Error getting system idle time: %s", e)
            return float("inf")


class DocumentDetector:
    """Reads the document shown in an app's front window through System Events."""

    def __init__(self, timeout: float = 0.5):
        self.timeout = timeout

    def build_script(self, app_name: str) -> str:
        return (
            'tell application "System Events"\n'
            f"    tell process {_applescript_string(app_name)}\n"
            '        return value of attribute "AXDocument" of front window\n'
            "    end tell\n"
            "end tell"
        )

    async def front_document(self, app_name: str) -> Optional[str]:
        process = await asyncio.create_subprocess_exec(
            "osascript",
            "-e",
            self.build_script(app_name),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return None
        if process.returncode != 0:
            return None
        document = stdout.decode("utf-8", errors="replace").strip()
        if not document or document == "missing value":
            return None
        return document


class EditorSignalSource:
    """Polls the desktop and feeds focus and liveness signals to the tracker.

    The editor counts as focused while one of ``editor_apps`` is frontmost.
    While focused, any keyboard or mouse input since the previous poll is
    reported as cursor activity. Given an ``EditorWorkspace``, the front
    window's document is looked up too, and a new one is reported as
    ``document_opened``.
    """

    def __init__(
        self,
        tracker: ActivityTracker,
        scheduler: Scheduler,
        editor_apps: Iterable[str],
        poll_interval: float = 1.0,
        app_detector: Optional[ApplicationDetector] = None,
        idle_detector: Optional[IdleDetector] = None,
        workspace: Optional[EditorWorkspace] = None,
        document_detector: Optional[DocumentDetector] = None,
    ):
        self.tracker = tracker
        self.scheduler = scheduler
        self.editor_apps = set(editor_apps)
        self.poll_interval = poll_interval
        self.app_detector = app_detector or ApplicationDetector()
        self.idle_detector = idle_detector or IdleDetector()
        self.workspace = workspace
        self.document_detector = document_detector or DocumentDetector()
        self.editor_focused: Optional[bool] = None
        self.document_lookup_in_flight = False
        self._timer: Optional[TimerHandle] = None

    def start(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.scheduler.call_every(self.poll_interval, self.poll)
        self.poll()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def poll(self) -> None:
        active_app = self.app_detector.get_active_application()
        focused = active_app in self.editor_apps

        if focused != self.editor_focused:
            self.editor_focused = focused
            logger.debug("Editor focus changed: %s (%s)", focused, active_app)
            self.tracker.window_focus_changed(focused)

        if not focused:
            return
        if self.workspace is not None and not self.document_lookup_in_flight:
            self.document_lookup_in_flight = True
            self.scheduler.run_async(
                self.document_detector.front_document(active_app),
                self._document_resolved,
            )
        if self.idle_detector.get_system_idle_time() < self.poll_interval:
            self.tracker.signal(CURSOR_MOVED)

    def _document_resolved(self, document: Any, error: Optional[BaseException]) -> None:
        self.document_lookup_in_flight = False
        if error is not None:
            logger.debug("Front document lookup failed: %s", error)
            return
        if document and self.workspace.set_active_document(document):
            logger.debug("Active document: %s", document)
            self.tracker.signal(DOCUMENT_OPENED)


class AppleScriptNotifier:
    """Shows health reminders with ``osascript``."""

    def __init__(self, title: str = "Coding Time Tracker", timeout: float = 600.0):
        self.title = title
        self.timeout = timeout

    def build_script(self, reminder: Reminder, modal: bool) -> str:
        if not modal:
            return (
                f"display notification {_applescript_string(reminder.message)} "
                f"with title {_applescript_string(self.title)}"
            )
        icon = "stop" if reminder.severity == "error" else "caution"
        buttons = ", ".join(
            _applescript_string(action)
            for action in (reminder.snooze_action, reminder.done_action)
        )
        return (
            f"display dialog {_applescript_string(reminder.message)} "
            f"with title {_applescript_string(self.title)} "
            f"buttons {{{buttons}}} "
            f"default button {_applescript_string(reminder.done_action)} "
            f"with icon {icon}\n"
            "return button returned of result"
        )

    async def show(self, reminder: Reminder, modal: bool) -> Optional[str]:
        process = await asyncio.create_subprocess_exec(
            "osascript",
            "-e",
            self.build_script(reminder, modal),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return None
        if process.returncode != 0:
            return None
        answer = stdout.decode("utf-8", errors="replace").strip()
        return answer or None
