#!/usr/bin/env python3
"""
Event channel for the coding time tracker.

Every activity signal, timer fire, I/O completion and command travels through
one EventQueue. Events are delivered one at a time in FIFO order; an event
posted while another is being handled waits for the current drain.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, List, Optional

CURSOR_MOVED = "cursor_moved"
TEXT_CHANGED = "text_changed"
EDITOR_FOCUS_CHANGED = "editor_focus_changed"
DOCUMENT_OPENED = "document_opened"

ACTIVITY_KINDS = (CURSOR_MOVED, TEXT_CHANGED, EDITOR_FOCUS_CHANGED, DOCUMENT_OPENED)


# Signals from the editor host


@dataclass(frozen=True)
class ActivitySignal:
    kind: str


@dataclass(frozen=True)
class WindowFocusChanged:
    focused: bool


# Timer fires


@dataclass(frozen=True)
class InactivityDeadline:
    pass


@dataclass(frozen=True)
class FocusDeadline:
    pass


@dataclass(frozen=True)
class SaveTick:
    pass


@dataclass(frozen=True)
class BranchPollTick:
    pass


@dataclass(frozen=True)
class BranchResolved:
    branch: str


# Health break channel


@dataclass(frozen=True)
class PauseRequested:
    source: str


@dataclass(frozen=True)
class ResumeRequested:
    source: str


# Commands


@dataclass(frozen=True)
class StartTracking:
    reason: str


@dataclass(frozen=True)
class StopTracking:
    reason: str


@dataclass(frozen=True)
class SaveSession:
    reason: str


@dataclass(frozen=True)
class PauseManually:
    pass


@dataclass(frozen=True)
class ResumeManually:
    pass


@dataclass(frozen=True)
class DiscardSession:
    reason: str


@dataclass(frozen=True)
class ConfigChanged:
    settings: Any


@dataclass(frozen=True)
class Shutdown:
    pass


Handler = Callable[[Any], None]


class EventQueue:
    """Serialized run-to-completion event queue."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._pending: Deque[Any] = deque()
        self._handlers: List[Handler] = []
        self._draining = False

    def subscribe(self, handler: Handler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: Handler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def draining(self) -> bool:
        return self._draining

    def post(self, event: Any) -> None:
        """Enqueue event and drain unless a drain is already in progress."""
        self._pending.append(event)
        if self._draining:
            return

        self._draining = True
        try:
            while self._pending:
                current = self._pending.popleft()
                for handler in list(self._handlers):
                    try:
                        handler(current)
                    except Exception:
                        self.logger.exception("Error handling %r", current)
        finally:
            self._draining = False
