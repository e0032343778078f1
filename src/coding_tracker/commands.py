#!/usr/bin/env python3
"""
User commands that touch stored data.
Confirmation for destructive operations lives here, not in the ledger.
"""

import logging
from enum import Enum
from typing import Awaitable, Optional, Protocol

from .ledger import Ledger
from .tracker import ActivityTracker

logger = logging.getLogger(__name__)

RESET_ALL_WARNING = (
    "Are you sure you want to delete all time tracking data? This cannot be undone."
)
DELETE_ALL_CHOICE = "Delete All Data"
CANCEL_CHOICE = "Cancel"
CONFIRMATION_PHRASE = "DELETE ALL DATA"
CONFIRMATION_PROMPT = (
    f'Type "{CONFIRMATION_PHRASE}" to confirm permanent deletion of all time '
    "tracking data."
)


class Prompter(Protocol):
    """UI surface used to confirm destructive commands."""

    def warn(self, message: str, *choices: str) -> Awaitable[Optional[str]]:
        ...

    def ask(self, prompt: str, placeholder: str = "") -> Awaitable[Optional[str]]:
        ...

    def info(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


class ResetOutcome(Enum):
    CANCELLED = "cancelled"
    CLEARED = "cleared"
    FAILED = "failed"


def reset_today(tracker: ActivityTracker, ledger: Ledger) -> bool:
    """Drop today's entries and then the live session."""
    if not ledger.reset_today():
        return False
    tracker.discard_session("reset today")
    logger.info("Coding time tracker has been reset for today")
    return True


async def reset_all(
    tracker: ActivityTracker, ledger: Ledger, prompter: Prompter
) -> ResetOutcome:
    """Clear all data after a warning choice and a typed confirmation phrase."""
    choice = await prompter.warn(RESET_ALL_WARNING, DELETE_ALL_CHOICE, CANCEL_CHOICE)
    if choice != DELETE_ALL_CHOICE:
        return ResetOutcome.CANCELLED

    response = await prompter.ask(CONFIRMATION_PROMPT, CONFIRMATION_PHRASE)
    if response != CONFIRMATION_PHRASE:
        prompter.info("Data deletion cancelled.")
        return ResetOutcome.CANCELLED

    if not ledger.reset_all():
        prompter.error("Failed to clear time tracking data.")
        return ResetOutcome.FAILED
    tracker.discard_session("reset all")

    prompter.info("All time tracking data has been cleared successfully.")
    return ResetOutcome.CLEARED


def manual_save(tracker: ActivityTracker) -> bool:
    """Save the live session now, as a status bar click does."""
    if not tracker.is_active():
        return False
    tracker.save_current_session("manual status bar click")
    return True
