"""
Coding Time Tracker - infers time actively spent coding per project and branch.

This package provides:

- An activity state machine fed by editor signals (cursor, edits, focus)
- Inactivity and focus-loss detection with grace-window accounting
- Per (date, project, branch) aggregated storage in JSON
- Health break reminders that pause tracking while shown
- Today/week/month/year/all-time totals and per-project/branch summaries
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .core import CodingTimeTracker
from .ledger import Ledger, SaveResult
from .storage import TimeEntry
from .tracker import ActivityTracker, TrackerState

__all__ = [
    "ActivityTracker",
    "CodingTimeTracker",
    "Ledger",
    "SaveResult",
    "TimeEntry",
    "TrackerState",
]
