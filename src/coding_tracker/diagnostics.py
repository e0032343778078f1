#!/usr/bin/env python3
"""
Diagnostic event log for the coding time tracker.
Appends one JSON line per tracking event to a per-day file.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

TRACKING_STARTED = "tracking_started"
TRACKING_STOPPED = "tracking_stopped"
SESSION_SAVED = "session_saved"
BRANCH_CHANGED = "branch_changed"
INACTIVITY_DETECTED = "inactivity_detected"


def format_duration(seconds: float) -> str:
    return f"{round(seconds)}s"


class DiagnosticLog:
    """Append-only JSON-lines log; never read back by the tracker."""

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enabled: bool = False,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ):
        self.log_dir = Path(log_dir) if log_dir else None
        self.enabled = enabled and self.log_dir is not None
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.current_date = ""
        self.event_counter = 0

    @property
    def log_file_path(self) -> Optional[Path]:
        if not self.enabled or not self.current_date:
            return None
        return self.log_dir / f"timetracker_{self.current_date}.log"

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled and self.log_dir is not None

    def _roll_date(self, now: datetime) -> Path:
        date = now.strftime("%Y-%m-%d")
        if date != self.current_date:
            self.current_date = date
            self.event_counter = 0
        return self.log_dir / f"timetracker_{date}.log"

    def log_event(self, event: str, **details: Any) -> Optional[Dict[str, Any]]:
        """Write one event line. Returns the entry written, if any."""
        if not self.enabled:
            return None

        now = self._clock()
        path = self._roll_date(now)
        self.event_counter += 1

        entry: Dict[str, Any] = {
            "seq": self.event_counter,
            "time": now.strftime("%H:%M:%S"),
            "event": event,
            "project": details.get("project") or "",
            "branch": details.get("branch") or "",
        }

        if event in (TRACKING_STARTED, TRACKING_STOPPED):
            entry["reason"] = details.get("reason")
        elif event == SESSION_SAVED:
            entry["duration"] = format_duration(details.get("duration", 0.0) * 60)
            entry["reason"] = details.get("reason")
        elif event == BRANCH_CHANGED:
            entry["from"] = details.get("old_branch")
            entry["to"] = details.get("new_branch")
        elif event == INACTIVITY_DETECTED:
            entry["inactive_for"] = format_duration(details.get("inactive_for", 0.0))

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except (IOError, OSError) as e:
            self.logger.error("Failed to write to log file: %s", e)
        return entry
