#!/usr/bin/env python3
"""
Small helpers shared by the tracker: data locations and time formatting.
"""

import sys
from pathlib import Path

APP_DIR_NAME = "CodingTimeTracker"


def get_app_directory() -> Path:
    """Return the per-user application directory for the current platform."""
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    if sys.platform.startswith("win"):
        return Path.home() / "AppData" / "Roaming" / APP_DIR_NAME
    return Path.home() / ".local" / "share" / APP_DIR_NAME.lower()


def get_data_directory() -> Path:
    """Return the data directory, creating it if needed."""
    data_dir = get_app_directory() / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_config_directory() -> Path:
    return get_app_directory() / "config"


def get_log_directory() -> Path:
    return get_app_directory() / "logs"


def format_minutes(minutes: float, show_seconds: bool = False) -> str:
    """Format a minute count as "2h 5m" (or "2h 5m 30s")."""
    total_seconds = int(round(max(0.0, minutes) * 60))
    hours, remainder = divmod(total_seconds, 3600)
    mins, secs = divmod(remainder, 60)

    if show_seconds:
        if hours:
            return f"{hours}h {mins}m {secs}s"
        if mins:
            return f"{mins}m {secs}s"
        return f"{secs}s"

    if hours:
        return f"{hours}h {mins}m"
    return f"{mins}m"
