#!/usr/bin/env python3
"""
Daemon wrapper for the coding time tracker.
Handles running the tracker as a background service and the offline
data commands (summary, reset).
"""

import asyncio
import fcntl
import os
import signal
import sys
import tempfile
import time
from pathlib import Path
from typing import Optional

from .commands import ResetOutcome, reset_all, reset_today
from .core import CodingTimeTracker, configure_logging
from .utils import format_minutes


class TerminalPrompter:
    """Confirms destructive commands on stdin/stdout."""

    async def warn(self, message: str, *choices: str) -> Optional[str]:
        print(message)
        for number, choice in enumerate(choices, 1):
            print(f"  {number}. {choice}")
        answer = input("Choice: ").strip()
        if answer.isdigit() and 1 <= int(answer) <= len(choices):
            return choices[int(answer) - 1]
        return answer if answer in choices else None

    async def ask(self, prompt: str, placeholder: str = "") -> Optional[str]:
        print(prompt)
        return input("> ").strip()

    def info(self, message: str) -> None:
        print(message)

    def error(self, message: str) -> None:
        sys.stderr.write(f"Error: {message}\n")


class TrackerDaemon:
    def __init__(self, pidfile: Optional[str] = None):
        if pidfile is None:
            pidfile = str(Path(tempfile.gettempdir()) / "coding_tracker.pid")
        self.pidfile = pidfile
        self.tracker: Optional[CodingTimeTracker] = None

    def _detach(self, stage: str) -> None:
        """Fork and let the parent exit; the child carries on."""
        try:
            if os.fork() > 0:
                sys.exit(0)
        except OSError as e:
            sys.stderr.write(f"Could not fork ({stage}): {e}\n")
            sys.exit(1)

    def _claim_pidfile(self) -> None:
        try:
            with open(self.pidfile, "w") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                f.write(str(os.getpid()))
                f.flush()
        except BlockingIOError:
            sys.stderr.write("Another tracker daemon is already starting\n")
            sys.exit(1)

    def daemonize(self):
        """Detach from the terminal and record the daemon's PID."""
        self._detach("session leader")
        os.chdir("/")
        os.setsid()
        # Pidfile and data files stay private to the owner
        os.umask(0o077)
        self._detach("daemon")

        sys.stdout.flush()
        sys.stderr.flush()
        self._claim_pidfile()

    def running_pid(self) -> Optional[int]:
        """PID of a live daemon, removing a stale pidfile."""
        if not os.path.exists(self.pidfile):
            return None

        with open(self.pidfile, "r") as f:
            try:
                pid = int(f.read().strip())
            except ValueError:
                pid = None

        if pid is not None:
            try:
                os.kill(pid, 0)  # Check if process exists
                return pid
            except OSError:
                pass
        os.remove(self.pidfile)
        return None

    def start(self):
        """Start the daemon."""
        pid = self.running_pid()
        if pid is not None:
            print(f"Daemon already running with PID {pid}")
            return

        # Resolve the workspace before chdir("/") in daemonize
        workspace = os.environ.get("CODING_TRACKER_WORKSPACE") or os.getcwd()
        os.environ["CODING_TRACKER_WORKSPACE"] = workspace

        print("Starting coding time tracker daemon...")
        self.daemonize()

        self.tracker = CodingTimeTracker()
        configure_logging(self.tracker.config.log_level)
        try:
            self.tracker.start()
        finally:
            if os.path.exists(self.pidfile):
                os.remove(self.pidfile)

    def stop(self):
        """Stop the daemon."""
        if not os.path.exists(self.pidfile):
            print("Daemon not running")
            return

        with open(self.pidfile, "r") as f:
            pid = int(f.read().strip())

        try:
            os.kill(pid, signal.SIGTERM)
            print(f"Stopped daemon with PID {pid}")
            os.remove(self.pidfile)
        except OSError as e:
            print(f"Error stopping daemon: {e}")

    def status(self):
        """Check daemon status."""
        pid = self.running_pid()
        if pid is None:
            print("Daemon not running")
            return
        print(f"Daemon running with PID {pid}")

    def summary(self):
        """Print totals from the stored ledger."""
        tracker = CodingTimeTracker(use_macos_host=False)
        queries = tracker.queries
        print("Coding time")
        print("=" * 40)
        print(f"Today:      {format_minutes(queries.today())}")
        print(f"This week:  {format_minutes(queries.this_week())}")
        print(f"This month: {format_minutes(queries.this_month())}")
        print(f"This year:  {format_minutes(queries.this_year())}")
        print(f"All time:   {format_minutes(queries.all_time())}")

        projects = queries.summary_by_project()
        if projects:
            print("\nBy project")
            print("-" * 40)
            for project, minutes in sorted(
                projects.items(), key=lambda item: item[1], reverse=True
            ):
                print(f"{format_minutes(minutes):>10}  {project}")

    def reset(self, everything: bool = False) -> bool:
        """Reset stored data; refuses while the daemon holds the ledger."""
        if self.running_pid() is not None:
            print("Stop the daemon before resetting data")
            return False

        tracker = CodingTimeTracker(use_macos_host=False)
        if not everything:
            ok = reset_today(tracker.tracker, tracker.ledger)
            print(
                "Coding time tracker has been reset for today."
                if ok
                else "Failed to reset today's time."
            )
            return ok

        outcome = asyncio.run(
            reset_all(tracker.tracker, tracker.ledger, TerminalPrompter())
        )
        return outcome is ResetOutcome.CLEARED


def main():
    """Main entry point for daemon control."""
    daemon = TrackerDaemon()
    commands = "start|stop|restart|status|summary|reset-today|reset-all"

    if len(sys.argv) != 2:
        print(f"Usage: python -m coding_tracker {{{commands}}}")
        sys.exit(1)

    command = sys.argv[1]

    if command == "start":
        daemon.start()
    elif command == "stop":
        daemon.stop()
    elif command == "restart":
        daemon.stop()
        time.sleep(1)
        daemon.start()
    elif command == "status":
        daemon.status()
    elif command == "summary":
        daemon.summary()
    elif command == "reset-today":
        daemon.reset()
    elif command == "reset-all":
        daemon.reset(everything=True)
    else:
        print(f"Unknown command. Use: {commands}")
        sys.exit(1)


if __name__ == "__main__":
    main()
