#!/usr/bin/env python3
"""
Coding Time Tracker
Tracks time actively spent coding per project and branch.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from .aggregation import TimeQueries
from .branch import BranchResolver
from .clock import AsyncioScheduler
from .config import Config, load_config
from .diagnostics import DiagnosticLog
from .events import EventQueue
from .health import HealthBreakScheduler, LoggingNotifier, Notifier
from .ledger import Ledger
from .storage import JsonFileStore, KeyValueStore
from .tracker import ActivityTracker
from .workspace import EditorWorkspace, StaticWorkspace, Workspace

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO", quiet: bool = False) -> None:
    """Configure root logging for the tracker process."""
    logging.basicConfig(
        level=logging.WARNING if quiet else getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


class CodingTimeTracker:
    """
    Coding Time Tracker - Orchestrates the tracking components.

    Builds the ledger, event queue, state machine and health reminders from
    one configuration and runs them on a single asyncio loop.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        workspace: Optional[Workspace] = None,
        store: Optional[KeyValueStore] = None,
        notifier: Optional[Notifier] = None,
        use_macos_host: Optional[bool] = None,
    ):
        """
        Initialize the Coding Time Tracker.

        Args:
            config (Optional[Config]): Settings; loaded from disk and environment if None.
            workspace (Optional[Workspace]): Project context; defaults to the configured
                                             workspace directory or the current directory.
            store (Optional[KeyValueStore]): Persistence backend for the ledger.
            notifier (Optional[Notifier]): Shows health reminders.
            use_macos_host (Optional[bool]): Poll macOS for editor focus and input.
                                             Defaults to True on darwin.
        """
        self.config = config or load_config()
        if use_macos_host is None:
            use_macos_host = sys.platform == "darwin"
        self.use_macos_host = use_macos_host

        if workspace is None:
            workspace = self._default_workspace()
        self.workspace = workspace

        self.scheduler = AsyncioScheduler()
        self.queue = EventQueue()
        self.store = store or JsonFileStore(str(self.config.data_dir))
        self.ledger = Ledger(self.store)
        self.diagnostics = DiagnosticLog(
            self.config.log_dir, enabled=self.config.enable_logging
        )
        self.tracker = ActivityTracker(
            ledger=self.ledger,
            queue=self.queue,
            scheduler=self.scheduler,
            workspace=self.workspace,
            branch_resolver=BranchResolver(),
            settings=self.config.tracker_settings(),
            diagnostic_log=self.diagnostics,
        )

        self.signal_source = None
        if notifier is None and use_macos_host:
            from .detection import AppleScriptNotifier

            notifier = AppleScriptNotifier()
        self.health = HealthBreakScheduler(
            self.queue,
            self.scheduler,
            notifier or LoggingNotifier(),
            self.config.health_settings(),
        )
        self.queries = TimeQueries(self.ledger, self.tracker)
        self.config.on_change(self._on_config_change)
        self._stopped: Optional[asyncio.Event] = None

    def _default_workspace(self) -> Workspace:
        folders = self.config.workspace_folders
        if folders and self.use_macos_host:
            return EditorWorkspace.from_paths(folders, self.config.get("workspace_name", ""))
        return StaticWorkspace(self.config.get("workspace") or os.getcwd())

    def _on_config_change(self, config: Config) -> None:
        self.tracker.update_configuration(config.tracker_settings())
        self.health.update_settings(config.health_settings())
        self.diagnostics.set_enabled(config.enable_logging)

    def _start_host(self) -> None:
        if not self.use_macos_host:
            return
        from .detection import EditorSignalSource

        editor_workspace = (
            self.workspace if isinstance(self.workspace, EditorWorkspace) else None
        )
        self.signal_source = EditorSignalSource(
            self.tracker,
            self.scheduler,
            self.config.editor_apps,
            workspace=editor_workspace,
        )
        self.signal_source.start()

    async def run(self) -> None:
        """Run until stop() is called or SIGTERM/SIGINT arrives."""
        self._stopped = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(signum, self.stop)
            except (NotImplementedError, RuntimeError):
                pass

        logger.info(
            "Tracking %s, data saved to %s",
            self.workspace.current_project(),
            self.config.data_dir,
        )
        try:
            self._start_host()
            self.health.start()
            if not self.use_macos_host:
                self.tracker.start_tracking("startup")
            await self._stopped.wait()
        finally:
            self.shutdown()

    def start(self) -> None:
        """Start the tracker and block until it stops."""
        asyncio.run(self.run())

    def stop(self) -> None:
        """Ask a running tracker to stop."""
        if self._stopped is not None:
            self._stopped.set()

    def shutdown(self) -> None:
        """Flush the live session and cancel every timer."""
        if self.signal_source is not None:
            self.signal_source.stop()
            self.signal_source = None
        self.health.dispose()
        self.tracker.dispose()


def main():
    """Main entry point."""
    quiet = False
    workspace = None
    folders = []
    idle_threshold = None

    if "--help" in sys.argv or "-h" in sys.argv:
        print("Coding Time Tracker")
        print("Usage: python -m coding_tracker.core [options]")
        print("Options:")
        print("  --quiet, -q            Only log warnings and errors")
        print("  --workspace DIR        Project directory to attribute time to")
        print("  --folder DIR           Editor workspace folder (repeatable, macOS)")
        print("  --idle-threshold SEC   Inactivity timeout in seconds (default: 300)")
        print("  --help, -h             Show this help message")
        return

    if "--quiet" in sys.argv or "-q" in sys.argv:
        quiet = True

    for i, arg in enumerate(sys.argv):
        if arg == "--workspace" and i + 1 < len(sys.argv):
            workspace = sys.argv[i + 1]
        elif arg == "--folder" and i + 1 < len(sys.argv):
            folders.append(sys.argv[i + 1])
        elif arg == "--idle-threshold" and i + 1 < len(sys.argv):
            try:
                idle_threshold = float(sys.argv[i + 1])
            except ValueError:
                print(f"Invalid idle threshold: {sys.argv[i + 1]}")
                return
            if idle_threshold <= 0:
                print(f"Invalid idle threshold: {sys.argv[i + 1]}")
                return

    config = load_config()
    if workspace:
        config.set("workspace", workspace)
    if folders:
        config.set("workspace_folders", folders)
    if idle_threshold is not None:
        config.set("inactivity_timeout", idle_threshold)
    configure_logging(config.log_level, quiet=quiet)

    tracker = CodingTimeTracker(config=config)

    try:
        tracker.start()
    except KeyboardInterrupt:
        print("\nReceived interrupt signal")
    finally:
        tracker.stop()
        print("Coding time tracker stopped")


if __name__ == "__main__":
    main()
