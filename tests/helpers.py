"""Deterministic stand-ins for the scheduler, git and the editor workspace."""

import asyncio
from datetime import datetime
from typing import Any, Callable, List, Optional

# Wednesday 13 March 2024, 10:00 local time
START = datetime(2024, 3, 13, 10, 0, 0).timestamp()


class ManualTimer:
    def __init__(self, scheduler, due: float, callback: Callable, interval=None):
        self.scheduler = scheduler
        self.due = due
        self.callback = callback
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-time scheduler: timers fire only when advance() passes them."""

    def __init__(self, start: float = START):
        self.time = start
        self.timers: List[ManualTimer] = []
        self.pending: List[tuple] = []

    def now(self) -> float:
        return self.time

    def call_later(self, delay: float, callback: Callable) -> ManualTimer:
        timer = ManualTimer(self, self.time + delay, callback)
        self.timers.append(timer)
        return timer

    def call_every(self, interval: float, callback: Callable) -> ManualTimer:
        timer = ManualTimer(self, self.time + interval, callback, interval)
        self.timers.append(timer)
        return timer

    def run_async(self, awaitable: Any, on_done: Callable) -> None:
        self.pending.append((awaitable, on_done))

    def active_timers(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def settle(self) -> None:
        """Complete every outstanding async call, in order."""

        async def _wait(awaitable):
            return await awaitable

        while self.pending:
            awaitable, on_done = self.pending.pop(0)
            try:
                result = asyncio.run(_wait(awaitable))
            except Exception as exc:
                on_done(None, exc)
            else:
                on_done(result, None)

    def advance(self, seconds: float, settle: bool = True) -> None:
        """Move virtual time forward, firing due timers in order."""
        target = self.time + seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.time = timer.due
            if timer.interval:
                timer.due += timer.interval
            else:
                timer.cancelled = True
            timer.callback()
            if settle:
                self.settle()
        self.time = target
        self.timers = [t for t in self.timers if not t.cancelled]


class FakeBranchResolver:
    def __init__(self, branch: str = "main"):
        self.branch = branch
        self.calls = 0
        self.error: Optional[BaseException] = None

    async def current_branch(self, path):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.branch


class FakeWorkspace:
    def __init__(self, project: str = "Alpha", path: str = "/work/alpha"):
        self.project = project
        self.path = path

    def current_project(self) -> str:
        return self.project

    def current_path(self):
        return self.path


class RecordingNotifier:
    """Returns queued answers; records every reminder shown."""

    def __init__(self, answers=None):
        self.answers = list(answers or [])
        self.shown = []

    async def show(self, reminder, modal):
        self.shown.append((reminder.kind, modal))
        return self.answers.pop(0) if self.answers else None
