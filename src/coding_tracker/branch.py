"""Git branch lookup that never raises into the tracker."""

import asyncio
import logging
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

UNKNOWN_BRANCH = "unknown"


class BranchResolver:
    """Resolve the checked-out branch of a working tree with git."""

    def __init__(
        self,
        git_path: str = "git",
        timeout: float = 5.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.git_path = git_path
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    async def current_branch(self, path: Optional[str]) -> str:
        """Return the branch name for path, or "unknown" on any failure."""
        if not path:
            return UNKNOWN_BRANCH
        try:
            output = await self._run_git(path, ["rev-parse", "--abbrev-ref", "HEAD"])
        except (OSError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
            self.logger.debug("Branch lookup failed for %s: %s", path, exc)
            return UNKNOWN_BRANCH

        if output is None:
            return UNKNOWN_BRANCH
        branch = output.strip()
        if not branch:
            return UNKNOWN_BRANCH
        if branch == "HEAD":
            # Detached head: fall back to the short commit id
            try:
                commit = await self._run_git(path, ["rev-parse", "--short", "HEAD"])
            except (OSError, asyncio.TimeoutError, UnicodeDecodeError):
                return UNKNOWN_BRANCH
            return f"detached@{commit.strip()}" if commit else UNKNOWN_BRANCH
        return branch

    async def _run_git(self, path: str, args: Sequence[str]) -> Optional[str]:
        process = await asyncio.create_subprocess_exec(
            self.git_path,
            *args,
            cwd=path,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise
        if process.returncode != 0:
            self.logger.debug(
                "git %s exited with %s: %s",
                " ".join(args),
                process.returncode,
                stderr.decode("utf-8", errors="replace").strip(),
            )
            return None
        return stdout.decode("utf-8")


__all__ = ["BranchResolver", "UNKNOWN_BRANCH"]
