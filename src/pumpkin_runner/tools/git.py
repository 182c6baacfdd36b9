from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from enum import Enum

from pumpkin_runner.tools.base import (
    ToolExecutionError,
    failure_output,
    run_captured,
)
from pumpkin_runner.workspace import Workspace, WorkspaceError

logger = logging.getLogger(__name__)


class RepoState(str, Enum):
    ABSENT = "absent"
    PRESENT = "present"


class SyncAction(str, Enum):
    CLONED = "cloned"
    RECLONED = "recloned"
    UPDATED = "updated"
    STALE = "stale"


@dataclass(slots=True)
class SyncResult:
    action: SyncAction
    state: RepoState
    detail: str = ""


class RepoSync:
    """Keeps the companion checkout present and, best effort, up to date."""

    def __init__(self, workspace: Workspace, repo_url: str, git: list[str] | None = None) -> None:
        self.workspace = workspace
        self.repo_url = repo_url
        self.git = git or ["git"]

    def state(self) -> RepoState:
        if self.workspace.companion_dir.exists():
            return RepoState.PRESENT
        return RepoState.ABSENT

    def ensure(self, force: bool = False) -> SyncResult:
        if self.state() is RepoState.PRESENT:
            if not force:
                return self.pull()
            self._discard_checkout()
            self.clone()
            return SyncResult(action=SyncAction.RECLONED, state=self.state())

        self.clone()
        return SyncResult(action=SyncAction.CLONED, state=self.state())

    def clone(self) -> None:
        target = self.workspace.companion_dir
        target.parent.mkdir(parents=True, exist_ok=True)
        proc = run_captured(
            [*self.git, "clone", self.repo_url, target.name],
            cwd=target.parent,
            env=self.workspace.env,
        )
        if proc.returncode != 0:
            raise ToolExecutionError(
                f"Git clone failed: {failure_output(proc)}",
                tool="git",
                exit_code=proc.returncode,
                stderr=proc.stderr,
            )

    def pull(self) -> SyncResult:
        try:
            proc = run_captured(
                [*self.git, "pull"],
                cwd=self.workspace.companion_dir,
                env=self.workspace.env,
            )
        except ToolExecutionError as exc:
            logger.warning("git pull could not run, keeping existing checkout: %s", exc)
            return SyncResult(action=SyncAction.STALE, state=self.state(), detail=str(exc))

        if proc.returncode != 0:
            detail = failure_output(proc)
            logger.warning("git pull failed, keeping existing checkout: %s", detail)
            return SyncResult(action=SyncAction.STALE, state=self.state(), detail=detail)
        return SyncResult(action=SyncAction.UPDATED, state=self.state())

    def _discard_checkout(self) -> None:
        target = self.workspace.companion_dir
        logger.debug("Removing companion checkout %s", target)
        try:
            shutil.rmtree(target)
        except OSError as exc:
            raise WorkspaceError(
                f"Failed to remove existing {target.name} directory: {exc}"
            ) from exc

