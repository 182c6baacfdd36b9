from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from pumpkin_runner.config import RunnerConfig

logger = logging.getLogger(__name__)


class WorkspaceError(RuntimeError):
    """Raised when workspace directories are misconfigured or cannot be managed."""


def _child_of(root_dir: Path, relative: str, key: str) -> Path:
    candidate = Path(relative)
    if not relative.strip() or candidate.is_absolute():
        raise WorkspaceError(f"{key} must be a relative path inside the project, got {relative!r}")
    # lexical containment; a symlinked subdirectory is still inside the root
    normalized = Path(os.path.normpath(root_dir / candidate))
    if normalized == root_dir or root_dir not in normalized.parents:
        raise WorkspaceError(f"{key} must stay inside {root_dir}, got {relative!r}")
    return normalized


@dataclass(frozen=True, slots=True)
class Workspace:
    """Directories and subprocess environment shared read-only by every stage."""

    root_dir: Path
    run_dir: Path
    companion_dir: Path
    plugins_dir: Path
    env: dict[str, str] = field(default_factory=dict, compare=False)

    @classmethod
    def from_root(
        cls,
        root_dir: Path,
        config: RunnerConfig | None = None,
        env: dict[str, str] | None = None,
    ) -> Workspace:
        config = config or RunnerConfig.default()
        root = root_dir.resolve()
        run_dir = _child_of(root, config.workspace.run_dir, "workspace.run_dir")
        companion_dir = _child_of(root, config.companion.directory, "companion.directory")
        if (
            run_dir == companion_dir
            or run_dir in companion_dir.parents
            or companion_dir in run_dir.parents
        ):
            raise WorkspaceError(
                f"Run directory {run_dir} and companion directory {companion_dir} must not overlap"
            )
        plugins_dir = _child_of(run_dir, config.workspace.plugins_dir, "workspace.plugins_dir")
        return cls(
            root_dir=root,
            run_dir=run_dir,
            companion_dir=companion_dir,
            plugins_dir=plugins_dir,
            env=dict(os.environ if env is None else env),
        )

    def ensure_run_dir(self) -> None:
        try:
            self.run_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WorkspaceError(f"Failed to create {self.run_dir}: {exc}") from exc

    def remove_run_dir(self) -> bool:
        """Delete the run directory. Returns False when there was nothing to delete."""
        if not self.run_dir.exists():
            return False
        logger.debug("Removing %s", self.run_dir)
        try:
            shutil.rmtree(self.run_dir)
        except OSError as exc:
            raise WorkspaceError(f"Failed to remove {self.run_dir}: {exc}") from exc
        return True
