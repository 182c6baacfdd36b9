from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from pumpkin_runner.artifacts import Platform
from pumpkin_runner.tools.base import ToolExecutionError, failure_output, run_captured
from pumpkin_runner.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BuildTarget:
    project_dir: Path
    release_mode: bool = False
    label: str = "project"


def local_target(workspace: Workspace, platform: Platform) -> BuildTarget:
    # Windows plugins must be release builds to load into the server's plugin loader
    return BuildTarget(
        project_dir=workspace.root_dir,
        release_mode=platform is Platform.WINDOWS,
        label="Current plugin",
    )


def companion_target(workspace: Workspace) -> BuildTarget:
    return BuildTarget(project_dir=workspace.companion_dir, label="Pumpkin server")


class Builder:
    def __init__(self, cargo: list[str] | None = None, env: dict[str, str] | None = None) -> None:
        self.cargo = cargo or ["cargo"]
        self.env = env

    def build_command(self, target: BuildTarget) -> list[str]:
        command = [*self.cargo, "build"]
        if target.release_mode:
            command.append("--release")
        return command

    def build(self, target: BuildTarget) -> None:
        proc = run_captured(self.build_command(target), cwd=target.project_dir, env=self.env)
        if proc.returncode != 0:
            raise ToolExecutionError(
                f"{target.label} build failed: {failure_output(proc)}",
                tool="cargo",
                exit_code=proc.returncode,
                stderr=proc.stderr,
            )
        logger.debug("%s build finished in %s", target.label, target.project_dir)
