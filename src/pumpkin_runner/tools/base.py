from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when an external tool exits unsuccessfully."""

    def __init__(
        self,
        message: str,
        *,
        tool: str | None = None,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.tool = tool
        self.exit_code = exit_code
        self.stderr = stderr


class ToolNotFoundError(ToolExecutionError):
    """Raised when the tool executable cannot be started at all."""


def run_captured(
    argv: list[str],
    *,
    cwd: Path,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a tool to completion with stdout and stderr captured for error reporting."""
    logger.debug("Running %s in %s", argv, cwd)
    try:
        proc = subprocess.run(
            argv,
            cwd=cwd,
            env=env,
            text=True,
            errors="replace",
            capture_output=True,
        )
    except FileNotFoundError as exc:
        raise ToolNotFoundError(
            f"Failed to execute {argv[0]}: {exc}",
            tool=argv[0],
        ) from exc
    except OSError as exc:
        raise ToolExecutionError(f"Failed to execute {argv[0]}: {exc}", tool=argv[0]) from exc
    logger.debug("%s exited with %s", argv[0], proc.returncode)
    return proc


def failure_output(proc: subprocess.CompletedProcess[str]) -> str:
    return proc.stderr.strip() or proc.stdout.strip()
