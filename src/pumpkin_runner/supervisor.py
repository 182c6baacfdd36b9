from __future__ import annotations

import logging
import os
import stat
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from pumpkin_runner.workspace import Workspace

logger = logging.getLogger(__name__)

EXECUTABLE_BITS = stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH


class LaunchError(RuntimeError):
    """Raised when the staged server cannot be started or waited on."""


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    returncode: int

    @property
    def success(self) -> bool:
        return self.returncode == 0


class ProcessSupervisor:
    """Runs the staged server in the foreground with the terminal attached.

    Standard streams are inherited rather than piped so the server stays
    interactive, and Ctrl+C reaches it through the shared process group.
    """

    def __init__(self, workspace: Workspace, binary: Path) -> None:
        self.workspace = workspace
        self.binary = binary

    def _ensure_executable(self) -> None:
        if os.name != "posix":
            return
        mode = self.binary.stat().st_mode
        if mode & EXECUTABLE_BITS != EXECUTABLE_BITS:
            self.binary.chmod(mode | EXECUTABLE_BITS)

    def prepare(self) -> None:
        if not self.binary.exists():
            raise LaunchError(f"{self.binary.name} binary not found in {self.workspace.run_dir}")
        try:
            self._ensure_executable()
        except OSError as exc:
            raise LaunchError(f"Failed to make {self.binary.name} executable: {exc}") from exc

    def launch(self, on_start: Callable[[], None] | None = None) -> ProcessOutcome:
        """Prepare and spawn the server, then block until it exits.

        ``on_start`` runs after the binary passed preparation and right before
        the process is spawned.
        """
        self.prepare()
        if on_start is not None:
            on_start()

        logger.debug("Spawning %s in %s", self.binary, self.workspace.run_dir)
        try:
            process = subprocess.Popen(
                [str(self.binary)],
                cwd=self.workspace.run_dir,
                env=self.workspace.env,
            )
        except OSError as exc:
            raise LaunchError(f"Failed to start {self.binary.name}: {exc}") from exc

        return ProcessOutcome(returncode=self._wait(process))

    @staticmethod
    def _wait(process: subprocess.Popen) -> int:
        while True:
            try:
                return process.wait()
            except KeyboardInterrupt:
                # the child got the same SIGINT; let it shut down on its own
                logger.debug("Interrupt received, waiting for server to exit")
                continue
            except OSError as exc:
                raise LaunchError(f"Failed to wait for server process: {exc}") from exc
